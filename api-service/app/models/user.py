"""
User Model
Back-office accounts linked to an external auth subject
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship

from app.core.rbac import UserStatus
from app.models.base import SoftDeleteModel


class User(SoftDeleteModel):
    """Back-office user; scoped to one customer (tenant) and one role"""
    __tablename__ = "users"

    # Subject id from the credential issuer; null until the first sign-in links it
    auth_user_id = Column(String(255), nullable=True, unique=True, index=True)

    email = Column(String(254), nullable=False, unique=True, index=True)
    full_name = Column(String(100), nullable=True)

    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True)
    role_id = Column(UUID(as_uuid=True), ForeignKey("roles.id", ondelete="SET NULL"), nullable=True, index=True)

    status = Column(String(20), default=UserStatus.INVITED.value, nullable=False, index=True)

    # Session context claims (customer_id / impersonated_user_id) copied into issued tokens
    app_metadata = Column(JSONB, default=dict, nullable=False, server_default="{}")

    last_login_at = Column(DateTime(timezone=True), nullable=True)

    customer = relationship("Customer", foreign_keys=[customer_id], lazy="joined")
    role = relationship("Role", back_populates="users", lazy="joined")

    __table_args__ = (
        Index("ix_user_customer_status", "customer_id", "status"),
    )

    def __repr__(self):
        return f"<User(email='{self.email}', status='{self.status}')>"

    @property
    def role_name(self):
        return self.role.name if self.role is not None else None

    @property
    def is_effectively_deleted(self) -> bool:
        return bool(self.is_deleted) or self.status == UserStatus.DELETED.value

    def context_claims(self) -> dict:
        """Persisted tenant/impersonation claims, empty values dropped"""
        metadata = self.app_metadata or {}
        return {
            key: metadata[key]
            for key in ("customer_id", "impersonated_user_id")
            if metadata.get(key)
        }
