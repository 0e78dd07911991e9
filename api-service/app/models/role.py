"""
Role and Permission Models
Roles carry permissions either inline (legacy JSONB list) or through the
role_permissions join table
"""

from sqlalchemy import Column, String, Text, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship

from app.models.base import BaseModel


class Role(BaseModel):
    __tablename__ = "roles"

    name = Column(String(100), nullable=False, unique=True, index=True)
    display_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_system_role = Column(Boolean, default=False, nullable=False)

    # Legacy inline representation: list of "<Resource>:<action>" strings
    permissions = Column(JSONB(none_as_null=True), nullable=True)

    users = relationship("User", back_populates="role", passive_deletes=True)

    def __repr__(self):
        return f"<Role(name='{self.name}', system={self.is_system_role})>"


class Permission(BaseModel):
    """Reference data; one row per catalog entry"""
    __tablename__ = "permissions"

    name = Column(String(150), nullable=False, unique=True, index=True)
    display_name = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)

    def __repr__(self):
        return f"<Permission(name='{self.name}')>"


class RolePermission(BaseModel):
    __tablename__ = "role_permissions"

    role_id = Column(UUID(as_uuid=True), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True)
    permission_id = Column(
        UUID(as_uuid=True), ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False, index=True
    )

    permission = relationship("Permission", lazy="joined")

    __table_args__ = (
        UniqueConstraint("role_id", "permission_id", name="uq_role_permissions_role_permission"),
    )
