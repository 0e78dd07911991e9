"""
Customer Model
Tenants of the back office
"""

from sqlalchemy import Column, String, ForeignKey
from sqlalchemy.dialects.postgresql import UUID

from app.models.base import SoftDeleteModel


class Customer(SoftDeleteModel):
    __tablename__ = "customers"

    name = Column(String(255), nullable=False, index=True)
    email_domain = Column(String(255), nullable=True, index=True)
    lifecycle_stage = Column(String(50), nullable=True)

    # use_alter breaks the users <-> customers FK cycle at create time
    owner_id = Column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL", use_alter=True, name="fk_customers_owner_id_users"),
        nullable=True,
    )

    def __repr__(self):
        return f"<Customer(name='{self.name}')>"
