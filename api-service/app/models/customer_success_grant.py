"""
Customer Success Ownership Grant Model
Which tenants a customer-success user may act in
"""

from sqlalchemy import Column, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.models.base import BaseModel


class CustomerSuccessOwnedCustomer(BaseModel):
    __tablename__ = "customer_success_owned_customers"

    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = Column(
        UUID(as_uuid=True), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True
    )

    customer = relationship("Customer", lazy="joined")

    __table_args__ = (
        UniqueConstraint("user_id", "customer_id", name="uq_cs_owned_customers_user_customer"),
    )
