"""
SQLAlchemy Models Package
Back-office authorization and tenancy models
"""

from app.models.customer import Customer
from app.models.role import Role, Permission, RolePermission
from app.models.user import User
from app.models.customer_success_grant import CustomerSuccessOwnedCustomer

__all__ = [
    "Customer",
    "Role",
    "Permission",
    "RolePermission",
    "User",
    "CustomerSuccessOwnedCustomer",
]
