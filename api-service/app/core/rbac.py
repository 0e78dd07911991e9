"""
RBAC helpers and canonical permission definitions for the back office.
"""

from __future__ import annotations

from enum import Enum


class SystemRole(str, Enum):
    SYSTEM_ADMINISTRATOR = "system_admin"
    CUSTOMER_SUCCESS = "customer_success"
    CUSTOMER_ADMINISTRATOR = "customer_admin"
    STANDARD_USER = "standard_user"


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    INVITED = "invited"
    SUSPENDED = "suspended"
    DELETED = "deleted"


SYSTEM_ROLE_NAMES: frozenset[str] = frozenset(role.value for role in SystemRole)

SYSTEM_ROLE_DEFINITIONS: dict[SystemRole, tuple[str, str]] = {
    SystemRole.SYSTEM_ADMINISTRATOR: ("System Administrator", "Role with full system access and control"),
    SystemRole.CUSTOMER_SUCCESS: (
        "Customer Success",
        "Role focused on ensuring customer satisfaction and retention",
    ),
    SystemRole.CUSTOMER_ADMINISTRATOR: (
        "Customer Administrator",
        "Role for managing customer-specific configurations and settings",
    ),
    SystemRole.STANDARD_USER: ("Standard User", "Default role for customer users"),
}

# Roles allowed to act on behalf of another user
IMPERSONATING_ROLES: frozenset[str] = frozenset(
    {SystemRole.SYSTEM_ADMINISTRATOR.value, SystemRole.CUSTOMER_SUCCESS.value}
)

WILDCARD_PERMISSION = "*"

PERMISSION_MODULES: dict[str, tuple[str, ...]] = {
    "UserManagement": ("viewUsers", "createUser", "inviteUser", "editUser", "deleteUser"),
    "CustomerManagement": ("createCustomer", "editCustomer", "listCustomers", "deleteCustomer"),
    "RoleManagement": ("viewRoles", "createRoles", "editRoles", "deleteRoles"),
    "Documents": (
        "viewCategories",
        "createCategories",
        "editCategories",
        "deleteCategories",
        "viewArticles",
        "createArticles",
        "editArticles",
        "deleteArticles",
    ),
}


def permission_name(resource: str, action: str) -> str:
    return f"{resource}:{action}"


def split_permission(permission: str) -> tuple[str, str]:
    """Split ``"<Resource>:<action>"`` into its parts."""
    resource, sep, action = permission.partition(":")
    if not sep or not resource or not action or ":" in action:
        raise ValueError(f"Malformed permission name: {permission!r}")
    return resource, action


ALL_PERMISSIONS: tuple[str, ...] = tuple(
    permission_name(resource, action)
    for resource, actions in PERMISSION_MODULES.items()
    for action in actions
)


def _module(resource: str, *actions: str) -> tuple[str, ...]:
    return tuple(permission_name(resource, action) for action in (actions or PERMISSION_MODULES[resource]))


# Permissions seeded onto system roles the first time they are created
DEFAULT_SYSTEM_ROLE_PERMISSIONS: dict[SystemRole, tuple[str, ...]] = {
    SystemRole.SYSTEM_ADMINISTRATOR: ALL_PERMISSIONS,
    SystemRole.CUSTOMER_SUCCESS: (
        *_module("UserManagement", "viewUsers", "createUser", "inviteUser", "editUser"),
        *_module("CustomerManagement", "listCustomers", "editCustomer"),
        *_module("RoleManagement", "viewRoles"),
        *_module("Documents", "viewCategories", "viewArticles"),
    ),
    SystemRole.CUSTOMER_ADMINISTRATOR: (
        *_module("UserManagement"),
        *_module("RoleManagement", "viewRoles"),
        *_module("Documents"),
    ),
    SystemRole.STANDARD_USER: _module("Documents", "viewCategories", "viewArticles"),
}
