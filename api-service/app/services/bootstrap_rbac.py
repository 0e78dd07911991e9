"""
Startup bootstrap for RBAC reference data and the first system administrator.
"""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.rbac import (
    ALL_PERMISSIONS,
    DEFAULT_SYSTEM_ROLE_PERMISSIONS,
    SYSTEM_ROLE_DEFINITIONS,
    SystemRole,
    UserStatus,
    split_permission,
)
from app.models.role import Permission, Role
from app.repositories.role import permission_repository, role_permission_repository, role_repository
from app.repositories.user import user_repository

logger = structlog.get_logger()


def _permission_display_name(name: str) -> str:
    resource, action = split_permission(name)
    return f"{resource}: {action}"


async def ensure_permission_catalog(db: AsyncSession) -> dict[str, Permission]:
    existing = {p.name: p for p in await permission_repository.list_all(db)}
    created = 0
    for name in ALL_PERMISSIONS:
        if name in existing:
            continue
        existing[name] = await permission_repository.create(
            db, obj_in={"name": name, "display_name": _permission_display_name(name)}
        )
        created += 1

    logger.info("Permission catalog ensured", total=len(existing), created=created)
    return existing


async def ensure_system_roles(db: AsyncSession, catalog: dict[str, Permission]) -> dict[SystemRole, Role]:
    roles = {}
    for system_role, (display_name, description) in SYSTEM_ROLE_DEFINITIONS.items():
        role = await role_repository.get_by_name(db, system_role.value)
        if role is None:
            role = await role_repository.create(
                db,
                obj_in={
                    "name": system_role.value,
                    "display_name": display_name,
                    "description": description,
                    "is_system_role": True,
                    "permissions": None,
                },
            )
            permission_ids = [catalog[name].id for name in DEFAULT_SYSTEM_ROLE_PERMISSIONS[system_role]]
            await role_permission_repository.replace(db, role.id, permission_ids)
            logger.info("System role created", role=system_role.value, permissions=len(permission_ids))
        elif not role.is_system_role:
            await role_repository.update(db, db_obj=role, obj_in={"is_system_role": True})
            logger.warning("Existing role promoted to system role", role=system_role.value)
        roles[system_role] = role
    return roles


async def ensure_bootstrap_admin_exists(db: AsyncSession, admin_role: Role) -> None:
    admin_email = settings.BOOTSTRAP_ADMIN_EMAIL.lower().strip()

    existing = await user_repository.get_by_email(db, admin_email, include_deleted=True)
    if existing:
        logger.info("Bootstrap admin already exists", email=admin_email, user_id=str(existing.id))
        return

    # Linked to an auth subject on first sign-in with this email
    bootstrap_user = await user_repository.create(
        db,
        obj_in={
            "email": admin_email,
            "full_name": settings.BOOTSTRAP_ADMIN_FULL_NAME,
            "status": UserStatus.ACTIVE.value,
            "role_id": admin_role.id,
            "app_metadata": {},
        },
    )
    logger.info("Bootstrap admin created", email=admin_email, user_id=str(bootstrap_user.id))


async def bootstrap_rbac(db: AsyncSession) -> None:
    """Idempotent; safe to run on every startup"""
    catalog = await ensure_permission_catalog(db)
    roles = await ensure_system_roles(db, catalog)
    await ensure_bootstrap_admin_exists(db, roles[SystemRole.SYSTEM_ADMINISTRATOR])
    await db.commit()
