"""
Role Service
Role administration. System roles are immutable here, whatever the caller may hold.
"""

from __future__ import annotations

from typing import Iterable, Optional
from uuid import UUID

import structlog
from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import RolePermissionCache, role_permission_cache
from app.core.errors import Forbidden
from app.core.permission_resolver import DBPermissionResolver, JoinedPermissions, normalize_permissions
from app.core.rbac import SYSTEM_ROLE_NAMES, WILDCARD_PERMISSION
from app.models.role import Permission, Role
from app.repositories.role import permission_repository, role_permission_repository, role_repository
from app.repositories.user import user_repository
from app.schemas.role import RoleCreateRequest, RoleRead, RoleUpdateRequest

logger = structlog.get_logger()


def ensure_role_mutable(role: Role, operation: str) -> None:
    if role.is_system_role:
        logger.warning("System role mutation blocked", role=role.name, operation=operation)
        raise Forbidden(f"system_role_{operation}")


async def get_role_or_404(db: AsyncSession, role_id: UUID) -> Role:
    role = await role_repository.get(db, role_id)
    if not role:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    return role


def ensure_assignable(names: Iterable[str]) -> None:
    """The wildcard is honoured in stored lists but can never be granted"""
    if WILDCARD_PERMISSION in names:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Permission cannot be assigned", "rejected": [WILDCARD_PERMISSION]},
        )


async def resolve_permission_names(db: AsyncSession, names: Iterable[str]) -> list[Permission]:
    """Catalog rows for ``names``; 400 listing any name that does not exist"""
    names = list(dict.fromkeys(names))
    ensure_assignable(names)
    permissions = await permission_repository.get_by_names(db, names)
    found = {permission.name for permission in permissions}
    missing = [name for name in names if name not in found]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Unknown permissions", "missing": missing},
        )
    return permissions


class RoleService:
    def __init__(self, cache: Optional[RolePermissionCache] = None):
        self._cache = cache if cache is not None else role_permission_cache
        self._source_reader = DBPermissionResolver()

    async def _to_read(self, db: AsyncSession, role: Role, user_count: Optional[int] = None) -> RoleRead:
        source = await self._source_reader.load_source(db, role)
        return RoleRead(
            id=role.id,
            created_at=role.created_at,
            updated_at=role.updated_at,
            name=role.name,
            display_name=role.display_name,
            description=role.description,
            is_system_role=role.is_system_role,
            permissions=sorted(normalize_permissions(source)),
            permission_source="joined" if isinstance(source, JoinedPermissions) else "inline",
            user_count=user_count,
        )

    async def list_roles(self, db: AsyncSession) -> list[RoleRead]:
        roles = await role_repository.list_roles(db)
        return [await self._to_read(db, role) for role in roles]

    async def get_role(self, db: AsyncSession, role_id: UUID) -> RoleRead:
        role = await get_role_or_404(db, role_id)
        return await self._to_read(db, role, user_count=await user_repository.count_with_role(db, role.id))

    async def _ensure_name_available(self, db: AsyncSession, name: str, exclude_id: Optional[UUID] = None) -> None:
        if name in SYSTEM_ROLE_NAMES:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Role name is reserved")
        existing = await role_repository.get_by_name(db, name)
        if existing and existing.id != exclude_id:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Role name already exists")

    async def create_role(self, db: AsyncSession, data: RoleCreateRequest) -> RoleRead:
        await self._ensure_name_available(db, data.name)
        permissions = await resolve_permission_names(db, data.permission_names)

        # Custom roles are never system roles, whatever the payload says
        role = await role_repository.create(
            db,
            obj_in={
                "name": data.name,
                "display_name": data.display_name,
                "description": data.description,
                "is_system_role": False,
                "permissions": None,
            },
        )
        if permissions:
            await role_permission_repository.replace(db, role.id, [p.id for p in permissions])

        logger.info("Role created", role_id=str(role.id), name=role.name, permissions=len(permissions))
        return await self._to_read(db, role, user_count=0)

    async def update_role(self, db: AsyncSession, role_id: UUID, data: RoleUpdateRequest) -> RoleRead:
        role = await get_role_or_404(db, role_id)
        ensure_role_mutable(role, "update")

        update_data = data.model_dump(exclude_unset=True)
        if update_data.get("name") and update_data["name"] != role.name:
            await self._ensure_name_available(db, update_data["name"], exclude_id=role.id)

        role = await role_repository.update(db, db_obj=role, obj_in=update_data)
        await self._cache.invalidate(role.id)
        logger.info("Role updated", role_id=str(role.id), fields=sorted(update_data))
        return await self._to_read(db, role)

    async def update_permissions_by_name(self, db: AsyncSession, role_id: UUID, names: list[str]) -> RoleRead:
        """
        Replace the permission set of a custom role.

        Only a legacy role that still holds an inline list and no join rows
        is written inline. Every other role is written to the join, and any
        stale inline list is cleared so it can never be read back.
        """
        role = await get_role_or_404(db, role_id)
        ensure_role_mutable(role, "update_permissions")
        permissions = await resolve_permission_names(db, names)

        joined = await role_permission_repository.get_permission_names(db, role.id)
        if role.permissions is not None and not joined:
            role = await role_repository.update(db, db_obj=role, obj_in={"permissions": [p.name for p in permissions]})
        else:
            await role_permission_repository.replace(db, role.id, [p.id for p in permissions])
            if role.permissions is not None:
                role = await role_repository.update(db, db_obj=role, obj_in={"permissions": None})

        await self._cache.invalidate(role.id)
        logger.info("Role permissions replaced by name", role_id=str(role.id), count=len(permissions))
        return await self._to_read(db, role)

    async def delete_role(self, db: AsyncSession, role_id: UUID) -> None:
        role = await get_role_or_404(db, role_id)
        ensure_role_mutable(role, "delete")

        assigned = await user_repository.count_with_role(db, role.id)
        if assigned:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Role is assigned to {assigned} user(s)",
            )

        await role_repository.delete(db, db_obj=role, soft_delete=False)
        await self._cache.invalidate(role.id)
        logger.info("Role deleted", role_id=str(role_id), name=role.name)


role_service = RoleService()
