"""
Role Permission Service
Administration of the role_permissions join and migration off the inline list.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

import structlog
from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import RolePermissionCache, role_permission_cache
from app.core.permission_resolver import InlinePermissions, normalize_permissions
from app.models.role import Role
from app.repositories.role import permission_repository, role_permission_repository, role_repository
from app.schemas.role import RolePermissionRead, RolePermissionSyncResult
from app.services.role import ensure_assignable, ensure_role_mutable, get_role_or_404, resolve_permission_names

logger = structlog.get_logger()


class RolePermissionService:
    def __init__(self, cache: Optional[RolePermissionCache] = None):
        self._cache = cache if cache is not None else role_permission_cache

    async def list_for_role(self, db: AsyncSession, role_id: UUID) -> list[RolePermissionRead]:
        await get_role_or_404(db, role_id)
        rows = await role_permission_repository.list_for_role(db, role_id)
        return [
            RolePermissionRead(
                role_id=row.role_id,
                permission_id=row.permission_id,
                permission_name=row.permission.name if row.permission else None,
            )
            for row in rows
        ]

    async def _migrate_inline(self, db: AsyncSession, role: Role) -> RolePermissionSyncResult:
        inline = sorted(normalize_permissions(InlinePermissions(tuple(role.permissions or []))))
        permissions = await resolve_permission_names(db, inline)

        existing = set(await role_permission_repository.get_permission_names(db, role.id))
        migrated, already_present = [], []
        for permission in permissions:
            if permission.name in existing:
                already_present.append(permission.name)
                continue
            await role_permission_repository.add(db, role.id, permission.id)
            migrated.append(permission.name)

        # The join now holds the grant; the inline copy would only go stale
        await role_repository.update(db, db_obj=role, obj_in={"permissions": None})
        return RolePermissionSyncResult(role_id=role.id, migrated=sorted(migrated), already_present=sorted(already_present))

    async def _adopt_inline(self, db: AsyncSession, role: Role) -> None:
        """
        Settle the inline list before the join is edited.

        A role without join rows is still read from its inline list, so that
        list moves into the join. Once join rows exist the inline list is
        already ignored; it is dropped without being merged.
        """
        if role.permissions is None:
            return

        if await role_permission_repository.get_permission_names(db, role.id):
            await role_repository.update(db, db_obj=role, obj_in={"permissions": None})
            logger.info("Stale inline permissions dropped", role_id=str(role.id))
            return

        result = await self._migrate_inline(db, role)
        logger.info("Inline permissions adopted into join", role_id=str(role.id), migrated=len(result.migrated))

    async def add(self, db: AsyncSession, role_id: UUID, permission_id: UUID) -> RolePermissionRead:
        role = await get_role_or_404(db, role_id)
        ensure_role_mutable(role, "add_permission")

        permission = await permission_repository.get(db, permission_id)
        if not permission:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Permission not found")
        ensure_assignable([permission.name])

        await self._adopt_inline(db, role)
        if await role_permission_repository.get_pair(db, role.id, permission.id):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Permission is already assigned to this role")

        row = await role_permission_repository.add(db, role.id, permission.id)
        await self._cache.invalidate(role.id)
        logger.info("Permission added to role", role_id=str(role.id), permission=permission.name)
        return RolePermissionRead(role_id=row.role_id, permission_id=row.permission_id, permission_name=permission.name)

    async def remove(self, db: AsyncSession, role_id: UUID, permission_id: UUID) -> None:
        role = await get_role_or_404(db, role_id)
        ensure_role_mutable(role, "remove_permission")

        await self._adopt_inline(db, role)
        removed = await role_permission_repository.remove(db, role.id, permission_id)
        if not removed:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Permission is not assigned to this role")

        await self._cache.invalidate(role.id)
        logger.info("Permission removed from role", role_id=str(role.id), permission_id=str(permission_id))

    async def set_permissions(self, db: AsyncSession, role_id: UUID, permission_ids: list[UUID]) -> list[RolePermissionRead]:
        role = await get_role_or_404(db, role_id)
        ensure_role_mutable(role, "set_permissions")

        ids = list(dict.fromkeys(permission_ids))
        found = {p.id: p for p in await permission_repository.get_multi(db, filters={"id": ids}, limit=len(ids) or 1)}
        missing = [str(pid) for pid in ids if pid not in found]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"message": "Permission not found", "missing": missing},
            )
        ensure_assignable([p.name for p in found.values()])

        await role_permission_repository.replace(db, role.id, ids)
        if role.permissions is not None:
            await role_repository.update(db, db_obj=role, obj_in={"permissions": None})
        await self._cache.invalidate(role.id)
        return await self.list_for_role(db, role.id)

    async def sync_from_inline(self, db: AsyncSession, role_id: UUID) -> RolePermissionSyncResult:
        role = await get_role_or_404(db, role_id)
        ensure_role_mutable(role, "sync_permissions")

        result = await self._migrate_inline(db, role)
        await self._cache.invalidate(role.id)
        logger.info(
            "Inline permissions synced to join",
            role_id=str(role.id),
            migrated=len(result.migrated),
            already_present=len(result.already_present),
        )
        return result


role_permission_service = RolePermissionService()
