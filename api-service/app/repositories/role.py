"""
Role and Permission Repositories
Roles, the permission catalog, and the role_permissions join
"""

from __future__ import annotations

from typing import Iterable, Optional
from uuid import UUID

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.upstream import upstream_call
from app.models.role import Permission, Role, RolePermission
from app.repositories.base import CRUDBase

logger = structlog.get_logger()


class RoleRepository(CRUDBase[Role, dict, dict]):
    @upstream_call("store.roles")
    async def get(self, db: AsyncSession, id, include_deleted: bool = False) -> Optional[Role]:
        return await super().get(db, id, include_deleted=include_deleted)

    @upstream_call("store.roles")
    async def get_by_name(self, db: AsyncSession, name: str) -> Optional[Role]:
        result = await db.execute(select(Role).where(Role.name == name))
        return result.unique().scalar_one_or_none()

    async def list_roles(self, db: AsyncSession, *, include_system: bool = True) -> list[Role]:
        query = select(Role).order_by(Role.is_system_role.desc(), Role.name)
        if not include_system:
            query = query.where(Role.is_system_role == False)  # noqa: E712
        result = await db.execute(query)
        return list(result.unique().scalars().all())


class PermissionRepository(CRUDBase[Permission, dict, dict]):
    async def get_by_name(self, db: AsyncSession, name: str) -> Optional[Permission]:
        result = await db.execute(select(Permission).where(Permission.name == name))
        return result.scalar_one_or_none()

    async def get_by_names(self, db: AsyncSession, names: Iterable[str]) -> list[Permission]:
        names = list(dict.fromkeys(names))
        if not names:
            return []
        result = await db.execute(select(Permission).where(Permission.name.in_(names)))
        return list(result.scalars().all())

    async def list_all(self, db: AsyncSession) -> list[Permission]:
        result = await db.execute(select(Permission).order_by(Permission.name))
        return list(result.scalars().all())


class RolePermissionRepository(CRUDBase[RolePermission, dict, dict]):
    @upstream_call("store.role_permissions")
    async def get_permission_names(self, db: AsyncSession, role_id: UUID) -> list[str]:
        result = await db.execute(
            select(Permission.name)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .where(RolePermission.role_id == role_id)
        )
        return list(result.scalars().all())

    async def list_for_role(self, db: AsyncSession, role_id: UUID) -> list[RolePermission]:
        result = await db.execute(select(RolePermission).where(RolePermission.role_id == role_id))
        return list(result.unique().scalars().all())

    async def get_pair(self, db: AsyncSession, role_id: UUID, permission_id: UUID) -> Optional[RolePermission]:
        result = await db.execute(
            select(RolePermission).where(
                RolePermission.role_id == role_id,
                RolePermission.permission_id == permission_id,
            )
        )
        return result.unique().scalar_one_or_none()

    async def add(self, db: AsyncSession, role_id: UUID, permission_id: UUID) -> RolePermission:
        return await self.create(db, obj_in={"role_id": role_id, "permission_id": permission_id})

    async def remove(self, db: AsyncSession, role_id: UUID, permission_id: UUID) -> int:
        result = await db.execute(
            delete(RolePermission).where(
                RolePermission.role_id == role_id,
                RolePermission.permission_id == permission_id,
            )
        )
        await db.flush()
        return result.rowcount or 0

    async def replace(self, db: AsyncSession, role_id: UUID, permission_ids: Iterable[UUID]) -> int:
        """Make the join rows of ``role_id`` exactly ``permission_ids``"""
        await db.execute(delete(RolePermission).where(RolePermission.role_id == role_id))
        ids = list(dict.fromkeys(permission_ids))
        db.add_all([RolePermission(role_id=role_id, permission_id=pid) for pid in ids])
        await db.flush()
        logger.info("Role permissions replaced", role_id=str(role_id), count=len(ids))
        return len(ids)


role_repository = RoleRepository(Role)
permission_repository = PermissionRepository(Permission)
role_permission_repository = RolePermissionRepository(RolePermission)
