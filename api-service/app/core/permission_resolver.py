"""
Permission evaluation.

Roles store permissions in one of two shapes: the legacy inline JSONB list on
``roles.permissions`` or rows in ``role_permissions``. Both are read into a
tagged union and normalized by one function, so a grant means the same thing
whichever shape holds it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Union

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import RolePermissionCache, role_permission_cache
from app.core.errors import Forbidden, GuardStage
from app.core.principal import RequestContext
from app.core.rbac import WILDCARD_PERMISSION
from app.repositories.role import role_permission_repository, role_repository

logger = structlog.get_logger()


@dataclass(frozen=True)
class InlinePermissions:
    names: tuple[str, ...] = ()


@dataclass(frozen=True)
class JoinedPermissions:
    names: tuple[str, ...] = ()


PermissionSource = Union[InlinePermissions, JoinedPermissions]


def normalize_permissions(source: PermissionSource) -> frozenset[str]:
    """Canonical permission set for either representation"""
    if isinstance(source, (InlinePermissions, JoinedPermissions)):
        names: Iterable = source.names
    else:
        raise TypeError(f"Unsupported permission source: {type(source).__name__}")
    return frozenset(name.strip() for name in names if isinstance(name, str) and name.strip())


def grants_any(permissions: frozenset[str], required: Iterable[str]) -> bool:
    if WILDCARD_PERMISSION in permissions:
        return True
    return not permissions.isdisjoint(required)


class PermissionResolver(ABC):
    @abstractmethod
    async def load_source(self, db: AsyncSession, role) -> PermissionSource:
        raise NotImplementedError


class DBPermissionResolver(PermissionResolver):
    """Join rows are authoritative; the inline list is read only when a role has none"""

    async def load_source(self, db: AsyncSession, role) -> PermissionSource:
        joined = await role_permission_repository.get_permission_names(db, role.id)
        if joined:
            return JoinedPermissions(tuple(joined))
        inline = role.permissions if isinstance(role.permissions, list) else []
        return InlinePermissions(tuple(inline))


class PermissionEvaluator:
    def __init__(
        self,
        resolver: Optional[PermissionResolver] = None,
        cache: Optional[RolePermissionCache] = None,
    ) -> None:
        self._resolver = resolver or DBPermissionResolver()
        self._cache = cache if cache is not None else role_permission_cache

    async def permissions_for_role(self, db: AsyncSession, role_id) -> frozenset[str]:
        if role_id is None:
            return frozenset()

        cached = await self._cache.get(role_id)
        if cached is not None:
            return cached

        role = await role_repository.get(db, role_id)
        if role is None:
            logger.warning("Effective role not found", role_id=str(role_id))
            return frozenset()

        permissions = normalize_permissions(await self._resolver.load_source(db, role))
        await self._cache.set(role_id, permissions)
        return permissions

    async def authorize(
        self,
        db: AsyncSession,
        context: RequestContext,
        *,
        any_system_role: Optional[Sequence[str]] = None,
        any_permission: Optional[Sequence[str]] = None,
    ) -> None:
        """
        Allow or raise ``Forbidden``.

        The role gate and the permission gate are independent; when both are
        given, both must pass.
        """
        role_name = context.effective_role_name

        if any_system_role and role_name not in set(any_system_role):
            self._deny(context, "role_not_allowed", required_roles=list(any_system_role))

        if any_permission:
            permissions = await self.permissions_for_role(db, context.effective_role_id)
            if not grants_any(permissions, any_permission):
                self._deny(context, "permission_missing", required_permissions=list(any_permission))

        logger.debug("Authorization passed", role=role_name, **context.log_fields())

    @staticmethod
    def _deny(context: RequestContext, reason: str, **required) -> None:
        logger.warning(
            "Authorization denied",
            stage=GuardStage.PERMISSION.value,
            reason=reason,
            role=context.effective_role_name,
            **required,
            **context.log_fields(),
        )
        raise Forbidden(reason, stage=GuardStage.PERMISSION)


permission_evaluator = PermissionEvaluator()
