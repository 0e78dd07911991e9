"""
User Service
Tenant-scoped user queries.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.principal import AuthorizedRequest
from app.models.user import User
from app.repositories.user import user_repository
from app.schemas.user import UserListItem

logger = structlog.get_logger()


def scoped_tenant_id(request: AuthorizedRequest, requested_tenant_id: Optional[UUID] = None, *, allow_cross_tenant: bool = False) -> Optional[UUID]:
    """
    Tenant a query runs against.

    Always the effective tenant, except for a system administrator on an
    endpoint that allows cross-tenant reads, who may name any tenant. With
    no tenant of their own and none named, that administrator reads across
    every tenant.
    """
    if allow_cross_tenant and request.context.acting_user.is_system_administrator:
        return requested_tenant_id if requested_tenant_id is not None else request.tenant_id
    return request.tenant_id


class UserService:
    def _to_list_item(self, user: User) -> UserListItem:
        return UserListItem(
            id=user.id,
            created_at=user.created_at,
            updated_at=user.updated_at,
            email=user.email,
            full_name=user.full_name,
            status=user.status,
            customer_id=user.customer_id,
            role_id=user.role_id,
            role_name=user.role_name,
            last_login_at=user.last_login_at,
        )

    async def list_users(
        self,
        db: AsyncSession,
        request: AuthorizedRequest,
        *,
        skip: int,
        limit: int,
        status: Optional[str] = None,
        customer_id: Optional[UUID] = None,
    ) -> tuple[list[UserListItem], int]:
        tenant_id = scoped_tenant_id(request, customer_id, allow_cross_tenant=True)
        if tenant_id is None and not request.context.acting_user.is_system_administrator:
            # A principal with no tenant sees nothing rather than everything
            return [], 0

        users, total = await user_repository.list_for_tenant(
            db, customer_id=tenant_id, skip=skip, limit=limit, status=status
        )
        logger.debug("Users listed", tenant_id=str(tenant_id) if tenant_id else None, count=len(users))
        return [self._to_list_item(user) for user in users], total


user_service = UserService()
