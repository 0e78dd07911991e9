"""
Customer Success Grant Endpoints
Which tenants each customer-success user may act in
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import require_access
from app.core.principal import AuthorizedRequest
from app.core.rbac import SystemRole
from app.schemas.customer_success_grant import GrantCreateRequest, GrantRead
from app.services.customer_success_grants import customer_success_grant_service

router = APIRouter()

admin_only = require_access(any_system_role=[SystemRole.SYSTEM_ADMINISTRATOR.value])
admin_or_cs = require_access(
    any_system_role=[SystemRole.SYSTEM_ADMINISTRATOR.value, SystemRole.CUSTOMER_SUCCESS.value]
)


@router.get("/", response_model=list[GrantRead])
async def list_grants(
    user_id: Optional[UUID] = Query(default=None),
    customer_id: Optional[UUID] = Query(default=None),
    request: AuthorizedRequest = Depends(admin_or_cs),
    db: AsyncSession = Depends(get_db),
) -> list[GrantRead]:
    """System administrators see every grant; customer success sees only their own"""
    if not request.context.acting_user.is_system_administrator:
        user_id = request.context.acting_user_id
    return await customer_success_grant_service.list_grants(db, user_id=user_id, customer_id=customer_id)


@router.post("/", response_model=GrantRead, status_code=status.HTTP_201_CREATED)
async def create_grant(
    data: GrantCreateRequest,
    _: AuthorizedRequest = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
) -> GrantRead:
    return await customer_success_grant_service.create_grant(db, data)


@router.delete("/{grant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_grant(
    grant_id: UUID,
    _: AuthorizedRequest = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
) -> None:
    await customer_success_grant_service.revoke_grant(db, grant_id)
