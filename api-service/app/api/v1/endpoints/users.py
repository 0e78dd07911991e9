"""User endpoints, scoped to the effective tenant."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import require_access
from app.core.principal import AuthorizedRequest
from app.schemas.base import PaginatedResponse
from app.services.user import user_service

router = APIRouter()


@router.get("/", response_model=PaginatedResponse)
async def list_users(
    status: str | None = Query(default=None, pattern="^(active|inactive|invited|suspended)$"),
    customer_id: UUID | None = Query(default=None, description="System administrators only"),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
    request: AuthorizedRequest = Depends(require_access(any_permission=["UserManagement:viewUsers"])),
    db: AsyncSession = Depends(get_db),
) -> Any:
    items, total = await user_service.list_users(
        db, request, skip=skip, limit=limit, status=status, customer_id=customer_id
    )
    return PaginatedResponse.create(items=items, total=total, skip=skip, limit=limit)
