"""
Role Endpoints
Role CRUD, permission sets and the role_permissions join
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import require_access
from app.core.principal import AuthorizedRequest
from app.schemas.role import (
    RoleCreateRequest,
    RolePermissionAddRequest,
    RolePermissionRead,
    RolePermissionsByNameRequest,
    RolePermissionSetRequest,
    RolePermissionSyncResult,
    RoleRead,
    RoleUpdateRequest,
)
from app.services.role import role_service
from app.services.role_permission import role_permission_service

router = APIRouter()

can_view = require_access(any_permission=["RoleManagement:viewRoles"])
can_create = require_access(any_permission=["RoleManagement:createRoles"])
can_edit = require_access(any_permission=["RoleManagement:editRoles"])
can_delete = require_access(any_permission=["RoleManagement:deleteRoles"])


@router.get("/", response_model=list[RoleRead])
async def list_roles(
    _: AuthorizedRequest = Depends(can_view),
    db: AsyncSession = Depends(get_db),
) -> list[RoleRead]:
    return await role_service.list_roles(db)


@router.post("/", response_model=RoleRead, status_code=status.HTTP_201_CREATED)
async def create_role(
    data: RoleCreateRequest,
    _: AuthorizedRequest = Depends(can_create),
    db: AsyncSession = Depends(get_db),
) -> RoleRead:
    return await role_service.create_role(db, data)


@router.get("/{role_id}", response_model=RoleRead)
async def get_role(
    role_id: UUID,
    _: AuthorizedRequest = Depends(can_view),
    db: AsyncSession = Depends(get_db),
) -> RoleRead:
    return await role_service.get_role(db, role_id)


@router.patch("/{role_id}", response_model=RoleRead)
async def update_role(
    role_id: UUID,
    data: RoleUpdateRequest,
    _: AuthorizedRequest = Depends(can_edit),
    db: AsyncSession = Depends(get_db),
) -> RoleRead:
    return await role_service.update_role(db, role_id, data)


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: UUID,
    _: AuthorizedRequest = Depends(can_delete),
    db: AsyncSession = Depends(get_db),
) -> None:
    await role_service.delete_role(db, role_id)


@router.put("/{role_id}/permissions", response_model=RoleRead)
async def update_role_permissions_by_name(
    role_id: UUID,
    data: RolePermissionsByNameRequest,
    _: AuthorizedRequest = Depends(can_edit),
    db: AsyncSession = Depends(get_db),
) -> RoleRead:
    return await role_service.update_permissions_by_name(db, role_id, data.permission_names)


@router.get("/{role_id}/role-permissions", response_model=list[RolePermissionRead])
async def list_role_permissions(
    role_id: UUID,
    _: AuthorizedRequest = Depends(can_view),
    db: AsyncSession = Depends(get_db),
) -> list[RolePermissionRead]:
    return await role_permission_service.list_for_role(db, role_id)


@router.post("/{role_id}/role-permissions", response_model=RolePermissionRead, status_code=status.HTTP_201_CREATED)
async def add_role_permission(
    role_id: UUID,
    data: RolePermissionAddRequest,
    _: AuthorizedRequest = Depends(can_edit),
    db: AsyncSession = Depends(get_db),
) -> RolePermissionRead:
    return await role_permission_service.add(db, role_id, data.permission_id)


@router.put("/{role_id}/role-permissions", response_model=list[RolePermissionRead])
async def set_role_permissions(
    role_id: UUID,
    data: RolePermissionSetRequest,
    _: AuthorizedRequest = Depends(can_edit),
    db: AsyncSession = Depends(get_db),
) -> list[RolePermissionRead]:
    return await role_permission_service.set_permissions(db, role_id, data.permission_ids)


@router.delete("/{role_id}/role-permissions/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_role_permission(
    role_id: UUID,
    permission_id: UUID,
    _: AuthorizedRequest = Depends(can_edit),
    db: AsyncSession = Depends(get_db),
) -> None:
    await role_permission_service.remove(db, role_id, permission_id)


@router.post("/{role_id}/role-permissions/sync", response_model=RolePermissionSyncResult)
async def sync_role_permissions(
    role_id: UUID,
    _: AuthorizedRequest = Depends(can_edit),
    db: AsyncSession = Depends(get_db),
) -> RolePermissionSyncResult:
    """Move the legacy inline permission list into the join table"""
    return await role_permission_service.sync_from_inline(db, role_id)
