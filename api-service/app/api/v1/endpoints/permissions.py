"""Permission catalog endpoint."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import require_access
from app.core.principal import AuthorizedRequest
from app.repositories.role import permission_repository
from app.schemas.role import PermissionRead

router = APIRouter()


@router.get("/", response_model=list[PermissionRead])
async def list_permissions(
    _: AuthorizedRequest = Depends(require_access(any_permission=["RoleManagement:viewRoles"])),
    db: AsyncSession = Depends(get_db),
) -> list[PermissionRead]:
    permissions = await permission_repository.list_all(db)
    return [PermissionRead.model_validate(permission) for permission in permissions]
