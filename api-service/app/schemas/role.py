"""
Role and Permission Schemas
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import Field, field_validator

from app.schemas.base import BaseResponseSchema, BaseSchema, validate_non_empty_string


class PermissionRead(BaseResponseSchema):
    name: str
    display_name: Optional[str] = None
    description: Optional[str] = None


class RoleRead(BaseResponseSchema):
    name: str
    display_name: str
    description: Optional[str] = None
    is_system_role: bool
    permissions: list[str] = Field(default_factory=list, description="Effective permission names")
    permission_source: str = Field("inline", description="inline or joined")
    user_count: Optional[int] = None


class RoleCreateRequest(BaseSchema):
    name: str = Field(..., min_length=2, max_length=100, pattern=r"^[a-z][a-z0-9_]*$")
    display_name: str = Field(..., min_length=2, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    permission_names: list[str] = Field(default_factory=list)

    @field_validator("display_name")
    @classmethod
    def validate_display_name(cls, v):
        return validate_non_empty_string(v)


class RoleUpdateRequest(BaseSchema):
    name: Optional[str] = Field(None, min_length=2, max_length=100, pattern=r"^[a-z][a-z0-9_]*$")
    display_name: Optional[str] = Field(None, min_length=2, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)


class RolePermissionsByNameRequest(BaseSchema):
    permission_names: list[str] = Field(..., description="Full replacement set")

    @field_validator("permission_names")
    @classmethod
    def dedupe(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(name.strip() for name in v if name and name.strip()))


class RolePermissionAddRequest(BaseSchema):
    permission_id: UUID


class RolePermissionSetRequest(BaseSchema):
    permission_ids: list[UUID] = Field(default_factory=list)


class RolePermissionRead(BaseSchema):
    role_id: UUID
    permission_id: UUID
    permission_name: Optional[str] = None


class RolePermissionSyncResult(BaseSchema):
    role_id: UUID
    migrated: list[str] = Field(default_factory=list)
    already_present: list[str] = Field(default_factory=list)
