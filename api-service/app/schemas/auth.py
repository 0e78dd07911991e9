"""
Authentication Schemas
Principal, session context and token responses
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.principal import Principal, RequestContext
from app.core.security import IssuedToken
from app.schemas.base import BaseSchema


class PrincipalRead(BaseSchema):
    user_id: UUID
    email: str
    status: str
    tenant_id: Optional[UUID] = None
    role_id: Optional[UUID] = None
    role_name: Optional[str] = None
    is_system_administrator: bool = False
    is_customer_success: bool = False

    @classmethod
    def from_principal(cls, principal: Principal) -> "PrincipalRead":
        return cls(
            user_id=principal.user_id,
            email=principal.email,
            status=principal.status,
            tenant_id=principal.tenant_id,
            role_id=principal.role_id,
            role_name=principal.role_name,
            is_system_administrator=principal.is_system_administrator,
            is_customer_success=principal.is_customer_success,
        )


class ContextRead(BaseSchema):
    effective_tenant_id: Optional[UUID] = None
    impersonated_user_id: Optional[UUID] = None
    effective_role_name: Optional[str] = None
    is_impersonating: bool = False

    @classmethod
    def from_context(cls, context: RequestContext) -> "ContextRead":
        return cls(
            effective_tenant_id=context.effective_tenant_id,
            impersonated_user_id=context.impersonated_user_id,
            effective_role_name=context.effective_role_name,
            is_impersonating=context.is_impersonating,
        )


class MeResponse(BaseSchema):
    principal: PrincipalRead
    context: ContextRead
    effective_user: Optional[PrincipalRead] = None


class ContextChangeRequest(BaseSchema):
    """Tenant switch and/or impersonation request"""
    customer_id: Optional[UUID] = Field(None, description="Tenant to switch into")
    impersonated_user_id: Optional[UUID] = Field(None, description="User to act as")


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int

    @classmethod
    def from_issued(cls, token: IssuedToken) -> "TokenResponse":
        return cls(access_token=token.access_token, token_type=token.token_type, expires_in=token.expires_in)


class ContextChangeResponse(BaseModel):
    context: ContextRead
    token: Optional[TokenResponse] = Field(None, description="Refreshed credential; absent when nothing changed")
