"""
Request-scoped identity types.

Built once per request by the guard chain and passed to handlers explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from app.core.rbac import SystemRole


@dataclass(frozen=True)
class Principal:
    user_id: UUID
    email: str
    status: str
    tenant_id: Optional[UUID] = None
    role_id: Optional[UUID] = None
    role_name: Optional[str] = None
    auth_subject: Optional[str] = None

    @classmethod
    def from_user(cls, user) -> "Principal":
        return cls(
            user_id=user.id,
            email=user.email,
            status=user.status,
            tenant_id=user.customer_id,
            role_id=user.role_id,
            role_name=user.role_name,
            auth_subject=user.auth_user_id,
        )

    @property
    def is_system_administrator(self) -> bool:
        return self.role_name == SystemRole.SYSTEM_ADMINISTRATOR.value

    @property
    def is_customer_success(self) -> bool:
        return self.role_name == SystemRole.CUSTOMER_SUCCESS.value


@dataclass(frozen=True)
class RequestContext:
    """
    Effective identity for one request.

    ``principal`` is always the authenticated caller and is what audit logs
    record. ``effective_user`` is the impersonation target while
    impersonating, otherwise the caller; permission checks and tenant scoping
    read from it.
    """

    principal: Principal
    effective_tenant_id: Optional[UUID] = None
    impersonated_user_id: Optional[UUID] = None
    effective_user: Optional[Principal] = None

    @classmethod
    def for_principal(cls, principal: Principal) -> "RequestContext":
        return cls(principal=principal, effective_tenant_id=principal.tenant_id, effective_user=principal)

    @property
    def is_impersonating(self) -> bool:
        return self.impersonated_user_id is not None

    @property
    def acting_user(self) -> Principal:
        return self.effective_user or self.principal

    @property
    def acting_user_id(self) -> UUID:
        return self.acting_user.user_id

    @property
    def effective_role_id(self) -> Optional[UUID]:
        return self.acting_user.role_id

    @property
    def effective_role_name(self) -> Optional[str]:
        return self.acting_user.role_name

    def log_fields(self) -> dict:
        fields = {"user_id": str(self.principal.user_id)}
        if self.effective_tenant_id is not None:
            fields["tenant_id"] = str(self.effective_tenant_id)
        if self.is_impersonating:
            fields["impersonated_user_id"] = str(self.impersonated_user_id)
        return fields

    def persisted_claims(self) -> dict:
        """The ``app_metadata`` claims that reproduce this context"""
        claims = {}
        if self.effective_tenant_id is not None and self.effective_tenant_id != self.principal.tenant_id:
            claims["customer_id"] = str(self.effective_tenant_id)
        if self.impersonated_user_id is not None:
            claims["impersonated_user_id"] = str(self.impersonated_user_id)
        return claims


@dataclass(frozen=True)
class AuthorizedRequest:
    """Handed to handlers once every guard stage has passed"""

    principal: Principal
    context: RequestContext

    @property
    def tenant_id(self) -> Optional[UUID]:
        return self.context.effective_tenant_id
