"""
Context overlay.

Validates a requested tenant switch or impersonation for a resolved principal.
When the validated context differs from what the session already carries, it
returns the write as an explicit command instead of performing it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Forbidden, GuardStage
from app.core.principal import Principal, RequestContext
from app.core.rbac import IMPERSONATING_ROLES, SystemRole, UserStatus
from app.core.security import CredentialIssuer, IssuedToken, token_issuer
from app.core.upstream import UpstreamCaller
from app.repositories.customer import customer_repository
from app.repositories.customer_success_grant import customer_success_grant_repository
from app.repositories.user import user_repository

logger = structlog.get_logger()

CONTEXT_CLAIM_KEYS = ("customer_id", "impersonated_user_id")


def canonical_claims(principal: Principal, claims: Optional[dict]) -> dict:
    """Drop empty values and a tenant claim that only repeats the home tenant"""
    result = {}
    for key in CONTEXT_CLAIM_KEYS:
        value = (claims or {}).get(key)
        if value:
            result[key] = str(value)
    if principal.tenant_id is not None and result.get("customer_id") == str(principal.tenant_id):
        result.pop("customer_id")
    return result


class PersistContextCommand:
    """
    Persists context claims on the user record and asks the issuer for a
    credential that carries them. Runs at most once.
    """

    def __init__(self, *, principal: Principal, claims: dict, issuer: Optional[CredentialIssuer] = None):
        self.principal = principal
        self.claims = dict(claims)
        self._issuer = issuer or token_issuer
        self._executed = False

    @property
    def executed(self) -> bool:
        return self._executed

    async def execute(self, db: AsyncSession) -> IssuedToken:
        if self._executed:
            raise RuntimeError("Context command already executed")
        self._executed = True

        user = await user_repository.get(db, self.principal.user_id)
        if user is None:
            raise Forbidden("context_owner_missing", stage=GuardStage.CONTEXT)

        metadata = {k: v for k, v in (user.app_metadata or {}).items() if k not in CONTEXT_CLAIM_KEYS}
        metadata.update(self.claims)
        await user_repository.set_app_metadata(db, user=user, app_metadata=metadata)

        token = await UpstreamCaller("issuer").execute(
            self._issuer.issue,
            subject=user.auth_user_id,
            email=user.email,
            app_metadata=metadata,
        )
        logger.info("Session context persisted", user_id=str(user.id), claims=sorted(self.claims))
        return token


@dataclass(frozen=True)
class ContextResolution:
    context: RequestContext
    command: Optional[PersistContextCommand] = None


def _parse_uuid(value, reason: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise Forbidden(reason, stage=GuardStage.CONTEXT)


class ContextOverlay:
    def _deny(self, principal: Principal, reason: str, **fields) -> None:
        logger.warning(
            "Context denied",
            stage=GuardStage.CONTEXT.value,
            reason=reason,
            user_id=str(principal.user_id),
            role=principal.role_name,
            **fields,
        )
        raise Forbidden(reason, stage=GuardStage.CONTEXT)

    async def _check_tenant(self, db: AsyncSession, principal: Principal, tenant_id: UUID) -> None:
        if principal.is_system_administrator:
            if not await customer_repository.exists(db, tenant_id):
                self._deny(principal, "tenant_not_found", tenant_id=str(tenant_id))
            return
        if tenant_id != principal.tenant_id:
            self._deny(principal, "tenant_switch_not_allowed", tenant_id=str(tenant_id))

    async def _load_impersonation_target(self, db: AsyncSession, principal: Principal, target_id: UUID) -> Principal:
        if principal.role_name not in IMPERSONATING_ROLES:
            self._deny(principal, "impersonation_not_allowed")
        if target_id == principal.user_id:
            self._deny(principal, "self_impersonation")

        target = await user_repository.get(db, target_id, include_deleted=True)
        if target is None or target.is_effectively_deleted:
            self._deny(principal, "impersonation_target_missing", target_id=str(target_id))
        if target.status != UserStatus.ACTIVE.value:
            self._deny(principal, "impersonation_target_inactive", target_id=str(target_id))
        if target.role_name == SystemRole.SYSTEM_ADMINISTRATOR.value:
            self._deny(principal, "impersonation_target_admin", target_id=str(target_id))

        if not principal.is_system_administrator:
            granted = target.customer_id is not None and await customer_success_grant_repository.grant_exists(
                db, user_id=principal.user_id, customer_id=target.customer_id
            )
            if not granted:
                self._deny(
                    principal,
                    "no_ownership_grant",
                    target_id=str(target_id),
                    tenant_id=str(target.customer_id) if target.customer_id else None,
                )

        return Principal.from_user(target)

    async def apply_context(
        self,
        db: AsyncSession,
        principal: Principal,
        requested_tenant_id=None,
        requested_impersonation_id=None,
        *,
        current_claims: Optional[dict] = None,
        issuer: Optional[CredentialIssuer] = None,
    ) -> ContextResolution:
        """
        Overlay the requested context onto ``principal``.

        ``current_claims`` are the claims the session already carries; a
        command is returned only when the validated context differs from them.
        """
        context = RequestContext.for_principal(principal)

        if requested_tenant_id is not None:
            tenant_id = _parse_uuid(requested_tenant_id, "invalid_tenant_id")
            await self._check_tenant(db, principal, tenant_id)
            context = RequestContext(principal=principal, effective_tenant_id=tenant_id, effective_user=principal)

        if requested_impersonation_id is not None:
            target_id = _parse_uuid(requested_impersonation_id, "invalid_impersonation_id")
            target = await self._load_impersonation_target(db, principal, target_id)
            if requested_tenant_id is not None and context.effective_tenant_id != target.tenant_id:
                self._deny(principal, "tenant_impersonation_mismatch", target_id=str(target_id))
            context = RequestContext(
                principal=principal,
                effective_tenant_id=target.tenant_id,
                impersonated_user_id=target.user_id,
                effective_user=target,
            )
            logger.info("Impersonation context applied", target_role=target.role_name, **context.log_fields())

        desired = context.persisted_claims()
        command = None
        if desired != canonical_claims(principal, current_claims):
            command = PersistContextCommand(principal=principal, claims=desired, issuer=issuer)

        return ContextResolution(context=context, command=command)

    def clear_context(
        self,
        principal: Principal,
        *,
        issuer: Optional[CredentialIssuer] = None,
    ) -> ContextResolution:
        """Back to the principal's own tenant and identity"""
        return ContextResolution(
            context=RequestContext.for_principal(principal),
            command=PersistContextCommand(principal=principal, claims={}, issuer=issuer),
        )


context_overlay = ContextOverlay()
