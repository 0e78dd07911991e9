"""
FastAPI Dependencies
Guard chain: credential -> principal -> context -> permission -> handler
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.database import get_db
from app.core.errors import AccessError, GuardStage
from app.core.logging import bind_request_context
from app.core.permission_resolver import PermissionEvaluator, permission_evaluator
from app.core.principal import AuthorizedRequest, Principal, RequestContext
from app.core.security import IssuedToken
from app.core.token_validator import VerifiedClaims, verify
from app.schemas.auth import ContextChangeRequest
from app.services.context_overlay import ContextResolution, context_overlay
from app.services.principal_resolver import principal_resolver

logger = structlog.get_logger()

# Security scheme; a missing header reaches verify() as None and becomes 401
security = HTTPBearer(auto_error=False)


def _raw_credential(credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    return credentials.credentials if credentials else None


def _session_claims(claims: VerifiedClaims) -> dict:
    return {"customer_id": claims.tenant_hint, "impersonated_user_id": claims.impersonation_hint}


def _log_denial(exc: AccessError, stage: GuardStage, principal: Optional[Principal]) -> None:
    logger.warning(
        "Request denied",
        stage=stage.value,
        kind=exc.kind,
        reason=exc.reason,
        status_code=exc.status_code,
        user_id=str(principal.user_id) if principal else None,
    )


async def run_guard_chain(
    db: AsyncSession,
    raw_credential: Optional[str],
    *,
    any_system_role: Optional[Sequence[str]] = None,
    any_permission: Optional[Sequence[str]] = None,
    mask_not_found: Optional[bool] = None,
    evaluator: Optional[PermissionEvaluator] = None,
) -> AuthorizedRequest:
    """
    Run every guard stage in its fixed order.

    The first failing stage ends the request; there is no partial
    authorization. Context is rebuilt from the claims the session carries and
    re-validated each time, so a revoked grant stops working on the next call.
    """
    stage = GuardStage.CREDENTIAL
    principal = None
    try:
        claims = verify(raw_credential)

        stage = GuardStage.PRINCIPAL
        principal = await principal_resolver.resolve(
            db, claims.subject, claims.email, mask_not_found=mask_not_found
        )
        bind_request_context(user_id=str(principal.user_id))

        stage = GuardStage.CONTEXT
        resolution = await context_overlay.apply_context(
            db,
            principal,
            claims.tenant_hint,
            claims.impersonation_hint,
            current_claims=_session_claims(claims),
        )
        context = resolution.context
        if context.is_impersonating:
            bind_request_context(impersonated_user_id=str(context.impersonated_user_id))

        stage = GuardStage.PERMISSION
        await (evaluator or permission_evaluator).authorize(
            db, context, any_system_role=any_system_role, any_permission=any_permission
        )
    except AccessError as exc:
        _log_denial(exc, stage, principal)
        raise

    return AuthorizedRequest(principal=principal, context=context)


def require_access(
    *,
    any_system_role: Optional[Sequence[str]] = None,
    any_permission: Optional[Sequence[str]] = None,
    mask_not_found: Optional[bool] = None,
):
    """
    Dependency factory for guarded endpoints

    Args:
        any_system_role: Effective role must be one of these
        any_permission: Effective permissions must include one of these
        mask_not_found: Answer unknown or deleted users with 404 instead of 401
    """
    roles = tuple(any_system_role) if any_system_role else None
    permissions = tuple(any_permission) if any_permission else None

    async def access_guard(
        db: AsyncSession = Depends(get_db),
        credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    ) -> AuthorizedRequest:
        return await run_guard_chain(
            db,
            _raw_credential(credentials),
            any_system_role=roles,
            any_permission=permissions,
            mask_not_found=mask_not_found,
        )

    return access_guard


async def _authenticate(db: AsyncSession, raw_credential: Optional[str], *, accepting_invitation: bool = False):
    stage = GuardStage.CREDENTIAL
    principal = None
    try:
        claims = verify(raw_credential)
        stage = GuardStage.PRINCIPAL
        principal = await principal_resolver.resolve(
            db, claims.subject, claims.email, accepting_invitation=accepting_invitation
        )
    except AccessError as exc:
        _log_denial(exc, stage, principal)
        raise
    bind_request_context(user_id=str(principal.user_id))
    return claims, principal


async def get_invitation_principal(
    db: AsyncSession = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
) -> Principal:
    """Principal resolution that lets a pending invitation become active"""
    _, principal = await _authenticate(db, _raw_credential(credentials), accepting_invitation=True)
    return principal


@dataclass(frozen=True)
class ContextChange:
    context: RequestContext
    token: Optional[IssuedToken] = None


async def _execute(db: AsyncSession, resolution: ContextResolution) -> ContextChange:
    token = None
    if resolution.command is not None:
        token = await resolution.command.execute(db)
        # Persisted before the response leaves, so the refreshed token is never ahead of the store
        await db.commit()
    return ContextChange(context=resolution.context, token=token)


async def get_context_change(
    body: ContextChangeRequest,
    db: AsyncSession = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
) -> ContextChange:
    """Validate a requested tenant switch or impersonation and persist it on the session"""
    claims, principal = await _authenticate(db, _raw_credential(credentials))
    try:
        resolution = await context_overlay.apply_context(
            db,
            principal,
            body.customer_id,
            body.impersonated_user_id,
            current_claims=_session_claims(claims),
        )
    except AccessError as exc:
        _log_denial(exc, GuardStage.CONTEXT, principal)
        raise
    return await _execute(db, resolution)


async def get_context_clear(
    db: AsyncSession = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
) -> ContextChange:
    _, principal = await _authenticate(db, _raw_credential(credentials))
    return await _execute(db, context_overlay.clear_context(principal))
