"""
Authentication Endpoints
Current principal, session context and invitation acceptance
"""

from fastapi import APIRouter, Depends
import structlog

from app.core.deps import ContextChange, get_context_change, get_context_clear, get_invitation_principal, require_access
from app.core.principal import AuthorizedRequest, Principal
from app.schemas.auth import ContextChangeResponse, ContextRead, MeResponse, PrincipalRead, TokenResponse

logger = structlog.get_logger()
router = APIRouter()


def _context_response(change: ContextChange) -> ContextChangeResponse:
    return ContextChangeResponse(
        context=ContextRead.from_context(change.context),
        token=TokenResponse.from_issued(change.token) if change.token else None,
    )


@router.get("/me", response_model=MeResponse)
async def read_me(request: AuthorizedRequest = Depends(require_access())) -> MeResponse:
    """Resolved principal and the context this session acts in"""
    context = request.context
    return MeResponse(
        principal=PrincipalRead.from_principal(request.principal),
        context=ContextRead.from_context(context),
        effective_user=PrincipalRead.from_principal(context.effective_user) if context.is_impersonating else None,
    )


@router.post("/context", response_model=ContextChangeResponse)
async def change_context(change: ContextChange = Depends(get_context_change)) -> ContextChangeResponse:
    """
    Switch tenant and/or start impersonating.

    The new context is stored on the session before this returns; callers
    must use the returned token for subsequent requests.
    """
    logger.info("Context changed", refreshed=change.token is not None, **change.context.log_fields())
    return _context_response(change)


@router.delete("/context", response_model=ContextChangeResponse)
async def clear_context(change: ContextChange = Depends(get_context_clear)) -> ContextChangeResponse:
    """Return to the caller's own tenant and identity"""
    logger.info("Context cleared", **change.context.log_fields())
    return _context_response(change)


@router.post("/accept-invitation", response_model=PrincipalRead)
async def accept_invitation(principal: Principal = Depends(get_invitation_principal)) -> PrincipalRead:
    return PrincipalRead.from_principal(principal)
