"""
Authorization error taxonomy.

Every failure raised by the guard chain is an HTTPException subclass so FastAPI
renders it without extra handlers. The client only ever sees the generic
``detail``; ``reason`` and ``stage`` are for logs.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from fastapi import HTTPException, status


class GuardStage(str, Enum):
    CREDENTIAL = "credential"
    PRINCIPAL = "principal"
    CONTEXT = "context"
    PERMISSION = "permission"
    HANDLER = "handler"


class AccessError(HTTPException):
    """Base class for terminal request denials"""

    kind: str = "access_error"
    status_code_default: int = status.HTTP_403_FORBIDDEN
    public_detail: str = "Forbidden"

    def __init__(
        self,
        reason: str = "",
        *,
        stage: GuardStage = GuardStage.HANDLER,
        status_code: Optional[int] = None,
        headers: Optional[dict] = None,
    ):
        code = status_code or self.status_code_default
        super().__init__(status_code=code, detail=self._detail_for(code), headers=headers)
        self.reason = reason or self.kind
        self.stage = stage

    def _detail_for(self, code: int) -> str:
        return self.public_detail

    def log_fields(self) -> dict:
        return {"kind": self.kind, "stage": self.stage.value, "reason": self.reason, "status_code": self.status_code}


class Unauthenticated(AccessError):
    kind = "unauthenticated"
    status_code_default = status.HTTP_401_UNAUTHORIZED
    public_detail = "Not authenticated"

    def __init__(self, reason: str = "", *, stage: GuardStage = GuardStage.CREDENTIAL):
        super().__init__(reason, stage=stage, headers={"WWW-Authenticate": "Bearer"})


class PrincipalResolutionError(AccessError):
    """User lookup failures; 401 by default, 404 where the endpoint masks existence"""

    kind = "principal_resolution"
    status_code_default = status.HTTP_401_UNAUTHORIZED
    public_detail = "Not authenticated"

    def __init__(self, reason: str = "", *, mask_as_not_found: bool = False):
        super().__init__(
            reason,
            stage=GuardStage.PRINCIPAL,
            status_code=status.HTTP_404_NOT_FOUND if mask_as_not_found else None,
            headers=None if mask_as_not_found else {"WWW-Authenticate": "Bearer"},
        )

    def _detail_for(self, code: int) -> str:
        return "Not found" if code == status.HTTP_404_NOT_FOUND else self.public_detail


class UserNotFound(PrincipalResolutionError):
    kind = "user_not_found"


class UserDeleted(PrincipalResolutionError):
    kind = "user_deleted"


class UserInactive(PrincipalResolutionError):
    kind = "user_inactive"

    def __init__(self, reason: str = ""):
        # inactive accounts are known; masking does not apply
        super().__init__(reason, mask_as_not_found=False)


class Forbidden(AccessError):
    kind = "forbidden"
    status_code_default = status.HTTP_403_FORBIDDEN
    public_detail = "Forbidden"


class UpstreamUnavailable(AccessError):
    kind = "upstream_unavailable"
    status_code_default = status.HTTP_503_SERVICE_UNAVAILABLE
    public_detail = "Service unavailable"
