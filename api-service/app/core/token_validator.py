"""
Credential verification.

The local strategy verifies HS256 access tokens against every currently valid
signing key so keys can be rotated without logging users out. The issuer-aware
router keeps the seam for external identity providers.
"""

from __future__ import annotations

import base64
import binascii
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional, Sequence

from fastapi import HTTPException, status
from joserfc import jwt as jose_jwt
from joserfc.errors import BadSignatureError, JoseError
from joserfc.jwk import OctKey
from joserfc.jwt import JWTClaimsRegistry
import structlog

from app.core.config import settings
from app.core.errors import Unauthenticated

logger = structlog.get_logger()

_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass(frozen=True)
class VerifiedClaims:
    subject: str
    issuer: str
    email: Optional[str] = None
    tenant_hint: Optional[str] = None
    impersonation_hint: Optional[str] = None
    claims: dict = field(default_factory=dict, compare=False)


def is_canonical_segment(segment: str) -> bool:
    """True when ``segment`` is the unique unpadded base64url text of its bytes"""
    if not _SEGMENT_RE.match(segment) or len(segment) % 4 == 1:
        return False
    try:
        decoded = base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))
    except (binascii.Error, ValueError):
        return False
    return base64.urlsafe_b64encode(decoded).rstrip(b"=").decode("ascii") == segment


def claims_from_payload(payload: dict, issuer: str) -> VerifiedClaims:
    metadata = payload.get("app_metadata") or {}
    if not isinstance(metadata, dict):
        metadata = {}
    return VerifiedClaims(
        subject=str(payload["sub"]),
        issuer=issuer,
        email=payload.get("email"),
        tenant_hint=metadata.get("customer_id") or None,
        impersonation_hint=metadata.get("impersonated_user_id") or None,
        claims=dict(payload),
    )


class TokenValidationStrategy(ABC):
    @abstractmethod
    def validate(self, token: str, token_type: str = "access") -> VerifiedClaims:
        raise NotImplementedError


class LocalJWTValidationStrategy(TokenValidationStrategy):
    """HS256 tokens issued by this service, verified against a key ring"""

    def __init__(
        self,
        secret_keys: Sequence[str],
        algorithm: str,
        issuer: str,
        *,
        trusted_issuers: Sequence[str] = (),
        audience: Optional[str] = None,
    ) -> None:
        if not secret_keys:
            raise ValueError("At least one signing key is required")
        self._keys = [OctKey.import_key(secret) for secret in secret_keys]
        self._algorithm = algorithm
        self._issuer = issuer
        self._trusted_issuers = list(trusted_issuers) or [issuer]
        self._audience = audience

    def _claims_registry(self) -> JWTClaimsRegistry:
        options = {
            "sub": {"essential": True},
            "exp": {"essential": True},
            "iss": {"essential": True, "values": self._trusted_issuers},
        }
        if self._audience:
            options["aud"] = {"essential": True, "value": self._audience}
        return JWTClaimsRegistry(**options)

    def _decode(self, token: str):
        last_error: Optional[JoseError] = None
        for key in self._keys:
            try:
                return jose_jwt.decode(token, key, algorithms=[self._algorithm])
            except BadSignatureError as exc:
                last_error = exc
        raise last_error or BadSignatureError()

    def validate(self, token: str, token_type: str = "access") -> VerifiedClaims:
        segments = token.split(".") if token else []
        if len(segments) != 3 or not all(is_canonical_segment(segment) for segment in segments):
            logger.warning("Malformed credential", segments=len(segments))
            raise Unauthenticated("malformed_token")

        try:
            token_obj = self._decode(token)
            payload = token_obj.claims
            self._claims_registry().validate(payload)
        except JoseError as exc:
            logger.warning("JWT verification failed", error_type=type(exc).__name__, error=str(exc))
            raise Unauthenticated(f"jwt_{type(exc).__name__}")
        except (ValueError, TypeError, KeyError) as exc:
            logger.warning("JWT verification failed", error_type=type(exc).__name__)
            raise Unauthenticated("jwt_undecodable")

        if payload.get("type") != token_type:
            logger.warning("Invalid token type", expected=token_type, actual=payload.get("type"))
            raise Unauthenticated("wrong_token_type")

        result = claims_from_payload(payload, issuer=payload["iss"])
        logger.debug("Token verified successfully", subject=result.subject, issuer=result.issuer)
        return result


class IssuerAwareTokenValidator:
    """
    Strategy router for token validation by issuer.

    The local strategy is the default; external strategies register under
    their own name and are selected through AUTH_ACTIVE_ISSUER.
    """

    def __init__(
        self,
        *,
        active_issuer: str,
        trusted_issuers: list[str],
        local_strategy: TokenValidationStrategy,
        external_strategies: Optional[dict[str, TokenValidationStrategy]] = None,
    ) -> None:
        self._active_issuer = active_issuer
        self._trusted_issuers = set(trusted_issuers)
        self._strategies = {"local": local_strategy, **(external_strategies or {})}

    def validate(self, token: str, token_type: str = "access") -> VerifiedClaims:
        strategy = self._strategies.get(self._active_issuer)
        if strategy is None:
            logger.error("Unsupported active auth issuer", active_issuer=self._active_issuer)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Unsupported authentication issuer strategy",
            )

        result = strategy.validate(token, token_type=token_type)
        if self._trusted_issuers and result.issuer not in self._trusted_issuers:
            logger.warning(
                "Token issuer is not trusted",
                issuer=result.issuer,
                trusted=sorted(self._trusted_issuers),
            )
            raise Unauthenticated("untrusted_issuer")

        return result


def build_token_validator() -> IssuerAwareTokenValidator:
    return IssuerAwareTokenValidator(
        active_issuer=settings.AUTH_ACTIVE_ISSUER,
        trusted_issuers=settings.AUTH_TRUSTED_ISSUERS,
        local_strategy=LocalJWTValidationStrategy(
            secret_keys=settings.JWT_SECRET_KEYS,
            algorithm=settings.JWT_ALGORITHM,
            issuer=settings.AUTH_LOCAL_ISSUER,
            trusted_issuers=settings.AUTH_TRUSTED_ISSUERS,
            audience=settings.AUTH_AUDIENCE,
        ),
    )


@lru_cache(maxsize=1)
def get_token_validator() -> IssuerAwareTokenValidator:
    return build_token_validator()


def verify(raw_credential: Optional[str]) -> VerifiedClaims:
    """Verify a bearer credential or raise ``Unauthenticated``"""
    if not raw_credential:
        raise Unauthenticated("missing_credential")
    return get_token_validator().validate(raw_credential)
