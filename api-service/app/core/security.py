"""
Credential issuing for the local issuer.

Access tokens carry the persisted session context (``app_metadata``) so the
guard chain can re-validate tenant and impersonation claims on every request.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from joserfc import jwt as jose_jwt
from joserfc.jwk import OctKey
import structlog

from app.core.config import settings

logger = structlog.get_logger()


@dataclass(frozen=True)
class IssuedToken:
    access_token: str
    expires_at: datetime
    token_type: str = "bearer"

    @property
    def expires_in(self) -> int:
        return max(0, int((self.expires_at - datetime.now(timezone.utc)).total_seconds()))


class CredentialIssuer(ABC):
    """Session-refresh capability of the credential issuer"""

    @abstractmethod
    async def issue(self, *, subject: str, email: Optional[str], app_metadata: dict) -> IssuedToken:
        raise NotImplementedError


class LocalTokenIssuer(CredentialIssuer):
    """Signs access tokens with the active (first) key of the key ring"""

    def __init__(
        self,
        secret_keys: Sequence[str],
        *,
        algorithm: str = "HS256",
        issuer: str = "backoffice-local",
        audience: Optional[str] = None,
        expire_minutes: int = 30,
    ) -> None:
        self._jwt_key = OctKey.import_key(secret_keys[0])
        self._algorithm = algorithm
        self._issuer = issuer
        self._audience = audience
        self._expire_minutes = expire_minutes

    def create_access_token(
        self,
        subject: str,
        *,
        email: Optional[str] = None,
        app_metadata: Optional[dict] = None,
        expires_delta: Optional[timedelta] = None,
    ) -> IssuedToken:
        """
        Create JWT access token

        Args:
            subject: Auth subject (``users.auth_user_id``)
            email: Subject email, used for first sign-in linking
            app_metadata: Session context claims
            expires_delta: Custom lifetime
        """
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta or timedelta(minutes=self._expire_minutes))

        to_encode = {
            "sub": str(subject),
            "iss": self._issuer,
            "type": "access",
            "iat": int(now.timestamp()),
            "exp": int(expire.timestamp()),
            "app_metadata": dict(app_metadata or {}),
        }
        if email:
            to_encode["email"] = email
        if self._audience:
            to_encode["aud"] = self._audience

        encoded_jwt = jose_jwt.encode({"alg": self._algorithm}, to_encode, self._jwt_key)

        logger.debug("Access token created", subject=subject, expires=expire.isoformat())
        return IssuedToken(access_token=encoded_jwt, expires_at=expire)

    async def issue(self, *, subject: str, email: Optional[str], app_metadata: dict) -> IssuedToken:
        return self.create_access_token(subject, email=email, app_metadata=app_metadata)


def build_token_issuer() -> LocalTokenIssuer:
    return LocalTokenIssuer(
        settings.JWT_SECRET_KEYS,
        algorithm=settings.JWT_ALGORITHM,
        issuer=settings.AUTH_LOCAL_ISSUER,
        audience=settings.AUTH_AUDIENCE,
        expire_minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES,
    )


token_issuer = build_token_issuer()
