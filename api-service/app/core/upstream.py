"""
Upstream Call Policy
Request-scoped timeout plus a single retry for store and issuer calls
"""

import asyncio
import functools
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple, Type

import structlog
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

from app.core.config import settings
from app.core.errors import UpstreamUnavailable

logger = structlog.get_logger()

TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    asyncio.TimeoutError,
    ConnectionError,
    OSError,
    OperationalError,
    InterfaceError,
)


@dataclass
class UpstreamPolicy:
    """Timeout and retry settings for one collaborator"""
    timeout: float = field(default_factory=lambda: settings.UPSTREAM_TIMEOUT_SECONDS)
    backoff: float = field(default_factory=lambda: settings.UPSTREAM_RETRY_BACKOFF_SECONDS)
    max_attempts: int = 2
    retryable_exceptions: Tuple[Type[BaseException], ...] = TRANSIENT_ERRORS


class UpstreamCaller:
    """
    Runs a collaborator coroutine under a timeout

    A transient failure is retried once after a backoff. If it persists, it
    surfaces as ``UpstreamUnavailable`` so callers never mistake an outage
    for a denial.

    When a ``session`` is given, each attempt runs inside a savepoint (or,
    outside a transaction, is rolled back on failure) so a failed attempt
    never leaves the retry with an aborted transaction.
    """

    def __init__(self, name: str, policy: UpstreamPolicy = None, session: Optional[AsyncSession] = None):
        self.name = name
        self.policy = policy or UpstreamPolicy()
        self.session = session
        self.logger = logger.bind(upstream=name)

    async def _begin_attempt(self) -> Optional[AsyncSessionTransaction]:
        if self.session is None or not self.session.in_transaction():
            return None
        return await self.session.begin_nested()

    async def _discard_attempt(self, savepoint: Optional[AsyncSessionTransaction]) -> None:
        if self.session is None:
            return
        try:
            if savepoint is not None and savepoint.is_active:
                await savepoint.rollback()
            elif savepoint is None:
                await self.session.rollback()
        except SQLAlchemyError as e:
            # The enclosing transaction is gone; nothing left to retry on
            self.logger.error("Session reset failed", exception_type=type(e).__name__, error=str(e))
            raise UpstreamUnavailable(f"{self.name}: {type(e).__name__}") from e

    async def execute(self, func: Callable, *args, **kwargs) -> Any:
        for attempt in range(1, self.policy.max_attempts + 1):
            savepoint = await self._begin_attempt()
            try:
                result = await asyncio.wait_for(func(*args, **kwargs), timeout=self.policy.timeout)
            except self.policy.retryable_exceptions as e:
                await self._discard_attempt(savepoint)
                if attempt >= self.policy.max_attempts:
                    self.logger.error(
                        "Upstream call failed",
                        attempts=attempt,
                        exception_type=type(e).__name__,
                        error=str(e),
                    )
                    raise UpstreamUnavailable(f"{self.name}: {type(e).__name__}") from e

                delay = self.policy.backoff * attempt
                self.logger.warning(
                    "Upstream call failed, retrying",
                    attempt=attempt,
                    delay=delay,
                    exception_type=type(e).__name__,
                )
                await asyncio.sleep(delay)
            except Exception:
                if savepoint is not None and savepoint.is_active:
                    await savepoint.rollback()
                raise
            else:
                if savepoint is not None and savepoint.is_active:
                    await savepoint.commit()
                return result


def _find_session(args: tuple, kwargs: dict) -> Optional[AsyncSession]:
    for value in (*args, *kwargs.values()):
        if isinstance(value, AsyncSession):
            return value
    return None


def upstream_call(name: str):
    """Decorator form of ``UpstreamCaller`` for repository coroutines"""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            caller = UpstreamCaller(name, session=_find_session(args, kwargs))
            return await caller.execute(func, *args, **kwargs)

        return wrapper

    return decorator
