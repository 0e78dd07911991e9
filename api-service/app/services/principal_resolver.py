"""
Principal resolution.

Maps a verified auth subject to the back-office user record, linking the
record on first sign-in.
"""

from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import UserDeleted, UserInactive, UserNotFound
from app.core.principal import Principal
from app.core.rbac import UserStatus
from app.models.user import User
from app.repositories.user import user_repository

logger = structlog.get_logger()

# Statuses an invitation acceptance may move to active
ACCEPTABLE_STATUSES = frozenset({UserStatus.INVITED.value, UserStatus.INACTIVE.value})


class PrincipalResolver:
    async def _link_by_email(self, db: AsyncSession, subject_id: str, subject_email: str) -> Optional[User]:
        linked_id = await user_repository.link_auth_subject(db, email=subject_email, subject_id=subject_id)
        if linked_id is not None:
            logger.info("Auth subject linked to user", user_id=str(linked_id))
            return await user_repository.get_linked(db, linked_id)

        # Zero rows: a concurrent request may have linked this subject already
        user = await user_repository.get_by_auth_user_id(db, subject_id)
        if user is not None:
            return user

        # A deleted record still owns the email; report it as deleted, not unknown
        candidate = await user_repository.get_by_email(db, subject_email, include_deleted=True)
        if candidate is not None and candidate.is_effectively_deleted and candidate.auth_user_id in (None, subject_id):
            return candidate
        return None

    async def resolve(
        self,
        db: AsyncSession,
        subject_id: str,
        subject_email: Optional[str] = None,
        *,
        accepting_invitation: bool = False,
        mask_not_found: Optional[bool] = None,
    ) -> Principal:
        mask = settings.MASK_USER_NOT_FOUND if mask_not_found is None else mask_not_found

        user = await user_repository.get_by_auth_user_id(db, subject_id)
        if user is None and subject_email:
            user = await self._link_by_email(db, subject_id, subject_email)

        if user is None:
            raise UserNotFound("no_user_for_subject", mask_as_not_found=mask)

        # Deleted wins over every other status, invitation acceptance included
        if user.is_effectively_deleted:
            raise UserDeleted("user_deleted", mask_as_not_found=mask)

        if user.status != UserStatus.ACTIVE.value:
            if accepting_invitation and user.status in ACCEPTABLE_STATUSES:
                previous = user.status
                user = await user_repository.update(db, db_obj=user, obj_in={"status": UserStatus.ACTIVE.value})
                logger.info("Invitation accepted", user_id=str(user.id), previous_status=previous)
            else:
                raise UserInactive(f"user_{user.status}")

        return Principal.from_user(user)


principal_resolver = PrincipalResolver()
