"""
User Repository
Lookups and the atomic auth-subject link used by principal resolution.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.rbac import UserStatus
from app.core.upstream import upstream_call
from app.models.user import User
from app.repositories.base import CRUDBase

logger = structlog.get_logger()


def normalize_email(email: str) -> str:
    return email.lower().strip()


class UserRepository(CRUDBase[User, dict, dict]):
    @upstream_call("store.users")
    async def get(self, db: AsyncSession, id, include_deleted: bool = False) -> Optional[User]:
        return await super().get(db, id, include_deleted=include_deleted)

    @upstream_call("store.users")
    async def get_by_auth_user_id(self, db: AsyncSession, subject_id: str) -> Optional[User]:
        # Deleted rows are returned so the resolver can tell deleted from unknown
        result = await db.execute(select(User).where(User.auth_user_id == subject_id))
        return result.unique().scalar_one_or_none()

    @upstream_call("store.users")
    async def get_by_email(self, db: AsyncSession, email: str, include_deleted: bool = False) -> Optional[User]:
        query = select(User).where(func.lower(User.email) == normalize_email(email))
        if not include_deleted:
            query = query.where(User.is_deleted == False)  # noqa: E712

        result = await db.execute(query)
        return result.unique().scalar_one_or_none()

    @upstream_call("store.users")
    async def link_auth_subject(self, db: AsyncSession, *, email: str, subject_id: str) -> Optional[UUID]:
        """
        Attach ``subject_id`` to the unlinked, non-deleted user with ``email``.

        Runs as one conditional UPDATE so two concurrent first sign-ins cannot
        both link. Pending invitations become active in the same statement.
        Returns the linked user id, or None when no row qualified.
        """
        stmt = (
            update(User)
            .where(
                func.lower(User.email) == normalize_email(email),
                User.auth_user_id.is_(None),
                User.is_deleted == False,  # noqa: E712
                User.status != UserStatus.DELETED.value,
            )
            .values(
                auth_user_id=subject_id,
                status=case(
                    (User.status == UserStatus.INVITED.value, UserStatus.ACTIVE.value),
                    else_=User.status,
                ),
                last_login_at=func.now(),
            )
            .returning(User.id)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        linked_id = result.scalar_one_or_none()
        await db.flush()

        logger.info("Auth subject link attempted", email_domain=email.rpartition("@")[2], linked=linked_id is not None)
        return linked_id

    @upstream_call("store.users")
    async def get_linked(self, db: AsyncSession, user_id: UUID) -> Optional[User]:
        """Re-read a row written by ``link_auth_subject``, replacing any stale copy in the session"""
        result = await db.execute(
            select(User).where(User.id == user_id).execution_options(populate_existing=True)
        )
        return result.unique().scalar_one_or_none()

    async def set_app_metadata(self, db: AsyncSession, *, user: User, app_metadata: dict) -> User:
        return await self.update(db, db_obj=user, obj_in={"app_metadata": dict(app_metadata)})

    async def list_for_tenant(
        self,
        db: AsyncSession,
        *,
        customer_id: Optional[UUID],
        skip: int,
        limit: int,
        status: Optional[str] = None,
    ) -> tuple[list[User], int]:
        """List users of one tenant; ``customer_id=None`` lists every tenant"""
        query = select(User).where(User.is_deleted == False)  # noqa: E712
        if customer_id is not None:
            query = query.where(User.customer_id == customer_id)
        if status:
            query = query.where(User.status == status)

        total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
        result = await db.execute(query.order_by(User.created_at.desc()).offset(skip).limit(limit))
        return list(result.unique().scalars().all()), total

    async def count_with_role(self, db: AsyncSession, role_id: UUID) -> int:
        return await self.count(db, filters={"role_id": role_id})


user_repository = UserRepository(User)
