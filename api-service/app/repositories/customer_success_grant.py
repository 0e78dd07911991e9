"""
Customer Success Grant Repository
"""

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.upstream import upstream_call
from app.models.customer_success_grant import CustomerSuccessOwnedCustomer
from app.repositories.base import CRUDBase


class CustomerSuccessGrantRepository(CRUDBase[CustomerSuccessOwnedCustomer, dict, dict]):
    @upstream_call("store.cs_grants")
    async def grant_exists(self, db: AsyncSession, *, user_id: UUID, customer_id: UUID) -> bool:
        return await self.get_pair(db, user_id=user_id, customer_id=customer_id) is not None

    async def get_pair(
        self, db: AsyncSession, *, user_id: UUID, customer_id: UUID
    ) -> Optional[CustomerSuccessOwnedCustomer]:
        result = await db.execute(
            select(CustomerSuccessOwnedCustomer).where(
                CustomerSuccessOwnedCustomer.user_id == user_id,
                CustomerSuccessOwnedCustomer.customer_id == customer_id,
            )
        )
        return result.unique().scalar_one_or_none()

    async def list_grants(
        self,
        db: AsyncSession,
        *,
        user_id: Optional[UUID] = None,
        customer_id: Optional[UUID] = None,
    ) -> list[CustomerSuccessOwnedCustomer]:
        filters = {}
        if user_id is not None:
            filters["user_id"] = user_id
        if customer_id is not None:
            filters["customer_id"] = customer_id
        return await self.get_multi(db, filters=filters, limit=1000)


customer_success_grant_repository = CustomerSuccessGrantRepository(CustomerSuccessOwnedCustomer)
