"""
Customer Repository
"""

from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.upstream import upstream_call
from app.models.customer import Customer
from app.repositories.base import CRUDBase


class CustomerRepository(CRUDBase[Customer, dict, dict]):
    @upstream_call("store.customers")
    async def get(self, db: AsyncSession, id, include_deleted: bool = False) -> Optional[Customer]:
        return await super().get(db, id, include_deleted=include_deleted)

    async def exists(self, db: AsyncSession, customer_id: UUID) -> bool:
        return await self.get(db, customer_id) is not None


customer_repository = CustomerRepository(Customer)
