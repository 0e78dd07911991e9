"""
Customer Success Grant Service
Assignment of tenants to customer-success users.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

import structlog
from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.rbac import SystemRole
from app.models.customer_success_grant import CustomerSuccessOwnedCustomer
from app.repositories.customer import customer_repository
from app.repositories.customer_success_grant import customer_success_grant_repository
from app.repositories.user import user_repository
from app.schemas.customer_success_grant import GrantCreateRequest, GrantRead

logger = structlog.get_logger()


def _to_read(grant: CustomerSuccessOwnedCustomer) -> GrantRead:
    return GrantRead(
        id=grant.id,
        created_at=grant.created_at,
        updated_at=grant.updated_at,
        user_id=grant.user_id,
        customer_id=grant.customer_id,
        customer_name=grant.customer.name if grant.customer is not None else None,
    )


class CustomerSuccessGrantService:
    async def list_grants(
        self,
        db: AsyncSession,
        *,
        user_id: Optional[UUID] = None,
        customer_id: Optional[UUID] = None,
    ) -> list[GrantRead]:
        grants = await customer_success_grant_repository.list_grants(db, user_id=user_id, customer_id=customer_id)
        return [_to_read(grant) for grant in grants]

    async def _validate_cs_user(self, db: AsyncSession, user_id: UUID) -> None:
        user = await user_repository.get(db, user_id)
        if not user:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        if user.role_name != SystemRole.CUSTOMER_SUCCESS.value:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="User must have the customer success role to be assigned to customers",
            )

    async def create_grant(self, db: AsyncSession, data: GrantCreateRequest) -> GrantRead:
        await self._validate_cs_user(db, data.user_id)
        if not await customer_repository.exists(db, data.customer_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")

        if await customer_success_grant_repository.get_pair(db, user_id=data.user_id, customer_id=data.customer_id):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Customer is already assigned to this customer success user",
            )

        grant = await customer_success_grant_repository.create(
            db, obj_in={"user_id": data.user_id, "customer_id": data.customer_id}
        )
        logger.info("Customer success grant created", user_id=str(data.user_id), customer_id=str(data.customer_id))
        return _to_read(grant)

    async def revoke_grant(self, db: AsyncSession, grant_id: UUID) -> None:
        grant = await customer_success_grant_repository.get(db, grant_id)
        if not grant:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Grant not found")

        await customer_success_grant_repository.delete(db, db_obj=grant, soft_delete=False)
        logger.info(
            "Customer success grant revoked",
            grant_id=str(grant_id),
            user_id=str(grant.user_id),
            customer_id=str(grant.customer_id),
        )


customer_success_grant_service = CustomerSuccessGrantService()
