"""
Customer Success Grant Schemas
"""

from typing import Optional
from uuid import UUID

from app.schemas.base import BaseResponseSchema, BaseSchema


class GrantCreateRequest(BaseSchema):
    user_id: UUID
    customer_id: UUID


class GrantRead(BaseResponseSchema):
    user_id: UUID
    customer_id: UUID
    customer_name: Optional[str] = None
