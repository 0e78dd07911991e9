"""
User Schemas
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from app.schemas.base import BaseResponseSchema


class UserListItem(BaseResponseSchema):
    email: str
    full_name: Optional[str] = None
    status: str
    customer_id: Optional[UUID] = None
    role_id: Optional[UUID] = None
    role_name: Optional[str] = None
    last_login_at: Optional[datetime] = None
