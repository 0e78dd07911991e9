"""
API v1 Router
Main router for all API v1 endpoints
"""

from fastapi import APIRouter
from app.api.v1.endpoints import auth, customer_success_grants, permissions, roles, users

api_router = APIRouter()

# Principal and session context
api_router.include_router(
    auth.router,
    prefix="/auth",
    tags=["authentication"]
)

# Tenant-scoped user queries
api_router.include_router(
    users.router,
    prefix="/users",
    tags=["users"]
)

# Role administration
api_router.include_router(
    roles.router,
    prefix="/roles",
    tags=["roles"]
)

api_router.include_router(
    permissions.router,
    prefix="/permissions",
    tags=["permissions"]
)

# Customer success ownership grants
api_router.include_router(
    customer_success_grants.router,
    prefix="/customer-success-grants",
    tags=["customer-success"]
)
