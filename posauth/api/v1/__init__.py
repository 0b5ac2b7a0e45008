"""
API v1 router aggregation.
"""
from fastapi import APIRouter

from posauth.api.v1.endpoints import auth, roles, users

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(auth.router)

api_router.include_router(
    roles.router,
    prefix="/roles",
    tags=["Roles"],
)

api_router.include_router(
    users.router,
    prefix="/users",
    tags=["Users"],
)
