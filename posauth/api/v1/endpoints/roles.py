"""
Role configuration endpoints (authorization data for navigation).
"""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from posauth.api.dependencies import get_auth_context, get_current_user
from posauth.context import AuthContext
from posauth.core.exceptions import NotFoundError
from posauth.schemas.auth import UserPublic
from posauth.schemas.role import RoleConfigSchema

router = APIRouter()


@router.get("", response_model=list[RoleConfigSchema])
async def list_roles(
    context: Annotated[AuthContext, Depends(get_auth_context)],
):
    """All configured roles, ascending by access level."""
    configs = await context.roles.get_role_configs()
    return list(configs.values())


@router.get("/me/views", response_model=list[str])
async def my_views(
    current_user: Annotated[UserPublic, Depends(get_current_user)],
    context: Annotated[AuthContext, Depends(get_auth_context)],
):
    """Views the logged-in user may navigate to."""
    try:
        return await context.roles.accessible_views(current_user.role)
    except NotFoundError:
        return []


@router.get("/me/modules", response_model=list[str])
async def my_modules(
    current_user: Annotated[UserPublic, Depends(get_current_user)],
    context: Annotated[AuthContext, Depends(get_auth_context)],
):
    """Permission modules the logged-in user holds any action in."""
    return await context.roles.accessible_modules(current_user.role)


@router.get("/{role}/views", response_model=list[str])
async def role_views(
    role: str,
    context: Annotated[AuthContext, Depends(get_auth_context)],
):
    """Views a role may navigate to."""
    try:
        return await context.roles.accessible_views(role)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message)
