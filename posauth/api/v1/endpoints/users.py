"""
User administration endpoints (listing, password reset, deactivation).

Access is decided by the caller's role permissions on the ``users`` module.
"""
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from posauth.api.dependencies import get_auth_context, get_current_user
from posauth.api.v1.endpoints.auth import apply_failure_status
from posauth.context import AuthContext
from posauth.core.exceptions import NotFoundError, PermissionDeniedError
from posauth.schemas.auth import PasswordChangeResult, PasswordReset, UserPublic

router = APIRouter()


@router.get("", response_model=list[UserPublic])
async def list_users(
    current_user: Annotated[UserPublic, Depends(get_current_user)],
    context: Annotated[AuthContext, Depends(get_auth_context)],
    role: Optional[str] = Query(None, description="Only users holding this role"),
    include_inactive: bool = False,
):
    """Active accounts (all accounts with include_inactive)."""
    try:
        if role is not None:
            return await context.auth.users_by_role(current_user.id, role)
        return await context.auth.list_users(
            current_user.id, include_inactive=include_inactive
        )
    except PermissionDeniedError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.message)


@router.post("/{user_id}/password", response_model=PasswordChangeResult)
async def reset_password(
    user_id: UUID,
    payload: PasswordReset,
    response: Response,
    current_user: Annotated[UserPublic, Depends(get_current_user)],
    context: Annotated[AuthContext, Depends(get_auth_context)],
) -> PasswordChangeResult:
    """Set a user's password and clear their lockout."""
    result = await context.auth.reset_user_password(
        current_user.id, user_id, payload.new_password
    )
    apply_failure_status(response, result)
    return result


@router.delete("/{user_id}", response_model=UserPublic)
async def deactivate_user(
    user_id: UUID,
    current_user: Annotated[UserPublic, Depends(get_current_user)],
    context: Annotated[AuthContext, Depends(get_auth_context)],
) -> UserPublic:
    """Deactivate an account; its sessions are revoked."""
    try:
        return await context.auth.deactivate_user(current_user.id, user_id)
    except PermissionDeniedError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.message)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message)
