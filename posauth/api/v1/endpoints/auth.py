"""Authentication endpoints."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status

from posauth.api.dependencies import (
    credentials_exception,
    get_auth_context,
    get_current_user,
    get_session_token,
)
from posauth.context import AuthContext
from posauth.core.exceptions import AuthErrorCode
from posauth.schemas.auth import (
    AuthResult,
    DemoLogin,
    PasswordChange,
    PasswordChangeResult,
    SessionInfo,
    UserLogin,
    UserPublic,
)

router = APIRouter(prefix="/auth", tags=["Authentication"])

_STATUS_FOR_ERROR = {
    AuthErrorCode.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    AuthErrorCode.LOCKED_OUT: status.HTTP_423_LOCKED,
    AuthErrorCode.VALIDATION_ERROR: 422,
    AuthErrorCode.CONFLICT: status.HTTP_409_CONFLICT,
    AuthErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    AuthErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


def apply_failure_status(
    response: Response, result: AuthResult | PasswordChangeResult
) -> None:
    if result.success or result.error is None:
        return
    response.status_code = _STATUS_FOR_ERROR.get(
        AuthErrorCode(result.error), status.HTTP_400_BAD_REQUEST
    )
    if result.retry_after_seconds is not None:
        response.headers["Retry-After"] = str(result.retry_after_seconds)


@router.post("/token", response_model=AuthResult)
async def authenticate(
    credentials: UserLogin,
    response: Response,
    context: Annotated[AuthContext, Depends(get_auth_context)],
) -> AuthResult:
    """Login endpoint - validates credentials and opens a session.

    Response:
        - success, user, session_token on success
        - error/message (and Retry-After when locked) on failure

    Status codes:
        401 for invalid credentials, 423 while locked out
    """
    result = await context.auth.authenticate_user(
        credentials.username, credentials.password
    )
    apply_failure_status(response, result)
    return result


@router.post("/demo-login", response_model=AuthResult)
async def demo_login(
    payload: DemoLogin,
    context: Annotated[AuthContext, Depends(get_auth_context)],
) -> AuthResult:
    """Passwordless login for demo terminals (demo mode only).

    Returns the same shape as /token, so the bearer token is available.
    """
    user = await context.auth.login(payload.username)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Demo login unavailable",
        )
    session = await context.auth.current_session()
    if session is None or session.user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Session was superseded by another login",
        )
    return AuthResult.ok(user, session.token)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    token: Annotated[str, Depends(get_session_token)],
    context: Annotated[AuthContext, Depends(get_auth_context)],
) -> Response:
    """End the caller's session (idempotent; a stale token ends nothing)."""
    await context.auth.logout(token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=UserPublic)
async def read_current_user(
    current_user: Annotated[UserPublic, Depends(get_current_user)],
) -> UserPublic:
    """User owning the current session."""
    return current_user


@router.get("/session", response_model=SessionInfo)
async def read_current_session(
    token: Annotated[str, Depends(get_session_token)],
    context: Annotated[AuthContext, Depends(get_auth_context)],
) -> SessionInfo:
    session = await context.auth.current_session(token)
    if session is None:
        raise credentials_exception()
    return session


@router.post("/activity", status_code=status.HTTP_204_NO_CONTENT)
async def record_activity(
    token: Annotated[str, Depends(get_session_token)],
    context: Annotated[AuthContext, Depends(get_auth_context)],
) -> Response:
    """Keep the caller's session alive."""
    if not await context.auth.record_activity(token):
        raise credentials_exception()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/password", response_model=PasswordChangeResult)
async def change_password(
    payload: PasswordChange,
    response: Response,
    current_user: Annotated[UserPublic, Depends(get_current_user)],
    context: Annotated[AuthContext, Depends(get_auth_context)],
) -> PasswordChangeResult:
    """Change the logged-in user's password."""
    result = await context.auth.change_password(
        current_user.id, payload.current_password, payload.new_password
    )
    apply_failure_status(response, result)
    return result
