"""FastAPI dependencies for authentication and authorization."""
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from posauth.context import AuthContext
from posauth.schemas.auth import UserPublic

# HTTP Bearer token extractor (reads Authorization: Bearer <session_token>)
security = HTTPBearer(auto_error=False)


def get_auth_context(request: Request) -> AuthContext:
    """AuthContext opened by the application lifespan."""
    context = getattr(request.app.state, "auth_context", None)
    if context is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Credential store not initialized",
        )
    return context


def credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not logged in or session expired",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_session_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str:
    """Bearer token from the Authorization header.

    Raises:
        HTTPException 401: Header missing or not a bearer credential
    """
    if credentials is None or not credentials.credentials:
        raise credentials_exception()
    return credentials.credentials


async def get_current_user(
    token: Annotated[str, Depends(get_session_token)],
    context: Annotated[AuthContext, Depends(get_auth_context)],
) -> UserPublic:
    """Dependency requiring the caller to hold the live session's token.

    Usage:
        @router.get("/protected")
        async def protected_route(
            current_user: Annotated[UserPublic, Depends(get_current_user)]
        ):
            return {"message": f"Hello {current_user.username}"}

    Raises:
        HTTPException 401: No session, it expired, or the token is not current
    """
    user = await context.auth.get_current_user(token)
    if user is None:
        raise credentials_exception()
    return user
