"""
FastAPI Dependencies
Session resolution and authentication dependencies
"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional, Annotated
import structlog

from app.config import get_settings
from app.models.user import UserSession
from app.services.auth_service import AuthService

logger = structlog.get_logger(__name__)

# Bearer scheme for API clients; browsers use the session cookie
security = HTTPBearer(auto_error=False)


async def get_session_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[str]:
    """Local session token from the Authorization header or the session cookie"""
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(get_settings().session_cookie_name)


async def get_current_session(
    session_token: Optional[str] = Depends(get_session_token)
) -> UserSession:
    """
    Get the live session, including password recovery sessions

    Raises:
        HTTPException: If the token is missing, unknown or expired
    """
    session = await AuthService.resolve_session(session_token)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session


async def get_active_session(
    session: UserSession = Depends(get_current_session)
) -> UserSession:
    """
    Get a regular (non-recovery) session

    Raises:
        HTTPException: If the session may only be used to reset the password
    """
    if session.recovery:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Password reset required"
        )
    return session


async def get_current_user(
    session: UserSession = Depends(get_active_session)
) -> dict:
    """Current authenticated user"""
    return session.to_user()


async def get_optional_session(
    session_token: Optional[str] = Depends(get_session_token)
) -> Optional[UserSession]:
    """Session for endpoints that work with or without auth"""
    return await AuthService.resolve_session(session_token)


# Type aliases for cleaner dependency injection
SessionToken = Annotated[Optional[str], Depends(get_session_token)]
CurrentSession = Annotated[UserSession, Depends(get_current_session)]
ActiveSession = Annotated[UserSession, Depends(get_active_session)]
CurrentUser = Annotated[dict, Depends(get_current_user)]
OptionalSession = Annotated[Optional[UserSession], Depends(get_optional_session)]
