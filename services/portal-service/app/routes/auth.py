"""
Authentication Routes
Sign up, sign in, OAuth start, password reset and session endpoints (JSON API)
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Response, status
import structlog

from shared.schemas.user import (
    SignUpSchema, SignInSchema, PasswordResetRequestSchema, PasswordResetCompleteSchema,
    PasswordChangeSchema, PasswordStrengthRequestSchema, PasswordStrengthSchema,
    UserSchema, AuthTokensSchema
)
from shared.utils.validators import password_strength

from app.config import get_settings
from app.services.auth_service import AuthService
from app.utils.dependencies import CurrentSession, ActiveSession, SessionToken

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/signup", response_model=dict, status_code=status.HTTP_201_CREATED)
async def sign_up(data: SignUpSchema):
    """
    Create an account

    The hosted service sends the confirmation email.
    """
    result = await AuthService.sign_up(data)
    if not result['success']:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=result['error']
        )

    user = result['user']
    return {
        "success": True,
        "message": "Account created! Please check your email to verify your account.",
        "user": {
            "id": user['id'],
            "email": user['email'],
            "email_confirmed": user['email_confirmed']
        },
        "requires_confirmation": result['requires_confirmation']
    }


@router.post("/login", response_model=dict)
async def sign_in(data: SignInSchema):
    """Sign in with email and password and receive a session token"""
    result = await AuthService.sign_in(data.email, data.password, bool(data.remember_me))
    if not result['success']:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=result['error']
        )

    session = result['session']
    tokens = AuthTokensSchema(access_token=session.session_token, expires_at=session.expires_at)
    return {
        "success": True,
        "message": "Login successful",
        "user": UserSchema(**result['user']).model_dump(mode="json"),
        "tokens": tokens.model_dump()
    }


@router.post("/logout", response_model=dict)
async def sign_out(session_token: SessionToken, response: Response):
    """
    Sign out

    Always clears the local session and its cookie; reports whether the
    hosted session was revoked.
    """
    result = await AuthService.sign_out(session_token)
    response.delete_cookie(get_settings().session_cookie_name)
    return {
        "success": True,
        "message": "Logout successful",
        "remote_signed_out": result['remote_signed_out']
    }


@router.get("/me", response_model=UserSchema)
async def get_me(session: ActiveSession):
    """Current user, freshly read from the hosted auth service"""
    result = await AuthService.get_current_user_details(session)
    if not result['success']:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
            headers={"WWW-Authenticate": "Bearer"}
        )
    return UserSchema(**result['user'])


@router.get("/oauth/{provider}", response_model=dict)
async def start_oauth(provider: str, response: Response, next: Optional[str] = Query(None)):
    """
    Start an OAuth sign in

    Returns the provider URL; the flow cookie ties the callback to this browser.
    """
    result = await AuthService.start_oauth(provider, next)
    if not result['success']:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=result['error']
        )

    settings = get_settings()
    response.set_cookie(
        settings.oauth_cookie_name,
        result['flow_id'],
        max_age=settings.oauth_flow_ttl_seconds,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax"
    )
    return {"success": True, "url": result['url'], "flow_id": result['flow_id']}


@router.post("/password-reset", response_model=dict)
async def request_password_reset(data: PasswordResetRequestSchema):
    """Send password reset instructions"""
    result = await AuthService.request_password_reset(data.email)
    if not result['success']:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=result['error']
        )
    return {"success": True, "message": result['message']}


@router.post("/password-reset/complete", response_model=dict)
async def complete_password_reset(data: PasswordResetCompleteSchema, session: CurrentSession):
    """
    Set a new password

    Requires the session created by the recovery email link; the session
    ends afterwards and the user signs in again.
    """
    result = await AuthService.complete_password_reset(session.session_token, data.password)
    if not result['success']:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=result['error']
        )
    return {"success": True, "message": result['message']}


@router.post("/password-change", response_model=dict)
async def change_password(data: PasswordChangeSchema, session: ActiveSession):
    """Change password (requires the current password)"""
    result = await AuthService.change_password(session, data.current_password, data.new_password)
    if not result['success']:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=result['error']
        )
    return {"success": True, "message": result['message']}


@router.post("/password-strength", response_model=PasswordStrengthSchema)
async def check_password_strength(data: PasswordStrengthRequestSchema):
    """Advisory password strength score (0-5)"""
    return PasswordStrengthSchema(**password_strength(data.password).to_dict())


@router.post("/refresh", response_model=dict)
async def refresh_session(session: ActiveSession):
    """Force a refresh of the hosted tokens behind the session"""
    refreshed = await AuthService.refresh(session)
    if refreshed is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired, please sign in again",
            headers={"WWW-Authenticate": "Bearer"}
        )
    return {"success": True, "access_expires_at": refreshed.access_expires_at}
