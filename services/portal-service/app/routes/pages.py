"""
Page Routes
Server-rendered sign in, sign up, password reset, dashboard and profile pages
"""

import os
from datetime import datetime, timezone
from typing import Dict, Optional
from urllib.parse import quote

from fastapi import APIRouter, File, Form, Query, Request, UploadFile, status
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates
from jinja2 import Environment, FileSystemLoader, select_autoescape
from pydantic import ValidationError
import structlog

from shared.schemas.user import SignUpSchema, PasswordChangeSchema
from shared.utils.validators import (
    validate_email, validate_password, validate_passwords_match, validate_sign_up_form,
    validate_profile_form, password_strength, safe_redirect_path
)

from app.config import get_settings
from app.models.user import UserSession
from app.services.auth_service import AuthService, AUTH_CODE_ERROR
from app.services.dashboard_service import DashboardService
from app.services.profile_service import ProfileService
from app.utils.dependencies import OptionalSession

logger = structlog.get_logger(__name__)

router = APIRouter()

TEMPLATES_DIR = os.path.join(os.path.dirname(__file__), "..", "templates")

templates = Jinja2Templates(env=Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    autoescape=select_autoescape(['html', 'xml']),
    trim_blocks=True,
    lstrip_blocks=True
))

REGISTERED_MESSAGE = "Account created! Please check your email to verify your account."
RESET_LINK_INVALID = "Invalid or expired password reset link. Please request a new one."
RESET_SUCCESS = "Password updated successfully! Redirecting to login..."
RESET_REDIRECT_SECONDS = 3
SERVICE_UNAVAILABLE = "service-unavailable"

ERROR_MESSAGES = {
    AUTH_CODE_ERROR: "We couldn't sign you in. The link or code is invalid or has expired.",
    "unsupported-provider": "This sign in provider is not available.",
    "oauth-start-failed": "We couldn't start the sign in. Please try again.",
    SERVICE_UNAVAILABLE: "Sign in is temporarily unavailable. Please try again later.",
}
DEFAULT_ERROR_MESSAGE = "Sorry, something went wrong."

PROFILE_MESSAGES = {
    "profile-updated": "Your profile has been updated successfully.",
    "password-updated": "Your password has been updated successfully.",
    "avatar-updated": "Your profile picture has been updated successfully.",
    "avatar-removed": "Your profile picture has been removed.",
}


def _render(request: Request, name: str, context: Optional[Dict] = None, status_code: int = 200):
    settings = get_settings()
    page_context = {
        "app_name": settings.app_name,
        "oauth_providers": settings.oauth_providers,
        "current_year": datetime.now().year,
    }
    page_context.update(context or {})
    return templates.TemplateResponse(request, name, page_context, status_code=status_code)


def _field_errors(exc: ValidationError) -> Dict[str, str]:
    return {str(err['loc'][-1]): err['msg'].replace("Value error, ", "") for err in exc.errors()}


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=status.HTTP_303_SEE_OTHER)


def _set_session_cookie(response: RedirectResponse, session: UserSession):
    settings = get_settings()
    expires_at = datetime.fromisoformat(session.expires_at)
    max_age = max(int((expires_at - datetime.now(timezone.utc)).total_seconds()), 0)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=session.session_token,
        max_age=max_age,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax"
    )


def _clear_session_cookie(response):
    response.delete_cookie(get_settings().session_cookie_name)


def _require_page_session(request: Request, session: Optional[UserSession]) -> Optional[RedirectResponse]:
    """Redirect for pages that need a regular signed-in session"""
    if session is None:
        path = request.url.path
        if request.url.query:
            path = f"{path}?{request.url.query}"
        return _redirect(f"/login?redirectedFrom={quote(path, safe='')}")
    if session.recovery:
        return _redirect("/reset-password")
    return None


@router.get("/")
async def index(session: OptionalSession):
    if session is not None and not session.recovery:
        return _redirect("/dashboard")
    return _redirect("/login")


# Sign in

@router.get("/login")
async def login_page(request: Request, session: OptionalSession,
                     registered: Optional[str] = Query(None),
                     redirectedFrom: Optional[str] = Query(None)):
    if session is not None and not session.recovery:
        return _redirect("/dashboard")

    return _render(request, "login.html", {
        "message": REGISTERED_MESSAGE if registered == "true" else None,
        "redirected_from": safe_redirect_path(redirectedFrom),
        "email": "",
    })


@router.post("/login")
async def login_submit(request: Request,
                       email: str = Form(""),
                       password: str = Form(""),
                       remember_me: Optional[str] = Form(None),
                       redirected_from: Optional[str] = Form(None)):
    email = email.strip().lower()
    next_path = safe_redirect_path(redirected_from)
    context = {"email": email, "redirected_from": next_path}

    error = validate_email(email) or (None if password else "Password is required")
    if error:
        return _render(request, "login.html", dict(context, error=error),
                       status_code=status.HTTP_400_BAD_REQUEST)

    result = await AuthService.sign_in(email, password, remember_me is not None)
    if not result['success']:
        return _render(request, "login.html", dict(context, error=result['error']),
                       status_code=status.HTTP_400_BAD_REQUEST)

    response = _redirect(next_path)
    _set_session_cookie(response, result['session'])
    return response


@router.get("/login/{provider}")
async def oauth_login(provider: str, next: Optional[str] = Query(None)):
    settings = get_settings()
    if provider.lower() not in settings.oauth_providers:
        return _redirect("/error?reason=unsupported-provider")

    result = await AuthService.start_oauth(provider, next)
    if not result['success']:
        return _redirect("/error?reason=oauth-start-failed")

    response = _redirect(result['url'])
    response.set_cookie(
        key=settings.oauth_cookie_name,
        value=result['flow_id'],
        max_age=settings.oauth_flow_ttl_seconds,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax"
    )
    return response


@router.get("/auth/callback")
async def oauth_callback(request: Request, code: Optional[str] = Query(None),
                         error: Optional[str] = Query(None)):
    """Provider redirect target; exchanges the code for a session"""
    settings = get_settings()
    flow_id = request.cookies.get(settings.oauth_cookie_name)

    if error:
        logger.info("OAuth provider returned an error", error=error)
        result = {'success': False}
    else:
        result = await AuthService.complete_oauth(flow_id, code)

    if not result['success']:
        response = _redirect(f"/error?reason={AUTH_CODE_ERROR}")
    else:
        response = _redirect(result['next'])
        _set_session_cookie(response, result['session'])

    response.delete_cookie(settings.oauth_cookie_name)
    return response


@router.get("/auth/confirm")
async def confirm_email_link(token_hash: Optional[str] = Query(None),
                             type: Optional[str] = Query(None),
                             next: Optional[str] = Query(None)):
    """Target of sign-up confirmation and password recovery emails"""
    result = await AuthService.confirm_email_link(token_hash, type)
    if not result['success']:
        return _redirect(f"/error?reason={AUTH_CODE_ERROR}")

    target = "/reset-password" if result['recovery'] else safe_redirect_path(next)
    response = _redirect(target)
    _set_session_cookie(response, result['session'])
    return response


# Sign up

@router.get("/signup")
async def signup_page(request: Request, session: OptionalSession):
    if session is not None and not session.recovery:
        return _redirect("/dashboard")
    return _render(request, "signup.html", {"errors": {}, "email": ""})


@router.post("/signup")
async def signup_submit(request: Request,
                        email: str = Form(""),
                        password: str = Form(""),
                        confirm_password: str = Form("")):
    email = email.strip().lower()
    context = {"email": email, "strength": password_strength(password).to_dict() if password else None}

    errors = validate_sign_up_form(email, password, confirm_password)
    if not errors:
        try:
            data = SignUpSchema(email=email, password=password, confirm_password=confirm_password)
        except ValidationError as e:
            errors = _field_errors(e)

    if errors:
        return _render(request, "signup.html", dict(context, errors=errors),
                       status_code=status.HTTP_400_BAD_REQUEST)

    result = await AuthService.sign_up(data)
    if not result['success']:
        return _render(request, "signup.html", dict(context, errors={}, error=result['error']),
                       status_code=status.HTTP_400_BAD_REQUEST)

    return _redirect("/login?registered=true")


# Password reset

@router.get("/forgot-password")
async def forgot_password_page(request: Request):
    return _render(request, "forgot_password.html", {"email": ""})


@router.post("/forgot-password")
async def forgot_password_submit(request: Request, email: str = Form("")):
    email = email.strip().lower()
    error = validate_email(email)
    if error:
        return _render(request, "forgot_password.html", {"email": email, "error": error},
                       status_code=status.HTTP_400_BAD_REQUEST)

    result = await AuthService.request_password_reset(email)
    if not result['success']:
        return _render(request, "forgot_password.html", {"email": email, "error": result['error']},
                       status_code=status.HTTP_400_BAD_REQUEST)

    return _render(request, "forgot_password.html", {"email": "", "message": result['message']})


@router.get("/reset-password")
async def reset_password_page(request: Request, session: OptionalSession):
    if session is None:
        return _render(request, "reset_password.html", {"error": RESET_LINK_INVALID, "show_form": False})
    return _render(request, "reset_password.html", {"show_form": True})


@router.post("/reset-password")
async def reset_password_submit(request: Request, session: OptionalSession,
                                password: str = Form(""),
                                confirm_password: str = Form("")):
    if session is None:
        return _render(request, "reset_password.html", {"error": RESET_LINK_INVALID, "show_form": False},
                       status_code=status.HTTP_401_UNAUTHORIZED)

    error = validate_password(password) or validate_passwords_match(password, confirm_password)
    if error:
        return _render(request, "reset_password.html", {"error": error, "show_form": True},
                       status_code=status.HTTP_400_BAD_REQUEST)

    result = await AuthService.complete_password_reset(session.session_token, password)
    if not result['success']:
        return _render(request, "reset_password.html", {"error": result['error'], "show_form": True},
                       status_code=status.HTTP_400_BAD_REQUEST)

    response = _render(request, "reset_password.html", {
        "message": RESET_SUCCESS,
        "show_form": False,
        "redirect_url": "/login",
        "redirect_seconds": RESET_REDIRECT_SECONDS,
    })
    _clear_session_cookie(response)
    return response


# Protected pages

@router.get("/dashboard")
async def dashboard_page(request: Request, session: OptionalSession):
    redirect = _require_page_session(request, session)
    if redirect:
        return redirect

    dashboard = await DashboardService.get_dashboard(session.to_user())
    return _render(request, "dashboard.html", {"dashboard": dashboard})


async def _render_profile(request: Request, session: UserSession, status_code: int = 200, **extra):
    user = session.to_user()
    result = await ProfileService.get_profile(user)
    context = {
        "user": user,
        "profile": result.get('profile') or {},
        "profile_errors": {},
        "password_errors": {},
    }
    if not result['success']:
        context['error'] = result['error']
    context.update(extra)
    return _render(request, "profile.html", context, status_code=status_code)


@router.get("/profile")
async def profile_page(request: Request, session: OptionalSession, message: Optional[str] = Query(None)):
    redirect = _require_page_session(request, session)
    if redirect:
        return redirect
    return await _render_profile(request, session, message=PROFILE_MESSAGES.get(message))


@router.post("/profile")
async def profile_submit(request: Request, session: OptionalSession,
                         username: str = Form(""),
                         full_name: str = Form(""),
                         bio: str = Form(""),
                         website: str = Form("")):
    redirect = _require_page_session(request, session)
    if redirect:
        return redirect

    changes = {
        'username': username.strip(),
        'full_name': full_name.strip() or None,
        'bio': bio.strip() or None,
        'website': website.strip() or None,
    }
    errors = validate_profile_form(**changes)
    if errors:
        return await _render_profile(request, session, status.HTTP_400_BAD_REQUEST,
                                     profile_errors=errors, form=changes)

    result = await ProfileService.update_profile(session.to_user(), changes)
    if not result['success']:
        return await _render_profile(request, session, status.HTTP_400_BAD_REQUEST,
                                     error=result['error'], form=changes)

    return _redirect("/profile?message=profile-updated")


@router.post("/profile/password")
async def profile_password_submit(request: Request, session: OptionalSession,
                                  current_password: str = Form(""),
                                  new_password: str = Form(""),
                                  confirm_password: str = Form("")):
    redirect = _require_page_session(request, session)
    if redirect:
        return redirect

    try:
        data = PasswordChangeSchema(
            current_password=current_password,
            new_password=new_password,
            confirm_password=confirm_password
        )
    except ValidationError as e:
        errors = _field_errors(e)
        return await _render_profile(request, session, status.HTTP_400_BAD_REQUEST, password_errors=errors)

    result = await AuthService.change_password(session, data.current_password, data.new_password)
    if not result['success']:
        return await _render_profile(request, session, status.HTTP_400_BAD_REQUEST,
                                     password_errors={'current_password': result['error']})

    return _redirect("/profile?message=password-updated")


@router.post("/profile/avatar")
async def profile_avatar_submit(request: Request, session: OptionalSession,
                                avatar: Optional[UploadFile] = File(None)):
    redirect = _require_page_session(request, session)
    if redirect:
        return redirect

    filename, content_type, content = None, None, b""
    if avatar is not None:
        filename, content_type = avatar.filename, avatar.content_type
        content = await avatar.read(get_settings().avatar_max_bytes + 1)

    result = await ProfileService.upload_avatar(session.to_user(), filename, content_type, content)
    if not result['success']:
        return await _render_profile(request, session, status.HTTP_400_BAD_REQUEST, avatar_error=result['error'])

    return _redirect("/profile?message=avatar-updated")


@router.post("/profile/avatar/remove")
async def profile_avatar_remove(request: Request, session: OptionalSession):
    redirect = _require_page_session(request, session)
    if redirect:
        return redirect

    result = await ProfileService.remove_avatar(session.to_user())
    if not result['success']:
        return await _render_profile(request, session, status.HTTP_400_BAD_REQUEST, avatar_error=result['error'])

    return _redirect("/profile?message=avatar-removed")


@router.post("/logout")
async def logout(request: Request):
    """Sign out and return to the login page, even if the hosted sign out fails"""
    session_token = request.cookies.get(get_settings().session_cookie_name)
    try:
        await AuthService.sign_out(session_token)
    except Exception as e:
        logger.error("Sign out failed", error=str(e))

    response = _redirect("/login")
    _clear_session_cookie(response)
    return response


@router.get("/error")
async def error_page(request: Request, reason: Optional[str] = Query(None)):
    return render_error_page(request, reason)


def render_error_page(request: Request, reason: Optional[str], status_code: int = 200):
    """Render the error page for a reason code"""
    return _render(request, "error.html", {
        "error": ERROR_MESSAGES.get(reason, DEFAULT_ERROR_MESSAGE),
        "reason": reason,
    }, status_code=status_code)
