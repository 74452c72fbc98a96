"""
Authentication Service
Sign up, sign in, OAuth, password reset and session state orchestration
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Optional
import structlog

from shared.schemas.user import SignUpSchema
from shared.utils.logger import get_audit_logger
from shared.utils.security import generate_session_token, generate_flow_id, generate_pkce_pair, token_preview
from shared.utils.validators import safe_redirect_path

from app.config import get_settings
from app.models.user import UserSession
from app.utils.redis_session import RedisSessionManager
from app.utils.supabase_client import supabase_client

logger = structlog.get_logger(__name__)
audit = get_audit_logger()

SIGN_UP_FAILED = "Failed to create account. This email may already be in use."
SIGN_IN_FAILED = "Invalid email or password"
RESET_REQUEST_FAILED = "Failed to send reset instructions. Please try again."
RESET_FAILED = "Failed to reset password. Please try again or request a new link."
AUTH_CODE_ERROR = "auth-code-error"

EMAIL_LINK_TYPES = {"signup", "email", "recovery", "invite", "magiclink", "email_change"}


class AuthService:
    """User authentication service"""

    @staticmethod
    async def create_session(user: Dict, hosted_session: Dict, remember_me: bool = False,
                             recovery: bool = False) -> Optional[UserSession]:
        """
        Create a local session holding the hosted token pair

        Args:
            user: Flattened hosted user
            hosted_session: Hosted access/refresh tokens and expiry
            remember_me: Extended session flag
            recovery: Session created from a password recovery link

        Returns:
            UserSession or None if it could not be stored
        """
        settings = get_settings()
        ttl_days = settings.remember_me_ttl_days if remember_me else settings.session_ttl_days
        expires_at = datetime.now(timezone.utc) + timedelta(days=ttl_days)

        session = UserSession(
            session_token=generate_session_token(),
            user_id=user['id'],
            email=user.get('email'),
            access_token=hosted_session['access_token'],
            refresh_token=hosted_session['refresh_token'],
            access_expires_at=hosted_session['expires_at'],
            expires_at=expires_at.isoformat(),
            provider=user.get('provider'),
            recovery=recovery
        )

        stored = await RedisSessionManager.create_session(session.session_token, expires_at, session.to_dict())
        if not stored:
            logger.error("Failed to store session", user_id=user['id'])
            return None
        return session

    @staticmethod
    async def sign_up(data: SignUpSchema) -> Dict:
        """
        Register a new account with the hosted auth service

        Args:
            data: Validated sign-up form

        Returns:
            dict: Registration result
        """
        settings = get_settings()
        result = await supabase_client.sign_up(
            data.email,
            data.password,
            redirect_to=settings.email_confirm_url
        )

        if not result['success']:
            audit.log_auth_event('sign_up', False, email=data.email, details={'error': result.get('error')})
            return {'success': False, 'error': SIGN_UP_FAILED}

        user = result['user']
        audit.log_auth_event('sign_up', True, user_id=user['id'], email=user['email'])

        return {
            'success': True,
            'user': user,
            'requires_confirmation': not user['email_confirmed']
        }

    @staticmethod
    async def sign_in(email: str, password: str, remember_me: bool = False) -> Dict:
        """
        Authenticate with email and password

        Args:
            email: User email
            password: User password
            remember_me: Extended session flag

        Returns:
            dict: Authentication result with the local session
        """
        result = await supabase_client.sign_in(email, password)
        if not result['success']:
            audit.log_auth_event('sign_in', False, email=email)
            return {'success': False, 'error': SIGN_IN_FAILED}

        session = await AuthService.create_session(result['user'], result['session'], remember_me)
        if session is None:
            return {'success': False, 'error': 'Failed to create session'}

        audit.log_auth_event('sign_in', True, user_id=session.user_id, email=email)
        return {'success': True, 'user': result['user'], 'session': session}

    @staticmethod
    async def start_oauth(provider: str, next_path: Optional[str] = None) -> Dict:
        """
        Begin a PKCE OAuth sign in

        Args:
            provider: OAuth provider name
            next_path: Where to land after the callback

        Returns:
            dict: Result with flow id and provider authorize URL
        """
        settings = get_settings()
        provider = (provider or "").lower()
        if provider not in settings.oauth_providers:
            return {'success': False, 'error': 'Unsupported OAuth provider'}

        verifier, challenge = generate_pkce_pair()
        flow_id = generate_flow_id()
        url = supabase_client.build_oauth_url(provider, settings.auth_callback_url, challenge)

        stored = await RedisSessionManager.create_oauth_flow(flow_id, {
            'provider': provider,
            'code_verifier': verifier,
            'next': safe_redirect_path(next_path)
        }, settings.oauth_flow_ttl_seconds)

        if not stored:
            return {'success': False, 'error': 'Failed to start sign in'}

        logger.info("OAuth flow started", provider=provider, flow=token_preview(flow_id))
        return {'success': True, 'flow_id': flow_id, 'url': url}

    @staticmethod
    async def complete_oauth(flow_id: Optional[str], code: Optional[str]) -> Dict:
        """
        Finish an OAuth sign in from the provider callback

        Args:
            flow_id: Flow identifier from the browser cookie
            code: Authorization code from the callback query

        Returns:
            dict: Result with the local session and post-login path
        """
        if not code or not flow_id:
            return {'success': False, 'error': AUTH_CODE_ERROR}

        flow = await RedisSessionManager.pop_oauth_flow(flow_id)
        if not flow:
            return {'success': False, 'error': AUTH_CODE_ERROR}

        result = await supabase_client.exchange_code(
            code, flow['code_verifier'], redirect_to=get_settings().auth_callback_url
        )
        if not result['success']:
            audit.log_auth_event('oauth_sign_in', False, details={'provider': flow.get('provider')})
            return {'success': False, 'error': AUTH_CODE_ERROR}

        session = await AuthService.create_session(result['user'], result['session'])
        if session is None:
            return {'success': False, 'error': AUTH_CODE_ERROR}

        audit.log_auth_event('oauth_sign_in', True, user_id=session.user_id, email=session.email,
                             details={'provider': flow.get('provider')})
        return {'success': True, 'session': session, 'next': safe_redirect_path(flow.get('next'))}

    @staticmethod
    async def confirm_email_link(token_hash: Optional[str], otp_type: Optional[str]) -> Dict:
        """
        Verify a confirmation or recovery email link

        Recovery links produce a session flagged as recovery, which can only
        be used to set a new password.
        """
        if not token_hash or otp_type not in EMAIL_LINK_TYPES:
            return {'success': False, 'error': AUTH_CODE_ERROR}

        result = await supabase_client.verify_otp(token_hash, otp_type)
        if not result['success']:
            audit.log_auth_event('email_link', False, details={'type': otp_type})
            return {'success': False, 'error': AUTH_CODE_ERROR}

        recovery = otp_type == "recovery"
        session = await AuthService.create_session(result['user'], result['session'], recovery=recovery)
        if session is None:
            return {'success': False, 'error': AUTH_CODE_ERROR}

        audit.log_auth_event('email_link', True, user_id=session.user_id, details={'type': otp_type})
        return {'success': True, 'session': session, 'recovery': recovery}

    @staticmethod
    async def request_password_reset(email: str) -> Dict:
        """
        Send password reset instructions

        The hosted service does not reveal whether the email exists.
        """
        settings = get_settings()
        redirect_to = f"{settings.email_confirm_url}?next=/reset-password"
        result = await supabase_client.send_password_reset(email, redirect_to)

        audit.log_auth_event('password_reset_requested', result['success'], email=email)
        if not result['success']:
            return {'success': False, 'error': RESET_REQUEST_FAILED}
        return {'success': True, 'message': 'Reset instructions sent! Check your email.'}

    @staticmethod
    async def complete_password_reset(session_token: str, new_password: str) -> Dict:
        """
        Set a new password from a recovery session, then end the session

        Args:
            session_token: Local session token
            new_password: Validated new password

        Returns:
            dict: Reset result
        """
        session = await AuthService.resolve_session(session_token)
        if session is None:
            return {'success': False, 'error': RESET_FAILED}

        result = await supabase_client.update_password(session.access_token, session.refresh_token, new_password)
        if not result['success']:
            audit.log_auth_event('password_reset', False, user_id=session.user_id)
            return {'success': False, 'error': RESET_FAILED}

        await AuthService.sign_out(session_token)
        audit.log_auth_event('password_reset', True, user_id=session.user_id)
        return {'success': True, 'message': 'Password updated successfully'}

    @staticmethod
    async def change_password(session: UserSession, current_password: str, new_password: str) -> Dict:
        """
        Change password after re-verifying the current one

        Args:
            session: Current local session
            current_password: Current password
            new_password: Validated new password

        Returns:
            dict: Password change result
        """
        verified = await supabase_client.sign_in(session.email or "", current_password)
        if not verified['success']:
            audit.log_auth_event('password_changed', False, user_id=session.user_id)
            return {'success': False, 'error': 'Current password is incorrect'}

        hosted = verified['session']
        result = await supabase_client.update_password(hosted['access_token'], hosted['refresh_token'], new_password)

        # The verification sign in opened a hosted session of its own
        revoked = await supabase_client.sign_out(hosted['access_token'], hosted['refresh_token'])
        if not revoked['success']:
            logger.warning("Failed to revoke password verification session", user_id=session.user_id)

        if not result['success']:
            audit.log_auth_event('password_changed', False, user_id=session.user_id)
            return {'success': False, 'error': 'Failed to update password. Please try again.'}

        audit.log_auth_event('password_changed', True, user_id=session.user_id)
        return {'success': True, 'message': 'Your password has been updated successfully.'}

    @staticmethod
    async def sign_out(session_token: Optional[str]) -> Dict:
        """
        Sign out and invalidate the local session

        The local session is always cleared first; a failure to revoke the
        hosted session is reported through remote_signed_out.
        """
        if not session_token:
            return {'success': True, 'remote_signed_out': False}

        data = await RedisSessionManager.get_session(session_token)
        if not data:
            return {'success': True, 'remote_signed_out': False}

        session = UserSession.from_dict(data)
        await RedisSessionManager.delete_session(session_token)

        result = await supabase_client.sign_out(session.access_token, session.refresh_token)
        if not result['success']:
            logger.error("Hosted sign out failed, local session cleared", user_id=session.user_id)

        audit.log_auth_event('sign_out', True, user_id=session.user_id,
                             details={'remote_signed_out': result['success']})
        return {'success': True, 'remote_signed_out': result['success']}

    @staticmethod
    async def refresh(session: UserSession) -> Optional[UserSession]:
        """
        Refresh the hosted tokens of a session and write them back

        Returns:
            Updated session, or None if the hosted session is gone (the local
            session is then deleted)
        """
        result = await supabase_client.refresh_session(session.refresh_token)
        if not result['success']:
            logger.info("Hosted session refresh failed, ending session", user_id=session.user_id)
            await RedisSessionManager.delete_session(session.session_token)
            return None

        hosted = result['session']
        session.access_token = hosted['access_token']
        session.refresh_token = hosted['refresh_token']
        session.access_expires_at = hosted['expires_at']
        session.email = result['user'].get('email') or session.email

        if not await RedisSessionManager.update_session(session.session_token, session.to_dict()):
            logger.warning("Session vanished during refresh", user_id=session.user_id)
            return None
        return session

    @staticmethod
    async def resolve_session(session_token: Optional[str]) -> Optional[UserSession]:
        """
        Get the live session for a token, refreshing hosted tokens when needed

        Args:
            session_token: Local session token

        Returns:
            UserSession or None when signed out
        """
        if not session_token:
            return None

        data = await RedisSessionManager.get_session(session_token)
        if not data:
            return None

        session = UserSession.from_dict(data)
        if session.needs_refresh(get_settings().token_refresh_margin_seconds):
            return await AuthService.refresh(session)
        return session

    @staticmethod
    async def get_current_user_details(session: UserSession) -> Dict:
        """Fetch the up-to-date user record from the hosted service"""
        return await supabase_client.get_user(session.access_token)
