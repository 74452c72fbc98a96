"""
Supabase Client Configuration
Gateway to the hosted auth, database and storage service
"""

import asyncio
import time
from typing import Optional, Dict, Any
from urllib.parse import urlencode

import httpx
import structlog
from supabase import create_client, Client, ClientOptions

from app.config import get_settings

logger = structlog.get_logger(__name__)


class SupabaseNotConfiguredError(Exception):
    """Raised when hosted service credentials are missing"""


def _user_to_dict(user) -> Dict[str, Any]:
    """Flatten a hosted auth user"""
    app_metadata = getattr(user, 'app_metadata', None) or {}
    return {
        'id': str(user.id),
        'email': user.email,
        'email_confirmed': getattr(user, 'email_confirmed_at', None) is not None,
        'provider': app_metadata.get('provider'),
        'created_at': getattr(user, 'created_at', None),
        'last_sign_in_at': getattr(user, 'last_sign_in_at', None),
        'metadata': getattr(user, 'user_metadata', None) or {}
    }


def _session_to_dict(session) -> Dict[str, Any]:
    """Flatten a hosted auth session"""
    expires_at = session.expires_at
    if not expires_at:
        expires_at = int(time.time()) + int(session.expires_in or 3600)
    return {
        'access_token': session.access_token,
        'refresh_token': session.refresh_token,
        'expires_at': int(expires_at)
    }


def _auth_result(response, failure: str) -> Dict[str, Any]:
    """Shape an auth response carrying a user and a session"""
    if response and response.user and response.session:
        return {
            'success': True,
            'user': _user_to_dict(response.user),
            'session': _session_to_dict(response.session)
        }
    return {'success': False, 'error': failure}


class SupabaseClient:
    """Supabase client wrapper for authentication, profile and storage services

    User-facing auth calls run on a fresh anon client per call so that no
    session state is shared between users. Table and storage access goes
    through the service-role client and is always filtered by user id.
    """

    HEALTH_TIMEOUT = 5.0

    def __init__(self):
        self._admin: Optional[Client] = None
        self._http: Optional[httpx.AsyncClient] = None

    @property
    def settings(self):
        return get_settings()

    def is_available(self) -> bool:
        """Check if Supabase is configured"""
        return self.settings.supabase_configured

    def _require_config(self):
        if not self.is_available():
            raise SupabaseNotConfiguredError("Supabase credentials not found in environment")

    def _options(self) -> ClientOptions:
        return ClientOptions(auto_refresh_token=False, persist_session=False)

    def new_client(self) -> Client:
        """Create an isolated anon client"""
        self._require_config()
        return create_client(self.settings.supabase_url, self.settings.supabase_anon_key, options=self._options())

    def admin_client(self) -> Client:
        """Get the service-role client (falls back to the anon key)"""
        self._require_config()
        if self._admin is None:
            key = self.settings.supabase_service_key or self.settings.supabase_anon_key
            if not self.settings.supabase_service_key:
                logger.warning("SUPABASE_SERVICE_KEY not set, table access relies on anon policies")
            self._admin = create_client(self.settings.supabase_url, key, options=self._options())
            logger.info("Supabase service client initialized")
        return self._admin

    async def start(self):
        """Initialize the HTTP client used for health checks"""
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(self.HEALTH_TIMEOUT))

    async def stop(self):
        """Close the HTTP client"""
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def sign_up(self, email: str, password: str, redirect_to: Optional[str] = None,
                      metadata: Optional[dict] = None) -> Dict[str, Any]:
        """
        Sign up new user with Supabase Auth

        Args:
            email: User email
            password: User password
            redirect_to: Where the confirmation link should land
            metadata: Additional user metadata

        Returns:
            dict: Sign up result
        """
        client = self.new_client()
        options = {"data": metadata or {}}
        if redirect_to:
            options["email_redirect_to"] = redirect_to

        try:
            response = await asyncio.to_thread(client.auth.sign_up, {
                "email": email,
                "password": password,
                "options": options
            })
        except Exception as e:
            logger.error("Supabase sign up error", error=str(e))
            return {'success': False, 'error': str(e)}

        if not response.user:
            return {'success': False, 'error': 'Failed to create account'}

        return {
            'success': True,
            'user': _user_to_dict(response.user),
            'session': _session_to_dict(response.session) if response.session else None
        }

    async def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        """
        Sign in user with email and password

        Returns:
            dict: Result with user and hosted session tokens
        """
        client = self.new_client()
        try:
            response = await asyncio.to_thread(client.auth.sign_in_with_password, {
                "email": email,
                "password": password
            })
        except Exception as e:
            logger.warning("Supabase sign in error", error=str(e))
            return {'success': False, 'error': str(e)}

        return _auth_result(response, 'Invalid credentials')

    def build_oauth_url(self, provider: str, redirect_to: str, code_challenge: str) -> str:
        """
        Build the hosted authorize URL for a PKCE OAuth flow

        Args:
            provider: OAuth provider name (e.g. "google")
            redirect_to: Callback URL on this site
            code_challenge: S256 PKCE challenge

        Returns:
            str: URL the browser should be sent to
        """
        self._require_config()
        query = urlencode({
            "provider": provider,
            "redirect_to": redirect_to,
            "code_challenge": code_challenge,
            "code_challenge_method": "s256"
        })
        return f"{self.settings.supabase_url.rstrip('/')}/auth/v1/authorize?{query}"

    async def exchange_code(self, auth_code: str, code_verifier: str,
                            redirect_to: Optional[str] = None) -> Dict[str, Any]:
        """Exchange an OAuth authorization code for a session"""
        client = self.new_client()
        params = {"auth_code": auth_code, "code_verifier": code_verifier}
        if redirect_to:
            params["redirect_to"] = redirect_to

        try:
            response = await asyncio.to_thread(client.auth.exchange_code_for_session, params)
        except Exception as e:
            logger.error("Supabase code exchange error", error=str(e))
            return {'success': False, 'error': str(e)}

        return _auth_result(response, 'Failed to exchange code')

    async def verify_otp(self, token_hash: str, otp_type: str) -> Dict[str, Any]:
        """Verify an email link token hash (signup, email, recovery...)"""
        client = self.new_client()
        try:
            response = await asyncio.to_thread(client.auth.verify_otp, {
                "token_hash": token_hash,
                "type": otp_type
            })
        except Exception as e:
            logger.error("Supabase OTP verification error", otp_type=otp_type, error=str(e))
            return {'success': False, 'error': str(e)}

        return _auth_result(response, 'Invalid or expired link')

    async def send_password_reset(self, email: str, redirect_to: Optional[str] = None) -> Dict[str, Any]:
        """
        Send password reset email

        Args:
            email: User email
            redirect_to: Where the recovery link should land

        Returns:
            dict: Reset password response
        """
        client = self.new_client()
        options = {"redirect_to": redirect_to} if redirect_to else {}
        try:
            await asyncio.to_thread(client.auth.reset_password_for_email, email, options)
        except Exception as e:
            logger.error("Password reset error", error=str(e))
            return {'success': False, 'error': str(e)}

        logger.info("Password reset email requested")
        return {'success': True}

    async def update_password(self, access_token: str, refresh_token: str, new_password: str) -> Dict[str, Any]:
        """Update the password of the user owning the given session"""
        client = self.new_client()
        try:
            await asyncio.to_thread(client.auth.set_session, access_token, refresh_token)
            response = await asyncio.to_thread(client.auth.update_user, {"password": new_password})
        except Exception as e:
            logger.error("Password update error", error=str(e))
            return {'success': False, 'error': str(e)}

        if not response or not response.user:
            return {'success': False, 'error': 'Failed to update password'}
        return {'success': True, 'user': _user_to_dict(response.user)}

    async def get_user(self, access_token: str) -> Dict[str, Any]:
        """
        Verify access token and fetch the user it belongs to

        Args:
            access_token: Hosted JWT access token

        Returns:
            dict: Token verification response
        """
        client = self.new_client()
        try:
            response = await asyncio.to_thread(client.auth.get_user, access_token)
        except Exception as e:
            logger.warning("Token verification error", error=str(e))
            return {'success': False, 'error': str(e)}

        if not response or not response.user:
            return {'success': False, 'error': 'Invalid token'}
        return {'success': True, 'user': _user_to_dict(response.user)}

    async def refresh_session(self, refresh_token: str) -> Dict[str, Any]:
        """
        Refresh hosted session using refresh token

        Returns:
            dict: New session tokens
        """
        client = self.new_client()
        try:
            response = await asyncio.to_thread(client.auth.refresh_session, refresh_token)
        except Exception as e:
            logger.warning("Session refresh error", error=str(e))
            return {'success': False, 'error': str(e)}

        return _auth_result(response, 'Failed to refresh session')

    async def sign_out(self, access_token: str, refresh_token: str) -> Dict[str, Any]:
        """Revoke the hosted session (refresh tokens of this session)"""
        client = self.new_client()
        try:
            await asyncio.to_thread(client.auth.set_session, access_token, refresh_token)
            await asyncio.to_thread(client.auth.sign_out, {"scope": "local"})
        except Exception as e:
            logger.error("Supabase sign out error", error=str(e))
            return {'success': False, 'error': str(e)}

        return {'success': True}

    # ------------------------------------------------------------------
    # Database and storage
    # ------------------------------------------------------------------

    async def get_profile(self, user_id: str) -> Dict[str, Any]:
        """Fetch the profile row of a user (profile is None when missing)"""
        table = self.settings.profiles_table
        query = (
            self.admin_client().table(table)
            .select("id, username, full_name, bio, website, avatar_url, updated_at")
            .eq("id", user_id)
            .limit(1)
        )
        try:
            response = await asyncio.to_thread(query.execute)
        except Exception as e:
            logger.error("Error fetching profile", user_id=user_id, error=str(e))
            return {'success': False, 'error': str(e)}

        rows = response.data or []
        return {'success': True, 'profile': rows[0] if rows else None}

    async def upsert_profile(self, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Create or update the profile row of a user"""
        table = self.settings.profiles_table
        query = self.admin_client().table(table).upsert(dict(fields, id=user_id))
        try:
            response = await asyncio.to_thread(query.execute)
        except Exception as e:
            logger.error("Error updating profile", user_id=user_id, error=str(e))
            return {'success': False, 'error': str(e)}

        rows = response.data or []
        return {'success': True, 'profile': rows[0] if rows else dict(fields, id=user_id)}

    async def upload_avatar(self, path: str, content: bytes, content_type: str) -> Dict[str, Any]:
        """
        Upload avatar bytes to the avatar bucket

        Returns:
            dict: Result with the public URL of the stored object
        """
        bucket = self.admin_client().storage.from_(self.settings.avatar_bucket)
        try:
            await asyncio.to_thread(bucket.upload, path, content, {
                "content-type": content_type,
                "upsert": "false"
            })
            public_url = await asyncio.to_thread(bucket.get_public_url, path)
        except Exception as e:
            logger.error("Avatar upload error", path=path, error=str(e))
            return {'success': False, 'error': str(e)}

        return {'success': True, 'public_url': public_url}

    async def get_config_value(self, key: str) -> Dict[str, Any]:
        """Read a value from the app config table (value is None when missing)"""
        query = (
            self.admin_client().table(self.settings.app_config_table)
            .select("value")
            .eq("key", key)
            .limit(1)
        )
        try:
            response = await asyncio.to_thread(query.execute)
        except Exception as e:
            logger.error("Error fetching config value", key=key, error=str(e))
            return {'success': False, 'error': str(e)}

        rows = response.data or []
        return {'success': True, 'value': rows[0].get('value') if rows else None}

    async def health_check(self) -> Dict[str, Any]:
        """Probe the hosted auth health endpoint"""
        if not self.is_available():
            return {'success': False, 'error': 'Supabase not configured'}

        await self.start()
        url = f"{self.settings.supabase_url.rstrip('/')}/auth/v1/health"
        try:
            response = await self._http.get(url, headers={"apikey": self.settings.supabase_anon_key})
        except httpx.HTTPError as e:
            logger.error("Supabase health check failed", error=str(e))
            return {'success': False, 'error': str(e)}

        return {'success': response.status_code == 200, 'status_code': response.status_code}


# Global Supabase client instance
supabase_client = SupabaseClient()
