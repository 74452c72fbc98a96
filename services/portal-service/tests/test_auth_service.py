"""
Authentication Service Tests
"""

import json
import time
from unittest.mock import AsyncMock, patch
from urllib.parse import urlparse, parse_qs

import pytest

from conftest import hosted_user, hosted_session
from shared.schemas.user import SignUpSchema
from shared.utils.security import pkce_challenge
from app.services.auth_service import AuthService, SIGN_IN_FAILED, SIGN_UP_FAILED, AUTH_CODE_ERROR
from app.utils.supabase_client import supabase_client


class TestSignUpAndSignIn:
    @pytest.mark.asyncio
    async def test_sign_up_requires_confirmation(self, fake_redis):
        mock = AsyncMock(return_value={'success': True, 'user': hosted_user(confirmed=False), 'session': None})
        with patch.object(supabase_client, "sign_up", mock):
            data = SignUpSchema(email="test@example.com", password="password1", confirm_password="password1")
            result = await AuthService.sign_up(data)

        assert result['success'] is True
        assert result['requires_confirmation'] is True
        assert mock.call_args.kwargs['redirect_to'] == "http://testserver/auth/confirm"
        assert "metadata" not in mock.call_args.kwargs
        assert fake_redis.store == {}

    @pytest.mark.asyncio
    async def test_sign_up_failure_message(self, fake_redis):
        with patch.object(supabase_client, "sign_up", AsyncMock(return_value={'success': False, 'error': 'exists'})):
            data = SignUpSchema(email="test@example.com", password="password1", confirm_password="password1")
            result = await AuthService.sign_up(data)

        assert result == {'success': False, 'error': SIGN_UP_FAILED}

    @pytest.mark.asyncio
    async def test_sign_in_creates_session(self, fake_redis, portal_settings):
        hosted = {'success': True, 'user': hosted_user(), 'session': hosted_session()}
        with patch.object(supabase_client, "sign_in", AsyncMock(return_value=hosted)):
            result = await AuthService.sign_in("test@example.com", "password1")

        session = result['session']
        stored = json.loads(fake_redis.store[f"session:{session.session_token}"])
        assert stored['user_id'] == "user-123"
        assert stored['access_token'] == "access-1"
        assert stored['recovery'] is False
        assert fake_redis.ttls[f"session:{session.session_token}"] <= portal_settings.session_ttl_days * 86400

    @pytest.mark.asyncio
    async def test_remember_me_extends_session(self, fake_redis, portal_settings):
        hosted = {'success': True, 'user': hosted_user(), 'session': hosted_session()}
        with patch.object(supabase_client, "sign_in", AsyncMock(return_value=hosted)):
            result = await AuthService.sign_in("test@example.com", "password1", remember_me=True)

        ttl = fake_redis.ttls[f"session:{result['session'].session_token}"]
        assert ttl > portal_settings.session_ttl_days * 86400

    @pytest.mark.asyncio
    async def test_sign_in_failure_is_generic(self, fake_redis):
        with patch.object(supabase_client, "sign_in", AsyncMock(return_value={'success': False, 'error': 'x'})):
            result = await AuthService.sign_in("test@example.com", "wrong")

        assert result == {'success': False, 'error': SIGN_IN_FAILED}
        assert fake_redis.store == {}


class TestOAuth:
    @pytest.mark.asyncio
    async def test_start_oauth_builds_pkce_url(self, fake_redis):
        result = await AuthService.start_oauth("google", "/profile")

        assert result['success'] is True
        query = parse_qs(urlparse(result['url']).query)
        assert query['provider'] == ["google"]
        assert query['redirect_to'] == ["http://testserver/auth/callback"]
        assert query['code_challenge_method'] == ["s256"]

        flow = json.loads(fake_redis.store[f"oauth:{result['flow_id']}"])
        assert query['code_challenge'] == [pkce_challenge(flow['code_verifier'])]
        assert flow['next'] == "/profile"

    @pytest.mark.asyncio
    async def test_start_oauth_unknown_provider(self, fake_redis):
        result = await AuthService.start_oauth("myspace")
        assert result['success'] is False
        assert fake_redis.store == {}

    @pytest.mark.asyncio
    async def test_start_oauth_sanitises_next(self, fake_redis):
        result = await AuthService.start_oauth("google", "https://evil.com")
        flow = json.loads(fake_redis.store[f"oauth:{result['flow_id']}"])
        assert flow['next'] == "/dashboard"

    @pytest.mark.asyncio
    async def test_complete_oauth(self, fake_redis):
        started = await AuthService.start_oauth("google", "/profile")
        flow = json.loads(fake_redis.store[f"oauth:{started['flow_id']}"])

        hosted = {'success': True, 'user': hosted_user(provider="google"), 'session': hosted_session()}
        exchange = AsyncMock(return_value=hosted)
        with patch.object(supabase_client, "exchange_code", exchange):
            result = await AuthService.complete_oauth(started['flow_id'], "auth-code")

        assert result['success'] is True
        assert result['next'] == "/profile"
        assert exchange.call_args.args == ("auth-code", flow['code_verifier'])
        assert f"oauth:{started['flow_id']}" not in fake_redis.store

    @pytest.mark.asyncio
    async def test_complete_oauth_without_code(self, fake_redis):
        result = await AuthService.complete_oauth("flow", None)
        assert result == {'success': False, 'error': AUTH_CODE_ERROR}

    @pytest.mark.asyncio
    async def test_complete_oauth_unknown_flow(self, fake_redis):
        exchange = AsyncMock()
        with patch.object(supabase_client, "exchange_code", exchange):
            result = await AuthService.complete_oauth("unknown", "code")

        assert result['error'] == AUTH_CODE_ERROR
        exchange.assert_not_called()


class TestEmailLinks:
    @pytest.mark.asyncio
    async def test_recovery_link_creates_recovery_session(self, fake_redis):
        hosted = {'success': True, 'user': hosted_user(), 'session': hosted_session()}
        with patch.object(supabase_client, "verify_otp", AsyncMock(return_value=hosted)):
            result = await AuthService.confirm_email_link("hash", "recovery")

        assert result['recovery'] is True
        assert result['session'].recovery is True

    @pytest.mark.asyncio
    async def test_unknown_link_type(self, fake_redis):
        verify = AsyncMock()
        with patch.object(supabase_client, "verify_otp", verify):
            result = await AuthService.confirm_email_link("hash", "bogus")

        assert result['error'] == AUTH_CODE_ERROR
        verify.assert_not_called()


class TestPasswords:
    @pytest.mark.asyncio
    async def test_request_reset_redirect(self, fake_redis):
        send = AsyncMock(return_value={'success': True})
        with patch.object(supabase_client, "send_password_reset", send):
            result = await AuthService.request_password_reset("test@example.com")

        assert result['message'] == "Reset instructions sent! Check your email."
        send.assert_awaited_once_with("test@example.com", "http://testserver/auth/confirm?next=/reset-password")

    @pytest.mark.asyncio
    async def test_complete_reset_ends_session(self, fake_redis, make_session):
        session = make_session(recovery=True)
        with patch.object(supabase_client, "update_password", AsyncMock(return_value={'success': True})), \
                patch.object(supabase_client, "sign_out", AsyncMock(return_value={'success': True})):
            result = await AuthService.complete_password_reset(session.session_token, "newpassword1")

        assert result['success'] is True
        assert f"session:{session.session_token}" not in fake_redis.store

    @pytest.mark.asyncio
    async def test_complete_reset_without_session(self, fake_redis):
        update = AsyncMock()
        with patch.object(supabase_client, "update_password", update):
            result = await AuthService.complete_password_reset("missing", "newpassword1")

        assert result['success'] is False
        update.assert_not_called()

    @pytest.mark.asyncio
    async def test_change_password_wrong_current(self, fake_redis, make_session):
        session = make_session()
        update = AsyncMock()
        with patch.object(supabase_client, "sign_in", AsyncMock(return_value={'success': False, 'error': 'x'})), \
                patch.object(supabase_client, "update_password", update):
            result = await AuthService.change_password(session, "wrong", "newpassword1")

        assert result == {'success': False, 'error': "Current password is incorrect"}
        update.assert_not_called()

    @pytest.mark.asyncio
    async def test_change_password(self, fake_redis, make_session):
        session = make_session()
        verified = {'success': True, 'user': hosted_user(), 'session': hosted_session("fresh", "fresh-r")}
        update = AsyncMock(return_value={'success': True})
        sign_out = AsyncMock(return_value={'success': True})
        with patch.object(supabase_client, "sign_in", AsyncMock(return_value=verified)), \
                patch.object(supabase_client, "update_password", update), \
                patch.object(supabase_client, "sign_out", sign_out):
            result = await AuthService.change_password(session, "password1", "newpassword1")

        assert result['success'] is True
        update.assert_awaited_once_with("fresh", "fresh-r", "newpassword1")
        sign_out.assert_awaited_once_with("fresh", "fresh-r")
        assert f"session:{session.session_token}" in fake_redis.store

    @pytest.mark.asyncio
    async def test_change_password_update_fails_still_revokes_verification(self, fake_redis, make_session):
        session = make_session()
        verified = {'success': True, 'user': hosted_user(), 'session': hosted_session("fresh", "fresh-r")}
        sign_out = AsyncMock(return_value={'success': False, 'error': 'x'})
        with patch.object(supabase_client, "sign_in", AsyncMock(return_value=verified)), \
                patch.object(supabase_client, "update_password", AsyncMock(return_value={'success': False})), \
                patch.object(supabase_client, "sign_out", sign_out):
            result = await AuthService.change_password(session, "password1", "newpassword1")

        assert result == {'success': False, 'error': 'Failed to update password. Please try again.'}
        sign_out.assert_awaited_once_with("fresh", "fresh-r")


class TestSessions:
    @pytest.mark.asyncio
    async def test_sign_out_clears_local_session_even_if_remote_fails(self, fake_redis, make_session):
        session = make_session()
        with patch.object(supabase_client, "sign_out", AsyncMock(return_value={'success': False, 'error': 'x'})):
            result = await AuthService.sign_out(session.session_token)

        assert result == {'success': True, 'remote_signed_out': False}
        assert fake_redis.store == {}

    @pytest.mark.asyncio
    async def test_sign_out_without_session(self, fake_redis):
        assert await AuthService.sign_out(None) == {'success': True, 'remote_signed_out': False}

    @pytest.mark.asyncio
    async def test_resolve_session_fresh_token(self, fake_redis, make_session):
        session = make_session(expires_in=3600)
        refresh = AsyncMock()
        with patch.object(supabase_client, "refresh_session", refresh):
            resolved = await AuthService.resolve_session(session.session_token)

        assert resolved.user_id == "user-123"
        refresh.assert_not_called()

    @pytest.mark.asyncio
    async def test_resolve_session_refreshes_expiring_token(self, fake_redis, make_session):
        session = make_session(expires_in=10)
        refreshed = {'success': True, 'user': hosted_user(), 'session': hosted_session("access-2", "refresh-2")}
        with patch.object(supabase_client, "refresh_session", AsyncMock(return_value=refreshed)):
            resolved = await AuthService.resolve_session(session.session_token)

        assert resolved.access_token == "access-2"
        stored = json.loads(fake_redis.store[f"session:{session.session_token}"])
        assert stored['refresh_token'] == "refresh-2"
        assert stored['access_expires_at'] > time.time() + 60

    @pytest.mark.asyncio
    async def test_failed_refresh_ends_session(self, fake_redis, make_session):
        session = make_session(expires_in=-10)
        with patch.object(supabase_client, "refresh_session", AsyncMock(return_value={'success': False})):
            resolved = await AuthService.resolve_session(session.session_token)

        assert resolved is None
        assert fake_redis.store == {}

    @pytest.mark.asyncio
    async def test_resolve_unknown_token(self, fake_redis):
        assert await AuthService.resolve_session("nope") is None
        assert await AuthService.resolve_session(None) is None
