"""
Session Store Tests
"""

import asyncio
import json
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.models.user import UserSession
from app.utils import redis_session
from app.utils.redis_session import RedisSessionManager, init_redis_client


class TestRedisSessionManager:
    @pytest.mark.asyncio
    async def test_create_and_get_session(self, fake_redis):
        expires_at = datetime.now(timezone.utc) + timedelta(days=7)
        created = await RedisSessionManager.create_session("tok", expires_at, {'user_id': 'u1'})

        assert created is True
        assert json.loads(fake_redis.store["session:tok"]) == {'user_id': 'u1'}
        assert 7 * 86400 - 5 <= fake_redis.ttls["session:tok"] <= 7 * 86400
        assert await RedisSessionManager.get_session("tok") == {'user_id': 'u1'}

    @pytest.mark.asyncio
    async def test_create_session_rejects_past_expiry(self, fake_redis):
        expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
        assert await RedisSessionManager.create_session("tok", expires_at, {}) is False
        assert fake_redis.store == {}

    @pytest.mark.asyncio
    async def test_update_keeps_ttl(self, fake_redis):
        expires_at = datetime.now(timezone.utc) + timedelta(days=1)
        await RedisSessionManager.create_session("tok", expires_at, {'v': 1})
        ttl = fake_redis.ttls["session:tok"]

        assert await RedisSessionManager.update_session("tok", {'v': 2}) is True
        assert fake_redis.ttls["session:tok"] == ttl
        assert await RedisSessionManager.get_session("tok") == {'v': 2}

    @pytest.mark.asyncio
    async def test_update_missing_session(self, fake_redis):
        assert await RedisSessionManager.update_session("missing", {'v': 2}) is False
        assert "session:missing" not in fake_redis.store

    @pytest.mark.asyncio
    async def test_delete_session(self, fake_redis):
        fake_redis.store["session:tok"] = "{}"
        assert await RedisSessionManager.delete_session("tok") is True
        assert await RedisSessionManager.delete_session("tok") is False

    @pytest.mark.asyncio
    async def test_oauth_flow_is_single_use(self, fake_redis):
        await RedisSessionManager.create_oauth_flow("flow", {'code_verifier': 'v'}, 600)
        assert fake_redis.ttls["oauth:flow"] == 600

        flow = await RedisSessionManager.pop_oauth_flow("flow")
        assert flow['code_verifier'] == 'v'
        assert await RedisSessionManager.pop_oauth_flow("flow") is None

    @pytest.mark.asyncio
    async def test_oauth_flow_concurrent_pops(self, fake_redis):
        await RedisSessionManager.create_oauth_flow("flow", {'code_verifier': 'v'}, 600)

        results = await asyncio.gather(
            RedisSessionManager.pop_oauth_flow("flow"),
            RedisSessionManager.pop_oauth_flow("flow")
        )

        assert [r['code_verifier'] for r in results if r is not None] == ['v']
        assert "oauth:flow" not in fake_redis.store

    @pytest.mark.asyncio
    async def test_redis_errors_are_reported_as_failures(self):
        broken = AsyncMock()
        broken.get.side_effect = RedisConnectionError("down")
        broken.ping.side_effect = RedisConnectionError("down")
        with patch("app.utils.redis_session.get_redis_client", AsyncMock(return_value=broken)):
            assert await RedisSessionManager.get_session("tok") is None
            assert await RedisSessionManager.ping() is False

    @pytest.mark.asyncio
    async def test_init_closes_client_when_ping_fails(self, monkeypatch):
        monkeypatch.setattr(redis_session, "_redis_client", None)
        monkeypatch.setattr(redis_session, "_redis_initialized", False)
        unreachable = AsyncMock()
        unreachable.ping.side_effect = RedisConnectionError("refused")

        with patch("app.utils.redis_session.aioredis.Redis", return_value=unreachable):
            with pytest.raises(RedisConnectionError):
                await init_redis_client()

        unreachable.aclose.assert_awaited_once()
        assert redis_session._redis_client is None
        assert redis_session._redis_initialized is False


class TestUserSession:
    def _session(self, access_expires_at):
        return UserSession(
            session_token="tok",
            user_id="u1",
            email="a@b.co",
            access_token="a",
            refresh_token="r",
            access_expires_at=access_expires_at,
            expires_at=(datetime.now(timezone.utc) + timedelta(days=1)).isoformat()
        )

    def test_needs_refresh_within_margin(self):
        now = time.time()
        assert self._session(int(now) + 30).needs_refresh(60, now=now) is True
        assert self._session(int(now) + 600).needs_refresh(60, now=now) is False

    def test_round_trip_ignores_unknown_keys(self):
        session = self._session(123)
        data = dict(session.to_dict(), unexpected="x")
        assert UserSession.from_dict(data) == session

    def test_to_user(self):
        user = self._session(0).to_user()
        assert user['id'] == "u1"
        assert user['recovery'] is False
