"""
Pytest configuration for portal-service tests
"""

import asyncio
import json
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from app.config import get_settings, reset_settings
from app.models.user import UserSession

# Configure pytest-asyncio mode for version 1.x
pytest_plugins = ('pytest_asyncio',)


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as an asyncio test."
    )


class FakeRedis:
    """In-memory stand-in for the async Redis client"""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    async def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    async def get(self, key):
        # Yield like a network round trip so concurrent callers interleave
        await asyncio.sleep(0)
        return self.store.get(key)

    async def getdel(self, key):
        self.ttls.pop(key, None)
        return self.store.pop(key, None)

    async def set(self, key, value, keepttl=False, xx=False):
        if xx and key not in self.store:
            return None
        self.store[key] = value
        if not keepttl:
            self.ttls.pop(key, None)
        return True

    async def delete(self, *keys):
        deleted = 0
        for key in keys:
            if key in self.store:
                del self.store[key]
                self.ttls.pop(key, None)
                deleted += 1
        return deleted

    async def ping(self):
        return True


def hosted_user(user_id="user-123", email="test@example.com", confirmed=True, provider="email"):
    """Flattened hosted user as returned by the Supabase gateway"""
    return {
        'id': user_id,
        'email': email,
        'email_confirmed': confirmed,
        'provider': provider,
        'created_at': None,
        'last_sign_in_at': None,
        'metadata': {}
    }


def hosted_session(access_token="access-1", refresh_token="refresh-1", expires_in=3600):
    return {
        'access_token': access_token,
        'refresh_token': refresh_token,
        'expires_at': int(time.time()) + expires_in
    }


@pytest.fixture(autouse=True)
def portal_settings(monkeypatch):
    """Configured settings for every test"""
    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")
    monkeypatch.setenv("SUPABASE_SERVICE_KEY", "service-key")
    monkeypatch.setenv("SITE_URL", "http://testserver")
    monkeypatch.setenv("ENVIRONMENT", "test")
    reset_settings()
    yield get_settings()
    reset_settings()


@pytest.fixture
def fake_redis():
    """Patch the session store onto an in-memory Redis"""
    redis = FakeRedis()
    with patch("app.utils.redis_session.get_redis_client", AsyncMock(return_value=redis)):
        yield redis


@pytest.fixture
def make_session(fake_redis):
    """Store a local session directly and return it"""

    def _make(user_id="user-123", email="test@example.com", recovery=False, expires_in=3600,
              token="session-token-abc"):
        session = UserSession(
            session_token=token,
            user_id=user_id,
            email=email,
            access_token="access-1",
            refresh_token="refresh-1",
            access_expires_at=int(time.time()) + expires_in,
            expires_at=(datetime.now(timezone.utc) + timedelta(days=7)).isoformat(),
            provider="email",
            recovery=recovery
        )
        fake_redis.store[f"session:{token}"] = json.dumps(session.to_dict())
        fake_redis.ttls[f"session:{token}"] = 7 * 86400
        return session

    return _make


@pytest.fixture
def client(fake_redis):
    """Test client with Redis patched (lifespan is not run)"""
    from fastapi.testclient import TestClient
    from app.main import app
    return TestClient(app)
