"""
Configuration Tests
"""

import pytest
from pydantic import ValidationError

from app.config import Settings


class TestSettings:
    def test_defaults(self, portal_settings):
        assert portal_settings.session_ttl_days == 7
        assert portal_settings.remember_me_ttl_days == 30
        assert portal_settings.welcome_message_key == "starterAppWelcomeMessage"
        assert portal_settings.supabase_configured is True

    def test_redirect_urls(self, monkeypatch):
        monkeypatch.setenv("SITE_URL", "https://portal.example.com/")
        settings = Settings()
        assert settings.auth_callback_url == "https://portal.example.com/auth/callback"
        assert settings.email_confirm_url == "https://portal.example.com/auth/confirm"

    def test_rejects_site_url_without_scheme(self, monkeypatch):
        monkeypatch.setenv("SITE_URL", "portal.example.com")
        with pytest.raises(ValidationError):
            Settings()

    def test_rejects_non_positive_ttl(self, monkeypatch):
        monkeypatch.setenv("SESSION_TTL_DAYS", "0")
        with pytest.raises(ValidationError):
            Settings()

    def test_not_configured(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "")
        assert Settings().supabase_configured is False
