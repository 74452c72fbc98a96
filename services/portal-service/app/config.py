"""
Configuration Management
Environment-based settings for the hosted auth service, Redis sessions and the web layer
"""

from typing import Optional, List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import structlog

logger = structlog.get_logger(__name__)


class Settings(BaseSettings):
    """Portal service settings"""

    # App config
    app_name: str = "Starter Portal"
    service_name: str = "portal-service"
    service_version: str = "1.0.0"
    environment: str = "development"
    debug: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: str = "default"
    logging_config_path: Optional[str] = None

    # Supabase (hosted auth, database and storage)
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_key: str = ""

    # Public base URL used for OAuth and email link redirects
    site_url: str = "http://localhost:8000"
    oauth_providers: List[str] = ["google"]

    # Redis (sessions and OAuth flow state)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0
    redis_sentinel_enabled: bool = False
    redis_sentinel_host: str = "localhost"
    redis_sentinel_port: int = 26379
    redis_sentinel_master: str = "mymaster"

    # Sessions
    session_ttl_days: int = 7
    remember_me_ttl_days: int = 30
    token_refresh_margin_seconds: int = 60
    oauth_flow_ttl_seconds: int = 600
    session_cookie_name: str = "portal_session"
    oauth_cookie_name: str = "portal_oauth_flow"
    cookie_secure: bool = False

    # Profiles and storage
    profiles_table: str = "profiles"
    app_config_table: str = "app_config"
    welcome_message_key: str = "starterAppWelcomeMessage"
    avatar_bucket: str = "avatars"
    avatar_max_bytes: int = 2 * 1024 * 1024

    # CORS
    cors_origins: List[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator('session_ttl_days', 'remember_me_ttl_days', 'oauth_flow_ttl_seconds')
    @classmethod
    def validate_positive_ttl(cls, v):
        if v <= 0:
            raise ValueError('TTL values must be positive')
        return v

    @field_validator('site_url')
    @classmethod
    def validate_site_url(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError('SITE_URL must start with http:// or https://')
        return v.rstrip('/')

    @property
    def supabase_configured(self) -> bool:
        """Check if hosted service credentials are present"""
        return bool(self.supabase_url and self.supabase_anon_key)

    @property
    def auth_callback_url(self) -> str:
        """OAuth redirect target registered with the hosted service"""
        return f"{self.site_url}/auth/callback"

    @property
    def email_confirm_url(self) -> str:
        """Target of confirmation and recovery email links"""
        return f"{self.site_url}/auth/confirm"

    def log_config(self):
        """Log configuration (without sensitive data)"""
        logger.info(
            "Portal configuration loaded",
            environment=self.environment,
            supabase_url=self.supabase_url or "Not set",
            supabase_configured=self.supabase_configured,
            site_url=self.site_url,
            redis_sentinel=self.redis_sentinel_enabled,
            oauth_providers=self.oauth_providers
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get settings instance"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings():
    """Drop the cached settings so the next call re-reads the environment"""
    global _settings
    _settings = None
