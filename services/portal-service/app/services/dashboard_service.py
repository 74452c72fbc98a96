"""
Dashboard Service
Data behind the protected dashboard page
"""

from typing import Dict
import structlog

from shared.schemas.dashboard import (
    DashboardSchema, DashboardUserSchema, EnvironmentInfoSchema, DashboardStatsSchema
)

from app.config import get_settings
from app.utils.supabase_client import supabase_client

logger = structlog.get_logger(__name__)

WELCOME_MISSING = "No welcome message found"
WELCOME_ERROR = "Error fetching welcome message"


class DashboardService:
    """Dashboard service"""

    @staticmethod
    async def get_welcome_message() -> str:
        """Welcome message from the app config table"""
        settings = get_settings()
        result = await supabase_client.get_config_value(settings.welcome_message_key)
        if not result['success']:
            return WELCOME_ERROR
        return result['value'] or WELCOME_MISSING

    @staticmethod
    async def get_stats() -> DashboardStatsSchema:
        """Stat cards; there is no project or task store yet, so every count is zero"""
        return DashboardStatsSchema()

    @staticmethod
    async def get_dashboard(user: Dict) -> DashboardSchema:
        """Assemble the dashboard for the current user"""
        settings = get_settings()
        email = user.get('email') or ""

        return DashboardSchema(
            user=DashboardUserSchema(
                id=user['id'],
                email=user.get('email'),
                initial=email[:1].upper() or "?"
            ),
            welcome_message=await DashboardService.get_welcome_message(),
            environment=EnvironmentInfoSchema(
                supabase_url=settings.supabase_url or "Not set",
                environment=settings.environment or "Not set"
            ),
            stats=await DashboardService.get_stats()
        )
