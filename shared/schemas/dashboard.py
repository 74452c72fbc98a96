"""
Dashboard schemas for Starter Portal
"""

from typing import Optional
from pydantic import BaseModel


class DashboardUserSchema(BaseModel):
    """Signed-in user summary shown in the navigation bar"""
    id: str
    email: Optional[str] = None
    initial: str = "?"


class EnvironmentInfoSchema(BaseModel):
    """Environment information widget"""
    supabase_url: str = "Not set"
    environment: str = "Not set"


class DashboardStatsSchema(BaseModel):
    """Dashboard stat cards"""
    total_projects: int = 0
    active_tasks: int = 0
    completed_tasks: int = 0


class DashboardSchema(BaseModel):
    """Dashboard payload"""
    user: DashboardUserSchema
    welcome_message: str
    environment: EnvironmentInfoSchema
    stats: DashboardStatsSchema
