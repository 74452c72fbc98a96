"""
Dashboard Routes
"""

from fastapi import APIRouter

from shared.schemas.dashboard import DashboardSchema

from app.services.dashboard_service import DashboardService
from app.utils.dependencies import CurrentUser

router = APIRouter()


@router.get("", response_model=DashboardSchema)
async def get_dashboard(current_user: CurrentUser):
    """Dashboard data for the signed-in user"""
    return await DashboardService.get_dashboard(current_user)
