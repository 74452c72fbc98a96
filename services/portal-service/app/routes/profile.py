"""
Profile Routes
Profile fields and avatar management (JSON API)
"""

from fastapi import APIRouter, File, HTTPException, UploadFile, status
import structlog

from shared.schemas.user import ProfileSchema, ProfileUpdateSchema

from app.config import get_settings
from app.services.profile_service import ProfileService
from app.utils.dependencies import CurrentUser

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("", response_model=ProfileSchema)
async def get_profile(current_user: CurrentUser):
    """Get the current user's profile"""
    result = await ProfileService.get_profile(current_user)
    if not result['success']:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=result['error']
        )
    return result['profile']


@router.put("", response_model=ProfileSchema)
async def update_profile(data: ProfileUpdateSchema, current_user: CurrentUser):
    """Update display name, username, bio or website"""
    result = await ProfileService.update_profile(current_user, data.model_dump(exclude_unset=True))
    if not result['success']:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=result['error']
        )

    logger.info("Profile updated", user_id=current_user['id'])
    return result['profile']


@router.get("/avatar", response_model=dict)
async def get_avatar(current_user: CurrentUser):
    """Get the current avatar URL"""
    result = await ProfileService.get_avatar_url(current_user)
    if not result['success']:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=result['error']
        )
    return {"avatar_url": result['avatar_url']}


@router.post("/avatar", response_model=dict)
async def upload_avatar(current_user: CurrentUser, file: UploadFile = File(...)):
    """Upload a new avatar image (image/*, 2MB max)"""
    # One byte past the limit is enough for the size check to reject it
    content = await file.read(get_settings().avatar_max_bytes + 1)
    result = await ProfileService.upload_avatar(current_user, file.filename, file.content_type, content)
    if not result['success']:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=result['error']
        )
    return {
        "success": True,
        "message": "Your profile picture has been updated successfully.",
        "avatar_url": result['avatar_url']
    }


@router.delete("/avatar", response_model=dict)
async def remove_avatar(current_user: CurrentUser):
    """Remove the avatar from the profile"""
    result = await ProfileService.remove_avatar(current_user)
    if not result['success']:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=result['error']
        )
    return {"success": True, "message": "Your profile picture has been removed.", "avatar_url": None}
