"""
Profile Service
Display name, bio, website and avatar management
"""

import os
import secrets
from datetime import datetime, timezone
from typing import Dict, Optional
import structlog

from shared.utils.logger import get_audit_logger
from shared.utils.validators import validate_avatar

from app.config import get_settings
from app.utils.supabase_client import supabase_client

logger = structlog.get_logger(__name__)
audit = get_audit_logger()

PROFILE_FIELDS = ('username', 'full_name', 'bio', 'website')


def _empty_profile(user: Dict) -> Dict:
    return {
        'id': user['id'],
        'email': user.get('email'),
        'username': None,
        'full_name': None,
        'bio': None,
        'website': None,
        'avatar_url': None,
        'updated_at': None
    }


def avatar_extension(filename: str, content_type: Optional[str]) -> str:
    """File extension for a stored avatar, from the upload name or its content type"""
    ext = os.path.splitext(filename or "")[1].lstrip('.').lower()
    if ext and ext.isalnum():
        return ext
    if content_type and '/' in content_type:
        subtype = content_type.split('/', 1)[1].split('+', 1)[0].lower()
        if subtype.isalnum():
            return subtype
    return "png"


class ProfileService:
    """User profile service"""

    @staticmethod
    async def get_profile(user: Dict) -> Dict:
        """
        Get profile of the current user

        A user without a profile row gets empty fields.

        Returns:
            dict: Result with profile
        """
        result = await supabase_client.get_profile(user['id'])
        if not result['success']:
            return {'success': False, 'error': 'Failed to load profile'}

        profile = _empty_profile(user)
        if result['profile']:
            profile.update({k: v for k, v in result['profile'].items() if k in profile})
        profile['email'] = user.get('email')
        return {'success': True, 'profile': profile}

    @staticmethod
    async def update_profile(user: Dict, changes: Dict) -> Dict:
        """
        Update profile fields

        Args:
            user: Current user
            changes: Validated fields to change (unset fields are left untouched)

        Returns:
            dict: Result with the updated profile
        """
        fields = {k: v for k, v in changes.items() if k in PROFILE_FIELDS}
        if 'website' in fields and not fields['website']:
            fields['website'] = None
        fields['updated_at'] = datetime.now(timezone.utc).isoformat()

        result = await supabase_client.upsert_profile(user['id'], fields)
        if not result['success']:
            return {'success': False, 'error': 'Failed to update profile. Please try again.'}

        audit.log_user_action(user['id'], 'profile_update', 'profile', user['id'],
                              details={'fields': sorted(k for k in fields if k != 'updated_at')})
        return await ProfileService.get_profile(user)

    @staticmethod
    async def get_avatar_url(user: Dict) -> Dict:
        """Get the avatar URL of the current user"""
        result = await supabase_client.get_profile(user['id'])
        if not result['success']:
            return {'success': False, 'error': 'Failed to load avatar'}
        profile = result['profile'] or {}
        return {'success': True, 'avatar_url': profile.get('avatar_url')}

    @staticmethod
    async def upload_avatar(user: Dict, filename: str, content_type: str, content: bytes) -> Dict:
        """
        Store a new avatar image and point the profile at it

        Args:
            user: Current user
            filename: Uploaded file name
            content_type: Uploaded content type
            content: Image bytes

        Returns:
            dict: Result with the public avatar URL
        """
        settings = get_settings()
        error = validate_avatar(filename, content_type, len(content or b""), settings.avatar_max_bytes)
        if error:
            return {'success': False, 'error': error}

        path = f"avatars/{user['id']}-{secrets.token_hex(8)}.{avatar_extension(filename, content_type)}"
        upload = await supabase_client.upload_avatar(path, content, content_type)
        if not upload['success']:
            return {'success': False, 'error': 'Failed to upload avatar. Please try again.'}

        result = await supabase_client.upsert_profile(user['id'], {
            'avatar_url': upload['public_url'],
            'updated_at': datetime.now(timezone.utc).isoformat()
        })
        if not result['success']:
            return {'success': False, 'error': 'Failed to upload avatar. Please try again.'}

        audit.log_user_action(user['id'], 'avatar_upload', 'avatar', path)
        return {'success': True, 'avatar_url': upload['public_url']}

    @staticmethod
    async def remove_avatar(user: Dict) -> Dict:
        """Clear the profile avatar (the stored object is kept)"""
        result = await supabase_client.upsert_profile(user['id'], {
            'avatar_url': None,
            'updated_at': datetime.now(timezone.utc).isoformat()
        })
        if not result['success']:
            return {'success': False, 'error': 'Failed to remove avatar.'}

        audit.log_user_action(user['id'], 'avatar_remove', 'avatar')
        return {'success': True, 'avatar_url': None}
