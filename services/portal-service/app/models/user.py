"""
User Models
Local session model wrapping the hosted auth session
"""

import time
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from dataclasses import dataclass, field, asdict


@dataclass
class UserSession:
    """Local session stored in Redis"""
    session_token: str
    user_id: str
    email: Optional[str]
    access_token: str
    refresh_token: str
    access_expires_at: int
    expires_at: str
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    provider: Optional[str] = None
    recovery: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserSession":
        """Build from a stored session record, ignoring unknown keys"""
        known = {name: data[name] for name in cls.__dataclass_fields__ if name in data}
        known['access_expires_at'] = int(known.get('access_expires_at') or 0)
        known['recovery'] = bool(known.get('recovery', False))
        return cls(**known)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return asdict(self)

    def needs_refresh(self, margin_seconds: int = 60, now: Optional[float] = None) -> bool:
        """Check if the hosted access token expires within the margin"""
        current = time.time() if now is None else now
        return self.access_expires_at - margin_seconds <= current

    def to_user(self) -> Dict[str, Any]:
        """Current-user view exposed to routes"""
        return {
            'id': self.user_id,
            'email': self.email,
            'provider': self.provider,
            'recovery': self.recovery,
            'session_token': self.session_token
        }
