"""
Shared data schemas for Starter Portal

This package contains the request and response schemas used by the portal service.
"""

from .user import (
    SignUpSchema, SignInSchema, PasswordResetRequestSchema, PasswordResetCompleteSchema,
    PasswordChangeSchema, PasswordStrengthRequestSchema, PasswordStrengthSchema,
    ProfileUpdateSchema, ProfileSchema, UserSchema, AuthTokensSchema
)
from .dashboard import DashboardSchema, DashboardUserSchema, EnvironmentInfoSchema, DashboardStatsSchema

__all__ = [
    "SignUpSchema",
    "SignInSchema",
    "PasswordResetRequestSchema",
    "PasswordResetCompleteSchema",
    "PasswordChangeSchema",
    "PasswordStrengthRequestSchema",
    "PasswordStrengthSchema",
    "ProfileUpdateSchema",
    "ProfileSchema",
    "UserSchema",
    "AuthTokensSchema",
    "DashboardSchema",
    "DashboardUserSchema",
    "EnvironmentInfoSchema",
    "DashboardStatsSchema",
]

__version__ = "1.0.0"
