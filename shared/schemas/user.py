"""
User data schemas for Starter Portal

Pydantic models for auth and profile request validation and serialization.
"""

from typing import Optional, Dict, Any
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator, ValidationInfo

from shared.utils.validators import (
    validate_email, validate_password, validate_passwords_match,
    validate_username, validate_full_name, validate_bio, validate_website,
    MAX_PASSWORD_SCORE
)


def _check(message: Optional[str], value):
    if message:
        raise ValueError(message)
    return value


class SignUpSchema(BaseModel):
    """Schema for creating a new account"""
    email: str
    password: str = Field(..., max_length=128)
    confirm_password: str = Field(..., max_length=128)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        v = v.strip().lower()
        return _check(validate_email(v), v)

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        return _check(validate_password(v), v)

    @field_validator('confirm_password')
    @classmethod
    def validate_password_match(cls, v, info: ValidationInfo):
        if 'password' in info.data:
            _check(validate_passwords_match(info.data['password'], v), v)
        return v


class SignInSchema(BaseModel):
    """Schema for password sign in"""
    email: str
    password: str = Field(..., min_length=1)
    remember_me: Optional[bool] = False

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        v = v.strip().lower()
        return _check(validate_email(v), v)


class PasswordResetRequestSchema(BaseModel):
    """Schema for password reset request"""
    email: str

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        v = v.strip().lower()
        return _check(validate_email(v), v)


class PasswordResetCompleteSchema(BaseModel):
    """Schema for setting a new password from a recovery session"""
    password: str = Field(..., max_length=128)
    confirm_password: str = Field(..., max_length=128)

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        return _check(validate_password(v), v)

    @field_validator('confirm_password')
    @classmethod
    def validate_password_match(cls, v, info: ValidationInfo):
        if 'password' in info.data:
            _check(validate_passwords_match(info.data['password'], v), v)
        return v


class PasswordChangeSchema(BaseModel):
    """Schema for password change"""
    current_password: str
    new_password: str = Field(..., max_length=128)
    confirm_password: str = Field(..., max_length=128)

    @field_validator('current_password')
    @classmethod
    def validate_current_password(cls, v):
        if not v:
            raise ValueError('Current password is required.')
        return v

    @field_validator('new_password')
    @classmethod
    def validate_new_password(cls, v):
        if validate_password(v):
            raise ValueError('New password must be at least 8 characters.')
        return v

    @field_validator('confirm_password')
    @classmethod
    def validate_password_match(cls, v, info: ValidationInfo):
        if 'new_password' in info.data:
            _check(validate_passwords_match(info.data['new_password'], v, "Passwords don't match."), v)
        return v


class PasswordStrengthRequestSchema(BaseModel):
    """Schema for password strength check"""
    password: str = ""


class PasswordStrengthSchema(BaseModel):
    """Advisory password strength"""
    score: int = Field(..., ge=0, le=MAX_PASSWORD_SCORE)
    max_score: int = MAX_PASSWORD_SCORE
    label: str
    checks: Dict[str, bool] = {}


class ProfileUpdateSchema(BaseModel):
    """Schema for updating profile information (partial)"""
    username: Optional[str] = None
    full_name: Optional[str] = None
    bio: Optional[str] = None
    website: Optional[str] = None

    @field_validator('username')
    @classmethod
    def validate_username(cls, v):
        if v is None:
            return v
        v = v.strip()
        return _check(validate_username(v), v)

    @field_validator('full_name')
    @classmethod
    def validate_full_name(cls, v):
        return _check(validate_full_name(v), v)

    @field_validator('bio')
    @classmethod
    def validate_bio(cls, v):
        return _check(validate_bio(v), v)

    @field_validator('website')
    @classmethod
    def validate_website(cls, v):
        if v is not None:
            v = v.strip()
        return _check(validate_website(v), v)


class ProfileSchema(BaseModel):
    """Schema for profile responses"""
    id: str
    email: Optional[str] = None
    username: Optional[str] = None
    full_name: Optional[str] = None
    bio: Optional[str] = None
    website: Optional[str] = None
    avatar_url: Optional[str] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UserSchema(BaseModel):
    """Authenticated user as reported by the hosted auth service"""
    id: str
    email: Optional[str] = None
    email_confirmed: bool = False
    provider: Optional[str] = None
    created_at: Optional[datetime] = None
    last_sign_in_at: Optional[datetime] = None
    metadata: Dict[str, Any] = {}

    model_config = ConfigDict(from_attributes=True)


class AuthTokensSchema(BaseModel):
    """Local session token handed to API clients"""
    access_token: str
    token_type: str = "bearer"
    expires_at: str
