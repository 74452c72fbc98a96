"""
Validation utilities for Starter Portal

Form predicates shared by the API schemas and the HTML pages.
Each validator returns an error message, or None when the value is valid.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import urlparse

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
USERNAME_PATTERN = re.compile(r'^[a-zA-Z0-9_-]+$')

MIN_PASSWORD_LENGTH = 8
USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 50
FULL_NAME_MAX_LENGTH = 100
BIO_MAX_LENGTH = 500
MAX_PASSWORD_SCORE = 5

STRENGTH_LABELS = {
    0: "Very weak",
    1: "Very weak",
    2: "Weak",
    3: "Fair",
    4: "Good",
    5: "Strong",
}


@dataclass
class PasswordStrength:
    """Advisory password strength score"""
    score: int
    label: str
    checks: Dict[str, bool] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            'score': self.score,
            'max_score': MAX_PASSWORD_SCORE,
            'label': self.label,
            'checks': dict(self.checks)
        }


def validate_email(email: Optional[str]) -> Optional[str]:
    if not email or not EMAIL_PATTERN.match(email):
        return "Please enter a valid email address"
    return None


def validate_password(password: Optional[str]) -> Optional[str]:
    if password is None or len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    return None


def validate_passwords_match(password: Optional[str], confirm_password: Optional[str],
                             message: str = "Passwords do not match") -> Optional[str]:
    if password != confirm_password:
        return message
    return None


def password_strength(password: Optional[str]) -> PasswordStrength:
    """
    Score a password from 0 to 5

    One point each for: at least 8 characters, a lowercase letter, an
    uppercase letter, a digit, and a character that is not a letter or digit.
    """
    password = password or ""
    checks = {
        'length': len(password) >= MIN_PASSWORD_LENGTH,
        'lowercase': re.search(r'[a-z]', password) is not None,
        'uppercase': re.search(r'[A-Z]', password) is not None,
        'number': re.search(r'[0-9]', password) is not None,
        'special': re.search(r'[^A-Za-z0-9]', password) is not None,
    }
    score = sum(1 for passed in checks.values() if passed)
    return PasswordStrength(score=score, label=STRENGTH_LABELS[score], checks=checks)


def validate_username(username: Optional[str]) -> Optional[str]:
    username = username or ""
    if len(username) < USERNAME_MIN_LENGTH:
        return f"Username must be at least {USERNAME_MIN_LENGTH} characters."
    if len(username) > USERNAME_MAX_LENGTH:
        return f"Username must not be longer than {USERNAME_MAX_LENGTH} characters."
    if not USERNAME_PATTERN.match(username):
        return "Username can only include letters, numbers, underscores, and hyphens."
    return None


def validate_full_name(full_name: Optional[str]) -> Optional[str]:
    if full_name and len(full_name) > FULL_NAME_MAX_LENGTH:
        return f"Full name must not be longer than {FULL_NAME_MAX_LENGTH} characters."
    return None


def validate_bio(bio: Optional[str]) -> Optional[str]:
    if bio and len(bio) > BIO_MAX_LENGTH:
        return f"Bio must not be longer than {BIO_MAX_LENGTH} characters."
    return None


def validate_website(website: Optional[str]) -> Optional[str]:
    """Empty is allowed; anything else must be an absolute http(s) URL"""
    if not website:
        return None
    parsed = urlparse(website)
    if parsed.scheme not in ("http", "https") or not parsed.netloc or " " in website:
        return "Please enter a valid URL."
    return None


def validate_avatar(filename: Optional[str], content_type: Optional[str], size: int,
                    max_bytes: int) -> Optional[str]:
    if not filename or size <= 0:
        return "You must select an image to upload."
    if not content_type or not content_type.startswith("image/"):
        return "Avatar must be an image file."
    if size > max_bytes:
        return f"Avatar must be {max_bytes // (1024 * 1024)}MB or smaller."
    return None


def validate_sign_up_form(email: Optional[str], password: Optional[str],
                          confirm_password: Optional[str]) -> Dict[str, str]:
    """
    Validate every sign-up field

    Returns:
        dict: field name -> error message, empty when the form is valid
    """
    errors = {}

    email_error = validate_email(email)
    if email_error:
        errors['email'] = email_error

    password_error = validate_password(password)
    if password_error:
        errors['password'] = password_error

    match_error = validate_passwords_match(password, confirm_password)
    if match_error:
        errors['confirm_password'] = match_error

    return errors


def validate_profile_form(username: Optional[str], full_name: Optional[str],
                          bio: Optional[str], website: Optional[str]) -> Dict[str, str]:
    """Validate every profile field, returning field name -> error message"""
    errors = {}
    checks = {
        'username': validate_username(username),
        'full_name': validate_full_name(full_name),
        'bio': validate_bio(bio),
        'website': validate_website(website),
    }
    for name, message in checks.items():
        if message:
            errors[name] = message
    return errors


def safe_redirect_path(path: Optional[str], default: str = "/dashboard") -> str:
    """
    Restrict post-login redirects to same-site paths

    Only absolute paths such as "/profile" are honoured. Protocol-relative
    ("//host"), backslash and scheme-bearing values fall back to the default.
    """
    if not path or not path.startswith("/") or path.startswith("//") or "\\" in path:
        return default
    parsed = urlparse(path)
    if parsed.scheme or parsed.netloc:
        return default
    return path
