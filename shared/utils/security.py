"""
Security utilities for Starter Portal

Session tokens and PKCE helpers. Password hashing and JWT issuance are owned
by the hosted auth service.
"""

import base64
import hashlib
import secrets
from typing import Optional, Tuple

SESSION_TOKEN_BYTES = 32
PKCE_VERIFIER_BYTES = 64


def generate_session_token() -> str:
    """Generate secure opaque session token"""
    return secrets.token_urlsafe(SESSION_TOKEN_BYTES)


def generate_flow_id() -> str:
    """Generate identifier for a pending OAuth flow"""
    return secrets.token_urlsafe(24)


def pkce_challenge(verifier: str) -> str:
    """
    Derive the S256 code challenge for a PKCE verifier

    Args:
        verifier: Code verifier

    Returns:
        Base64url encoded SHA-256 digest without padding
    """
    digest = hashlib.sha256(verifier.encode('ascii')).digest()
    return base64.urlsafe_b64encode(digest).decode('ascii').rstrip('=')


def generate_pkce_pair() -> Tuple[str, str]:
    """
    Generate a PKCE verifier and its S256 challenge (RFC 7636)

    Returns:
        (verifier, challenge)
    """
    verifier = secrets.token_urlsafe(PKCE_VERIFIER_BYTES)
    return verifier, pkce_challenge(verifier)


def token_preview(token: Optional[str], length: int = 10) -> str:
    """Shortened token for log lines"""
    if not token:
        return "<none>"
    return f"{token[:length]}..."
