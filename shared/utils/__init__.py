"""
Shared utilities for Starter Portal

This package contains common utilities used across services.
"""

from .logger import setup_logging, get_logger, RequestLogger, AuditLogger, get_audit_logger, get_request_logger
from .security import generate_session_token, generate_flow_id, generate_pkce_pair, pkce_challenge, token_preview

__all__ = [
    "setup_logging",
    "get_logger",
    "RequestLogger",
    "AuditLogger",
    "get_audit_logger",
    "get_request_logger",
    "generate_session_token",
    "generate_flow_id",
    "generate_pkce_pair",
    "pkce_challenge",
    "token_preview",
]

__version__ = "1.0.0"
