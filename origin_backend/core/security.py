"""
Security utilities for the Origin mint backend

This module provides the caller authentication seam, security response
headers and helpers that keep secrets out of logs and API responses.
"""

import hmac
import logging
import re
from typing import Optional, Protocol

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Labelled private keys, JWTs and bearer credentials; bare 32-byte hex is
# not masked so transaction hashes stay readable
_SENSITIVE_PATTERNS = [
    (re.compile(r"(?i)(private[_ ]?key)\W{1,3}(?:0x)?[0-9a-f]{64}\b"), r"\1=****"),
    (re.compile(r"\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+"), "****"),
    (re.compile(r"(?i)bearer\s+[^\s'\"]+"), "Bearer ****"),
    (re.compile(r"(?i)(password|secret|private_key|jwt|token)['\"\s]*[:=]['\"\s]*[^\s'\",}]+"), r"\1=****"),
]


class Authenticator(Protocol):
    """Decides whether a request's credential header grants access."""

    def check(self, header: Optional[str]) -> bool:
        ...


class StaticKeyAuthenticator:
    """
    Shared static API key compared against the Authorization header.

    Only suitable behind a trusted network boundary: the key identifies no
    caller and grants every protected operation.
    """

    def __init__(self, api_key: Optional[str]):
        self._api_key = api_key

    def check(self, header: Optional[str]) -> bool:
        if not self._api_key or not header:
            return False
        return hmac.compare_digest(header.encode("utf-8"), self._api_key.encode("utf-8"))


def sanitize_log_data(data: str, max_length: int = 100) -> str:
    """
    Sanitize data for safe logging.

    Args:
        data: The data to sanitize
        max_length: Maximum length to log

    Returns:
        Sanitized data safe for logging
    """
    if not data:
        return ""

    if len(data) > max_length:
        data = data[:max_length] + "..."

    for pattern, replacement in _SENSITIVE_PATTERNS:
        data = pattern.sub(replacement, data)
    return data


def sanitize_error_message(error_msg: Optional[str], max_length: int = 500) -> str:
    """
    Sanitize error messages to prevent sensitive data leakage.

    Upstream bodies are passed back to callers as error detail, so they go
    through the same masking as log lines.

    Args:
        error_msg: The raw error message to sanitize
        max_length: Length after which the message is truncated

    Returns:
        A sanitized error message safe for API responses
    """
    if not error_msg:
        return "Unknown error occurred"

    sanitized = str(error_msg)
    for pattern, replacement in _SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length] + "..."

    return sanitized


def mask_sensitive_data(data: dict, sensitive_keys: Optional[list] = None) -> dict:
    """
    Mask sensitive data in dictionaries for safe logging/responses.

    Args:
        data: Dictionary containing potentially sensitive data
        sensitive_keys: List of keys to mask (uses defaults if None)

    Returns:
        Dictionary with sensitive values masked
    """
    if sensitive_keys is None:
        sensitive_keys = [
            "private_key", "password", "token", "jwt",
            "secret", "api_key", "authorization", "signed",
        ]

    masked_data = {}
    for key, value in data.items():
        if any(sensitive in key.lower() for sensitive in sensitive_keys):
            if isinstance(value, str) and len(value) > 8:
                masked_data[key] = value[:4] + "****"
            else:
                masked_data[key] = "****"
        else:
            masked_data[key] = value

    return masked_data


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers to every response.

    The backend only serves JSON and generated images, so the content
    security policy forbids everything except same-origin images.
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        security_headers = {
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            "Content-Security-Policy": "default-src 'none'; img-src 'self'; frame-ancestors 'none'",
            "Referrer-Policy": "strict-origin-when-cross-origin",
            "Permissions-Policy": (
                "camera=(), microphone=(), geolocation=(), "
                "payment=(), usb=(), magnetometer=(), gyroscope=()"
            ),
        }

        for header_name, header_value in security_headers.items():
            response.headers.setdefault(header_name, header_value)

        return response
