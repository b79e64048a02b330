# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0

"""
Logging utilities for the handoff service.

Provides specialized logging functions for:
- Application logs (operational)
- Audit logs (logins and redemptions)
- Security logs (forgery, replay, protocol violations)

Assumptions:
- All logs use structlog for structured output
- Nonces, tokens and secrets are never logged in full
"""
from typing import Any, Dict, Optional

from handoff.logging_config import get_logger

app_logger = get_logger("handoff.application")
audit_logger = get_logger("handoff.audit")
security_logger = get_logger("handoff.security")

SENSITIVE_FIELDS = {"secret", "token", "state", "nonce", "signed_nonce", "code", "session_id"}


def log_application_event(
    event: str,
    **kwargs: Any
) -> None:
    """Log an application operational event.

    Args:
        event: Event name (e.g., "oauth_redirect_built")
        **kwargs: Additional context (provider, mode, etc.)
    """
    app_logger.info(event, **_sanitize_data(kwargs))


def log_audit_event(
    user_id: Optional[str],
    operation: str,
    tenant: Optional[str] = None,
    **kwargs: Any
) -> None:
    """Log an audit event for a completed login step.

    Args:
        user_id: User the operation concerns (if known)
        operation: Operation type (oauth_login, nonce_redeemed, ...)
        tenant: Tenant namespace
        **kwargs: Additional context
    """
    audit_logger.info(
        "audit_event",
        user_id=user_id,
        operation=operation,
        tenant=tenant,
        **_sanitize_data(kwargs)
    )


def log_security_event(
    event: str,
    user_id: Optional[str] = None,
    reason: Optional[str] = None,
    **kwargs: Any
) -> None:
    """Log a security event for forensics.

    Args:
        event: Security event type (oauth_protocol_violation, oauth_invalid_state, ...)
        user_id: User involved (if known)
        reason: Reason for security event
        **kwargs: Additional context

    Assumptions:
    - Used for forged or replayed tokens and double bind/redeem attempts
    - Kept separate from ordinary user errors (denied consent, etc.)
    """
    security_logger.warning(
        event,
        user_id=user_id,
        reason=reason,
        **_sanitize_data(kwargs)
    )


def redact_token(value: Optional[str]) -> Optional[str]:
    """Shorten a token-like value to a loggable prefix.

    Args:
        value: Nonce, token or signed form

    Returns:
        str: First 8 characters followed by "...", or None
    """
    if not value:
        return value
    return value[:8] + "..."


def _sanitize_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """Redact sensitive data from log entries.

    Args:
        data: Dictionary that may contain sensitive data

    Returns:
        Dict: Dictionary with sensitive string fields shortened
    """
    if not data:
        return data

    sanitized = {}
    for key, value in data.items():
        if key.lower() in SENSITIVE_FIELDS and isinstance(value, str):
            sanitized[key] = redact_token(value)
        elif isinstance(value, dict):
            sanitized[key] = _sanitize_data(value)
        else:
            sanitized[key] = value

    return sanitized
