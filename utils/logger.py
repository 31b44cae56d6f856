"""
Logging utility functions and helpers.
"""

import logging
from typing import Any, Dict, Optional


SENSITIVE_FIELDS = {
    'password', 'token', 'secret', 'authorization', 'api_key',
    'access_token', 'refresh_token', 'hashed_password'
}


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: Module name (usually __name__)

    Returns:
        Configured logger

    Usage:
        from utils.logger import get_logger
        logger = get_logger(__name__)
    """
    return logging.getLogger(name)


def mask_token(value: str) -> str:
    """Keep the first 8 characters of a token so log lines can still be correlated."""
    if len(value) > 8:
        return f"{value[:8]}..."
    return "***REDACTED***"


def sanitize_log_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Remove sensitive information from log data.

    Args:
        data: Dictionary that may contain sensitive fields

    Returns:
        Sanitized copy safe for logging. Token-like string values keep a short
        prefix, everything else sensitive is fully redacted.
    """
    sanitized = data.copy()

    for key, value in sanitized.items():
        lowered = key.lower()
        if any(sensitive in lowered for sensitive in SENSITIVE_FIELDS):
            if isinstance(value, str) and "token" in lowered:
                sanitized[key] = mask_token(value)
            else:
                sanitized[key] = "***REDACTED***"

        # Recursively sanitize nested dictionaries
        elif isinstance(value, dict):
            sanitized[key] = sanitize_log_data(value)

    return sanitized


def log_request(
    logger: logging.Logger,
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    client_ip: str = "unknown",
    extra: Optional[Dict[str, Any]] = None
):
    """
    Log an HTTP request in a structured format.

    The level follows the status code: 5xx as ERROR, 4xx as WARNING,
    everything else as INFO.

    Usage:
        log_request(logger, "POST", "/auth/login", 200, 45.2, client_ip="10.0.0.1")
    """
    log_data = {
        "method": method,
        "path": path,
        "status_code": status_code,
        "duration_ms": round(duration_ms, 2),
        "client_ip": client_ip,
    }

    if extra:
        log_data.update(sanitize_log_data(extra))

    message = f'{client_ip} - "{method} {path}" {status_code}'
    if status_code >= 500:
        logger.error(message, extra=log_data)
    elif status_code >= 400:
        logger.warning(message, extra=log_data)
    else:
        logger.info(message, extra=log_data)
