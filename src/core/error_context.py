"""Sensitive data sanitization for secure error logging.

This module prevents credentials (WSAA tokens and signs, signed CMS blobs,
key passphrases) from being exposed in logs or error responses. It provides
detection and redaction of sensitive fields based on a default pattern and
configuration, plus redaction of SOAP envelopes before they are logged.

Sanitization is applied at logging time, not storage time. Original data
remains unchanged, only logged copies are sanitized.
"""

from __future__ import annotations

import re
from functools import lru_cache
from re import Pattern
from typing import Any, Final

from src.core.config import get_settings
from src.core.constants import REDACTED

# Type alias for values we can sanitize
SanitizableValue = (
    str | int | float | bool | None | dict[str, Any] | list[Any] | tuple[Any, ...]
)

DEFAULT_SENSITIVE_PATTERN: Final[Pattern[str]] = re.compile(
    r"(password|passwd|passphrase|secret|token|api[_-]?key|authorization|"
    r"credential|private[_-]?key|^sign$|^cms$|connection[_-]?string)",
    re.IGNORECASE,
)

# Elements of WSAA and service envelopes that carry credentials
SOAP_SENSITIVE_ELEMENTS: Final[tuple[str, ...]] = ("token", "sign", "in0")
_SOAP_ELEMENT_PATTERN: Final[Pattern[str]] = re.compile(
    r"<((?:[\w-]+:)?(?:" + "|".join(SOAP_SENSITIVE_ELEMENTS) + r"))>"
    r"[^<]*"
    r"</\1>",
    re.IGNORECASE,
)

# Maximum depth for nested structure sanitization
MAX_DEPTH: Final[int] = 10


@lru_cache(maxsize=1)
def _get_sensitive_fields() -> list[str]:
    """Get the configured sensitive fields from settings.

    Returns:
        list[str]: List of sensitive field names to check.
    """
    settings = get_settings()
    return settings.log_config.sensitive_fields


def is_sensitive_field(field_name: str) -> bool:
    """Check if a field name indicates sensitive data.

    Args:
        field_name: The field name to check.

    Returns:
        bool: True if the field appears to contain sensitive data.
    """
    if DEFAULT_SENSITIVE_PATTERN.search(field_name):
        return True

    field_lower = field_name.lower()
    return any(field_lower == name.lower() for name in _get_sensitive_fields())


def sanitize_value(
    value: SanitizableValue, field_name: str = "", depth: int = 0
) -> SanitizableValue:
    """Sanitize a value if it appears to be sensitive.

    Nested structures are sanitized recursively up to MAX_DEPTH.

    Args:
        value: The value to potentially sanitize.
        field_name: The field name for context.
        depth: Current recursion depth.

    Returns:
        SanitizableValue: Sanitized value or original if not sensitive.
    """
    if depth > MAX_DEPTH:
        return REDACTED

    if field_name and is_sensitive_field(field_name):
        return REDACTED

    if isinstance(value, dict):
        return {k: sanitize_value(v, k, depth + 1) for k, v in value.items()}

    if isinstance(value, list):
        return [sanitize_value(item, "", depth + 1) for item in value]

    if isinstance(value, tuple):
        return tuple(sanitize_value(item, "", depth + 1) for item in value)

    return value


def sanitize_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Sanitize a dictionary by redacting sensitive fields.

    Args:
        data: Dictionary to sanitize.

    Returns:
        dict[str, Any]: New dictionary with sensitive values redacted.
    """
    return {key: sanitize_value(value, key) for key, value in data.items()}


def sanitize_soap_envelope(envelope: str | bytes) -> str:
    """Redact credential elements from a SOAP envelope.

    Args:
        envelope: Serialized envelope.

    Returns:
        str: The envelope with token, sign and CMS contents replaced.

    Examples:
        >>> sanitize_soap_envelope("<ar:Token>abc</ar:Token><x>1</x>")
        '<ar:Token>[REDACTED]</ar:Token><x>1</x>'
    """
    text = envelope.decode("utf-8", errors="replace") if isinstance(
        envelope, bytes
    ) else envelope
    return _SOAP_ELEMENT_PATTERN.sub(
        lambda match: f"<{match.group(1)}>{REDACTED}</{match.group(1)}>", text
    )


def sanitize_error_context(
    error: Exception, context: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Create sanitized error context for logging.

    Args:
        error: The exception to create context for.
        context: Additional context to include (will be sanitized).

    Returns:
        dict[str, Any]: Sanitized error context safe for logging.
    """
    error_context: dict[str, Any] = {
        "error_type": type(error).__name__,
        "error_message": str(error),
    }

    if context:
        error_context.update(sanitize_dict(context))

    if hasattr(error, "__dict__"):
        error_attrs = {
            k: v
            for k, v in error.__dict__.items()
            if not k.startswith("_") and k != "stack_trace"
        }
        if error_attrs:
            error_context["error_attributes"] = sanitize_dict(error_attrs)

    return error_context


def sanitize_sql_params(
    params: object,
) -> object:
    """Sanitize SQL query parameters for safe logging.

    Args:
        params: SQL query parameters in various formats.

    Returns:
        object: Sanitized parameters in the same format as input, or REDACTED string.
    """
    if params is None:
        return None

    if isinstance(params, dict):
        return sanitize_dict(params)
    if isinstance(params, (list, tuple)):
        # Positional parameters carry no names to judge sensitivity by
        return params

    return REDACTED
