"""Redaction of credentials and local paths from provider error text."""

from __future__ import annotations

import os
import re

_SECRET_PATTERNS: list[tuple[str, str]] = [
    (r"sk-ant-[a-zA-Z0-9_-]+", "[REDACTED_KEY]"),
    (r"sk-(?:proj-)?[a-zA-Z0-9_-]{20,}", "[REDACTED_KEY]"),
    (r"Bearer\s+\S+", "Bearer [REDACTED]"),
    (r"(?i)(x-api-key|api-key|authorization)(\"?\s*[:=]\s*\"?)[^\s\",}]+", r"\1\2[REDACTED]"),
]


def sanitize_error(message: str, max_length: int = 2000) -> str:
    """Strip API keys and the user's home directory, then cap the length."""
    if not message:
        return message

    sanitized = message
    for pattern, replacement in _SECRET_PATTERNS:
        sanitized = re.sub(pattern, replacement, sanitized)

    home = os.environ.get("HOME") or os.environ.get("USERPROFILE") or ""
    if home and home != "/":
        sanitized = sanitized.replace(home, "[USER_HOME]")

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length] + "..."
    return sanitized
