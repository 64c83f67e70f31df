"""Header redaction applied before headers reach a telemetry item or a log."""

from collections.abc import Iterable, Mapping
from typing import Any

REDACTED = "[REDACTED]"

SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "x-api-key", "x-auth-token"})


def sanitize_headers(
    headers: Mapping[str, Any] | Iterable[tuple[str, Any]] | None,
) -> dict[str, Any]:
    """Replace the values of credential-bearing headers with ``[REDACTED]``.

    Header names are matched case-insensitively against SENSITIVE_HEADERS.
    Names keep their original case and every other header passes through
    unchanged.

    Args:
        headers: A mapping or an iterable of (name, value) pairs.

    Returns:
        New dictionary with sensitive values redacted.
    """
    if headers is None:
        return {}
    pairs = headers.items() if isinstance(headers, Mapping) else headers
    return {
        name: REDACTED if name.lower() in SENSITIVE_HEADERS else value
        for name, value in pairs
    }
