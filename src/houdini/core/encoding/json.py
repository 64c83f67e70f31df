"""JSON encoder for telemetry items."""

import json
from collections.abc import Set
from datetime import date, datetime
from typing import Any

from houdini.core.errors import SerializationFailure
from houdini.core.models import TelemetryItem


def _default(obj: Any) -> Any:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (Set, tuple)):
        return list(obj)
    if isinstance(obj, bytes):
        return obj.decode("utf-8", errors="replace")
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def encode_item(item: TelemetryItem) -> bytes:
    """Encode a telemetry item to a UTF-8 JSON document.

    NaN and infinite floats are rejected, since they are not valid JSON.

    Args:
        item: The item to encode.

    Returns:
        JSON body as bytes.

    Raises:
        SerializationFailure: If any value cannot be represented in JSON.
    """
    try:
        text = json.dumps(item.to_dict(), default=_default, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise SerializationFailure(str(e)) from e
    return text.encode("utf-8")
