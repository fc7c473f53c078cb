"""Payload encoding for published and delivered messages.

Payloads travel as UTF-8 JSON. Encoding is compact (no whitespace) so the
bytes match what other JSON producers on the topic emit, and pydantic
models are dumped in JSON mode.

Decoding never fails: a payload that is not valid UTF-8 JSON is handed to
the handler as the raw text instead.

Examples:
    >>> encode_payload({"message": "Hello World!"})
    b'{"message":"Hello World!"}'
    >>> decode_payload(b'{"a": 1}')
    {'a': 1}
    >>> decode_payload(b"not json")
    'not json'
"""

import json
from typing import Any

from pubsub_lite.exceptions import SerializationError


def _default(obj: Any) -> Any:
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def encode_payload(data: Any) -> bytes:
    """Serialize a payload to UTF-8 JSON bytes.

    Args:
        data: Any JSON-serializable value or pydantic model.

    Returns:
        The encoded payload.

    Raises:
        SerializationError: If the value cannot be represented as JSON
            (unsupported types, circular references, NaN/Infinity).
    """
    try:
        text = json.dumps(
            data,
            default=_default,
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
        )
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Payload is not JSON serializable: {e}", cause=e) from e
    return text.encode("utf-8")


def decode_payload(data: bytes) -> Any:
    """Parse delivered payload bytes.

    Args:
        data: Raw payload bytes.

    Returns:
        The parsed JSON value, or the payload decoded as text when it is not
        valid UTF-8 JSON.
    """
    try:
        return json.loads(data.decode("utf-8"))
    except ValueError:
        # UnicodeDecodeError and JSONDecodeError are both ValueErrors
        return data.decode("utf-8", errors="replace")
