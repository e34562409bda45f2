"""Payload compression for persisted cache entries."""

import base64
import json
import zlib
from typing import Any, Dict, Tuple

COMPRESSION_THRESHOLD = 1024  # bytes


def encode_payload(data: Dict[str, Any], threshold: int = COMPRESSION_THRESHOLD) -> Tuple[str, bool, int]:
    """Serialize a payload, compressing it when it is larger than threshold.

    Compression is only kept when it actually shrinks the payload.

    Args:
        data: JSON-serializable payload
        threshold: Size in bytes above which compression is attempted

    Returns:
        (stored text, compressed flag, bytes saved)
    """
    raw = json.dumps(data, ensure_ascii=False, default=str)
    raw_bytes = raw.encode("utf-8")
    if len(raw_bytes) <= threshold:
        return raw, False, 0

    packed = base64.b64encode(zlib.compress(raw_bytes, 6)).decode("ascii")
    saved = len(raw_bytes) - len(packed)
    if saved <= 0:
        return raw, False, 0
    return packed, True, saved


def decode_payload(stored: str, compressed: bool) -> Dict[str, Any]:
    """Inverse of encode_payload."""
    if compressed:
        stored = zlib.decompress(base64.b64decode(stored)).decode("utf-8")
    return json.loads(stored)
