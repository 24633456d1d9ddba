from __future__ import annotations

import os
import time
import uuid


def generate_uuid7() -> str:
    """
    Generate a time-ordered UUIDv7 string.

    Used as the primary key default for ledger rows; ids sort by creation
    millisecond.
    """
    ts_ms = int(time.time() * 1000)
    raw = bytearray(ts_ms.to_bytes(6, "big", signed=False) + os.urandom(10))
    raw[6] = (raw[6] & 0x0F) | 0x70
    raw[8] = (raw[8] & 0x3F) | 0x80
    return str(uuid.UUID(bytes=bytes(raw)))


def generate_prefixed_id(prefix: str = "ID") -> str:
    """Short human-readable id like 'ORG-1F2A9C3D'."""
    block = uuid.uuid4().hex[:8].upper()
    if prefix:
        return f"{prefix}-{block}"
    return block
