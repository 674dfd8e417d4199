"""Small helpers for building request values."""
from datetime import datetime


def inclusive_range(start: int, end: int) -> str:
    """Range header value for bytes [start, end], both inclusive."""
    return f"bytes={start}-{end}"


def byte_range(start: int, end: int) -> str:
    """Range header value for bytes [start, end), end exclusive."""
    return inclusive_range(start, end - 1)


def millis(ts: datetime) -> str:
    """Milliseconds since the epoch, as B2's *_millis headers expect."""
    return str(int(ts.timestamp() * 1000))
