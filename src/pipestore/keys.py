"""Time-based record identifiers."""

from __future__ import annotations

import random
import threading
import time

# Length of an identifier without prefix or entropy suffix.
BASE_KEY_LENGTH = 13
# Length of the entropy suffix ("d.dddddddd").
ENTROPY_LENGTH = 10

_lock = threading.Lock()
_last_micros = 0


def _next_micros() -> int:
    """Return the current time in microseconds, strictly increasing per process."""
    global _last_micros
    with _lock:
        now = time.time_ns() // 1000
        if now <= _last_micros:
            now = _last_micros + 1
        _last_micros = now
        return now


def generate_key(prefix: str = "", more_entropy: bool = False) -> str:
    """Generate a time-based identifier.

    The base token is 13 hex characters: 8 for the seconds since the epoch
    and 5 for the microseconds. Keys are not checked against existing
    records; uniqueness comes from the clock and the per-process counter.

    Args:
        prefix: String prepended to the token.
        more_entropy: If True, append a 10-character random suffix,
            giving a 23-character token.

    Returns:
        The generated identifier.
    """
    micros = _next_micros()
    seconds, usec = divmod(micros, 1_000_000)
    key = f"{prefix}{seconds:08x}{usec:05x}"
    if more_entropy:
        key += f"{random.randrange(10)}.{random.randrange(10 ** 8):08d}"
    return key
