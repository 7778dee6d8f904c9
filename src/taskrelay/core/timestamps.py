"""
UTC timestamp helpers and ticket generation (stdlib-only).

Manifesto:
    Every process touching ``relay_tasks`` must agree on what "now" means,
    so schedules are computed from the database clock and every
    timestamp read back is normalized to timezone-aware UTC. Run tickets
    only need to be unique per claim; a ULID-shaped token also sorts by
    claim time, which makes stuck tickets easy to date when reading the
    table by hand.

    - **ensure_utc():** Attach UTC to naive values read back from SQLite
    - **new_ticket():** 26-char, time-sortable, Crockford base32 token

Tags:
    timestamps, ulid, utc, datetime, stdlib-only, tickets
"""

import secrets
import time
from datetime import UTC, datetime


def ensure_utc(dt: datetime) -> datetime:
    """Return *dt* as an aware UTC datetime.

    SQLite has no timezone support, so values come back naive even though
    they were written as UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def new_ticket() -> str:
    """
    Generate a ULID-like run ticket.

    Format: 26 characters, base32 encoded, time-sortable.
    """
    # Time component: milliseconds since epoch (48 bits -> 10 chars)
    timestamp_ms = int(time.time() * 1000)
    timestamp_chars = _encode_base32(timestamp_ms, 10)

    # Random component (80 bits -> 16 chars)
    random_part = _encode_base32(secrets.randbits(80), 16)

    return timestamp_chars + random_part


# ULID base32 alphabet (Crockford's)
_ENCODING = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_ENCODING_LEN = len(_ENCODING)


def _encode_base32(value: int, length: int) -> str:
    """Encode integer to base32 string of fixed length."""
    result = []
    for _ in range(length):
        result.append(_ENCODING[value % _ENCODING_LEN])
        value //= _ENCODING_LEN
    return "".join(reversed(result))
