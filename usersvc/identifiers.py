"""
Account identifier generation.

Identifiers are ULIDs rendered in lower-case Crockford base32: 26
characters, a 48-bit millisecond timestamp followed by 80 random bits.
They sort lexicographically in creation order; identifiers generated in the
same millisecond increment the random part so that order still holds.
"""

import re
import secrets
import threading
import time

ALPHABET = '0123456789abcdefghjkmnpqrstvwxyz'
LENGTH = 26

_PATTERN = re.compile(r'[0-7][0-9a-hjkmnp-tv-z]{25}')

_RANDOM_BITS = 80
_RANDOM_MAX = (1 << _RANDOM_BITS) - 1

_lock = threading.Lock()
_last_timestamp = -1
_last_random = 0


def _encode(value: int) -> str:
    chars = []
    for _ in range(LENGTH):
        value, index = divmod(value, 32)
        chars.append(ALPHABET[index])
    return ''.join(reversed(chars))


def generate_uuid() -> str:
    """Generate a new lower-case, lexicographically-sortable identifier."""
    global _last_timestamp, _last_random
    with _lock:
        timestamp = time.time_ns() // 1_000_000
        if timestamp <= _last_timestamp:
            timestamp = _last_timestamp
            random = _last_random + 1
            if random > _RANDOM_MAX:
                # Entropy exhausted within one millisecond; borrow the next.
                timestamp += 1
                random = secrets.randbits(_RANDOM_BITS)
        else:
            random = secrets.randbits(_RANDOM_BITS)
        _last_timestamp, _last_random = timestamp, random
    return _encode((timestamp << _RANDOM_BITS) | random)


def is_uuid(value: str) -> bool:
    """Determine whether ``value`` is a canonical identifier."""
    return bool(_PATTERN.fullmatch(value))
