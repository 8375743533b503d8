"""Stable string hashing used to derive article identifiers."""

import string

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def hash_string(text: str) -> str:
    """Hash ``text`` with the ``h * 31 + c`` rolling hash, base-36 encoded.

    The hash runs over UTF-16 code units and is truncated to a signed 32-bit
    integer after every step, so the same string always yields the same value
    regardless of platform.
    """
    h = 0
    data = text.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = _to_int32(h * 31 + unit)
    return _to_base36(abs(h))


def generate_news_id(url: str, prefix: str = "news") -> str:
    """Build an article id such as ``rss-1x2y3z`` from its link."""
    return f"{prefix}-{hash_string(url)}"
