"""
HMAC signing helpers. Output is lower-case hex; comparison is constant time.
"""
from __future__ import annotations

import hashlib
import hmac


HASH_ALGORITHMS = {
    "sha256": hashlib.sha256,
    "sha512": hashlib.sha512,
}


def _digestmod(algorithm: str):
    try:
        return HASH_ALGORITHMS[algorithm.lower()]
    except KeyError:
        raise ValueError(f"Unsupported HMAC algorithm: {algorithm}") from None


def sign(canonical: str, secret: str, algorithm: str = "sha512") -> str:
    return hmac.new(
        secret.encode("utf-8"),
        canonical.encode("utf-8"),
        _digestmod(algorithm),
    ).hexdigest()


def verify(canonical: str, secret: str, supplied: str | None, algorithm: str = "sha512") -> bool:
    """True only when ``supplied`` matches; a missing signature never verifies."""
    if not supplied:
        return False
    expected = sign(canonical, secret, algorithm)
    # bytes, since compare_digest refuses non-ASCII str
    return hmac.compare_digest(expected.encode("ascii"), supplied.strip().lower().encode("utf-8"))
