"""
Canonical parameter codec shared by every gateway signer.

The signed string is a raw join: keys sorted byte-wise, ``key=value`` pairs
joined by ``&``, no percent-encoding. Inbound callbacks are decoded once by
the HTTP layer, so the verifier rebuilds the exact string the builder signed.
Percent-encoding is applied only when rendering the outbound URL.
"""
from __future__ import annotations

from typing import Any, Iterable, Mapping
from urllib.parse import urlencode

from domain.common.exceptions import PaymentValidationError


# Every field name a gateway uses to carry a signature or its metadata.
SIGNATURE_FIELDS = frozenset({"vnp_SecureHash", "vnp_SecureHashType", "signature"})


def _as_text(key: str, value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    raise PaymentValidationError(
        f"Parameter '{key}' must be a plain string, got {type(value).__name__}",
        field=key,
    )


def _byte_order(key: str) -> bytes:
    return key.encode("utf-8")


def canonicalize(params: Mapping[str, Any], exclude: Iterable[str] = SIGNATURE_FIELDS) -> str:
    """Build the string that gets signed.

    Nested structures and other non-string values are rejected rather than
    stringified, since their text form is not stable across platforms.
    """
    excluded = frozenset(exclude)
    keys = sorted((k for k in params if k not in excluded), key=_byte_order)
    return "&".join(f"{k}={_as_text(k, params[k])}" for k in keys)


def encode_query(params: Mapping[str, Any]) -> str:
    """Percent-encode params for the user-facing URL (same key order as signing)."""
    keys = sorted(params, key=_byte_order)
    return urlencode([(k, _as_text(k, params[k])) for k in keys])


def flatten_params(raw: Mapping[str, Any]) -> dict[str, str]:
    """Normalise query/form/JSON callback payloads into ``str -> str``.

    Multi-valued query keys keep their first value. JSON scalars are
    stringified the way the vendors render them (``0`` stays ``0``).
    """
    flat: dict[str, str] = {}
    for key, value in raw.items():
        if isinstance(value, (list, tuple)):
            value = value[0] if value else ""
        if value is None:
            flat[str(key)] = ""
        elif isinstance(value, bool):
            flat[str(key)] = "true" if value else "false"
        elif isinstance(value, (str, int, float)):
            flat[str(key)] = str(value)
        else:
            raise PaymentValidationError(
                f"Callback parameter '{key}' is not a scalar value",
                field=str(key),
            )
    return flat
