"""Request signing and parameter encoding for the scrobble service."""

import hashlib
from typing import Dict, Mapping
from urllib.parse import quote

SIGNATURE_PARAM = "api_sig"

# Never part of the signature input
_UNSIGNED_KEYS = frozenset({SIGNATURE_PARAM, "format"})


def sign(params: Mapping[str, str], secret: str) -> str:
    """Compute the request signature for a parameter set.

    Entries are sorted by key in ordinal order and concatenated as
    ``key + value`` without separators, the shared secret is appended and the
    UTF-8 bytes are hashed with MD5. The digest is rendered as uppercase hex.

    Args:
        params: Request parameters (without ``api_sig``)
        secret: Shared API secret

    Returns:
        Signature string
    """
    payload = "".join(
        f"{key}{value}"
        for key, value in sorted(params.items())
        if key not in _UNSIGNED_KEYS
    )
    payload += secret
    return hashlib.md5(payload.encode("utf-8"), usedforsecurity=False).hexdigest().upper()  # nosec B324


def append_signature(params: Dict[str, str], secret: str) -> Dict[str, str]:
    """Return a copy of ``params`` with the ``api_sig`` entry added."""
    unsigned = {k: v for k, v in params.items() if k != SIGNATURE_PARAM}
    signed = dict(unsigned)
    signed[SIGNATURE_PARAM] = sign(unsigned, secret)
    return signed


def _is_blank(value) -> bool:
    return value is None or not str(value).strip()


def _escape(value) -> str:
    return quote(str(value), safe="")


def to_query_string(params: Mapping[str, str]) -> str:
    """Encode parameters as ``k=v`` pairs joined by ``&``.

    Entries with empty or whitespace-only values are dropped. Keys and values
    are percent-encoded; pairs keep the mapping's insertion order.
    """
    return "&".join(
        f"{_escape(key)}={_escape(value)}"
        for key, value in params.items()
        if not _is_blank(value)
    )


def to_form_body(params: Mapping[str, str]) -> str:
    """Encode parameters as an ``application/x-www-form-urlencoded`` body."""
    return to_query_string(params)
