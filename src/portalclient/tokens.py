from __future__ import annotations

import base64
import binascii
import json

from pydantic import ValidationError

from portalclient.errors import TokenDecodeError
from portalclient.schemas import DecodedClaims


def _b64url_decode(segment: str) -> bytes:
    padded = segment + "=" * (-len(segment) % 4)
    try:
        return base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise TokenDecodeError("token payload is not valid base64url") from exc


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def decode_claims(token: str) -> DecodedClaims:
    """Read the claims of a three-segment token without verifying its signature."""
    segments = token.split(".")
    if len(segments) != 3 or not segments[1]:
        raise TokenDecodeError("token must have three dot-separated segments")

    raw = _b64url_decode(segments[1])
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise TokenDecodeError("token payload is not UTF-8 JSON") from exc
    if not isinstance(payload, dict):
        raise TokenDecodeError("token payload is not a JSON object")

    try:
        return DecodedClaims.model_validate(payload)
    except ValidationError as exc:
        raise TokenDecodeError("token payload has no usable exp claim") from exc


def is_near_expiry(claims: DecodedClaims, now: float, guard_seconds: float) -> bool:
    return now >= claims.exp - guard_seconds


def encode_unsigned(claims: dict, header: dict | None = None) -> str:
    """Mint an unsigned token carrying ``claims``; used by the fake API and tests."""
    header = header or {"alg": "none", "typ": "JWT"}
    return ".".join(
        [
            _b64url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8")),
            _b64url_encode(json.dumps(claims, separators=(",", ":")).encode("utf-8")),
            "unsigned",
        ]
    )
