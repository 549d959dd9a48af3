"""
YoursAI - Token Identity Extractor
===================================
Turns an ``Authorization: Bearer <jwt>`` header into the caller's
identity (the ``sub`` claim).

The payload segment is decoded and validated into ``TokenClaims``; the
signature, issuer, audience and expiry are **not** checked.  The result
is the identity the caller *claims*, and must be treated as such.
"""

from __future__ import annotations

import base64
import binascii

from pydantic import BaseModel, ConfigDict, StrictStr
from pydantic import ValidationError as PydanticValidationError

from yoursai.src.core.errors import AuthError

BEARER_PREFIX = "Bearer "


class TokenClaims(BaseModel):
    """Claims read from the token payload.  Unknown claims are ignored."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    sub: StrictStr


def _b64url_decode(segment: str) -> bytes:
    """Decode unpadded base64url, rejecting characters outside the alphabet."""
    padded = segment + "=" * (-len(segment) % 4)
    return base64.b64decode(padded, altchars=b"-_", validate=True)


def parse_claims(token: str) -> TokenClaims:
    """
    Decode the middle segment of a three-part token into ``TokenClaims``.

    Raises:
        AuthError: wrong segment count, undecodable payload, payload that
                   is not a JSON object, or missing / non-string ``sub``.
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise AuthError("invalid JWT format")

    try:
        payload = _b64url_decode(parts[1])
    except (binascii.Error, ValueError) as exc:
        raise AuthError("failed to decode JWT payload") from exc

    try:
        return TokenClaims.model_validate_json(payload)
    except PydanticValidationError as exc:
        raise AuthError("failed to parse JWT claims") from exc


def extract_identity(authorization: str | None) -> str:
    """
    Return the caller identity carried by a bearer ``Authorization`` header.

    Raises:
        AuthError: header absent, not a bearer credential, or see
                   ``parse_claims``.
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise AuthError("missing or invalid authorization header")
    return parse_claims(authorization[len(BEARER_PREFIX):]).sub
