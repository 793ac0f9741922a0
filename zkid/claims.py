"""
JWT header/payload parsing and the uid_key policy.

The payload is base64url(JSON). Required claims: iss, aud, sub, nonce
(strings) and iat (unsigned integer seconds). `email` and `email_verified`
are optional; anything else lands in `additional_claims`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

from .encoding import U64_MAX, b64url_to_str
from .errors import ClaimsParseError, ClaimsPolicyError

_REQUIRED_STR = ("iss", "aud", "sub", "nonce")
_KNOWN = frozenset(_REQUIRED_STR + ("iat", "email", "email_verified"))

DEFAULT_UID_KEYS = ("sub", "email")


def _decode_json_object(b64: str, what: str) -> Dict[str, Any]:
    try:
        text = b64url_to_str(b64)
    except (ValueError, UnicodeDecodeError) as e:
        raise ClaimsParseError(f"{what} is not base64url UTF-8", field_name=what, cause=e) from e
    try:
        obj = json.loads(text)
    except ValueError as e:
        raise ClaimsParseError(f"{what} is not JSON", field_name=what, cause=e) from e
    if not isinstance(obj, dict):
        raise ClaimsParseError(f"{what} must be a JSON object", field_name=what)
    return obj


@dataclass(frozen=True)
class JwtHeader:
    kid: str
    alg: str

    @classmethod
    def parse(cls, jwt_header_b64: str) -> "JwtHeader":
        obj = _decode_json_object(jwt_header_b64, "jwt_header")
        for k in ("kid", "alg"):
            if not isinstance(obj.get(k), str):
                raise ClaimsParseError(f"'{k}' missing or not a string", field_name=k)
        return cls(kid=obj["kid"], alg=obj["alg"])


def parse_jwt_header(jwt_header_b64: str) -> JwtHeader:
    return JwtHeader.parse(jwt_header_b64)


@dataclass(frozen=True)
class Claims:
    iss: str
    aud: str
    sub: str
    nonce: str
    iat: int
    email: Optional[str] = None
    email_verified: Any = None
    additional_claims: Dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        return f"Claims(iss={self.iss!r}, aud={self.aud!r}, iat={self.iat})"


def parse_claims(jwt_payload_b64: str) -> Claims:
    obj = _decode_json_object(jwt_payload_b64, "jwt_payload")

    for k in _REQUIRED_STR:
        if k not in obj:
            raise ClaimsParseError(f"'{k}' claim is missing", field_name=k)
        if not isinstance(obj[k], str):
            raise ClaimsParseError(f"'{k}' claim must be a string", field_name=k)

    iat = obj.get("iat")
    if isinstance(iat, bool) or not isinstance(iat, int) or not 0 <= iat <= U64_MAX:
        raise ClaimsParseError("'iat' claim must be an unsigned integer", field_name="iat")

    email = obj.get("email")
    if email is not None and not isinstance(email, str):
        raise ClaimsParseError("'email' claim must be a string", field_name="email")

    return Claims(
        iss=obj["iss"],
        aud=obj["aud"],
        sub=obj["sub"],
        nonce=obj["nonce"],
        iat=iat,
        email=email,
        email_verified=obj.get("email_verified"),
        additional_claims={k: v for k, v in obj.items() if k not in _KNOWN},
    )


def _is_verified(v: Any) -> bool:
    # Providers send either a JSON boolean or the string "true".
    return v is True or v == "true"


def resolve_uid_val(
    claims: Claims,
    uid_key: str,
    *,
    allowed_uid_keys: Sequence[str] = DEFAULT_UID_KEYS,
) -> str:
    """Return the value of the claim named by `uid_key`, enforcing policy."""
    if uid_key not in allowed_uid_keys:
        raise ClaimsPolicyError(
            "uid_key is not an allowed claim name",
            uid_key=uid_key,
            ctx={"allowed": list(allowed_uid_keys)},
        )

    if uid_key == "sub":
        return claims.sub

    if uid_key == "email":
        if claims.email_verified is None:
            raise ClaimsPolicyError("'email_verified' claim is missing", uid_key=uid_key)
        if not _is_verified(claims.email_verified):
            raise ClaimsPolicyError("'email_verified' claim was not true", uid_key=uid_key)
        if claims.email is None:
            raise ClaimsPolicyError("'email' claim is missing", uid_key=uid_key)
        return claims.email

    if uid_key not in claims.additional_claims:
        raise ClaimsPolicyError(f"'{uid_key}' claim is missing", uid_key=uid_key)
    val = claims.additional_claims[uid_key]
    if not isinstance(val, str):
        raise ClaimsPolicyError(f"'{uid_key}' claim is not a string", uid_key=uid_key)
    return val


__all__ = [
    "Claims",
    "JwtHeader",
    "parse_claims",
    "parse_jwt_header",
    "resolve_uid_val",
    "DEFAULT_UID_KEYS",
]
