"""
Typed exceptions for zkID verification.

Design goals
- Structured: machine-readable code + human message + contextual fields.
- Terminal: every error rejects the signature under evaluation. Only `Expired`
  is marked retryable (the signer may come back with a fresh token/expiry).
- Safe: ctx never carries the pepper, the EPK blinder or raw JWT payloads.

Hierarchy

    ZkIdError (base)
    ├── ClaimsParseError        malformed JWT header/payload
    ├── PolicyViolation         well-formed token that violates policy
    │   └── ClaimsPolicyError   uid_key / email_verified policy
    ├── HashingError            input too large for the field hash
    ├── EncodingError           ephemeral key / header / signature over size limit
    ├── SignatureInvalid        RS256 check against the provider key failed
    ├── ProofInvalid            Groth16 verifier said no (or blew up)
    ├── Expired                 EPK expiry is in the past
    ├── DeserializationError    bad canonical bytes at the boundary
    ├── KeyNotFound             no provider key for (iss, kid)
    ├── TooManyAuthenticators   per-transaction cap exceeded
    └── ConfigError             invalid policy configuration
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class ZkIdErrorCode(str, Enum):
    UNKNOWN = "ZKID/UNKNOWN"
    CLAIMS_PARSE = "ZKID/CLAIMS_PARSE"
    POLICY = "ZKID/POLICY"
    CLAIMS_POLICY = "ZKID/CLAIMS_POLICY"
    HASHING = "ZKID/HASHING"
    ENCODING = "ZKID/ENCODING"
    SIGNATURE_INVALID = "ZKID/SIGNATURE_INVALID"
    PROOF_INVALID = "ZKID/PROOF_INVALID"
    EXPIRED = "ZKID/EXPIRED"
    DESERIALIZATION = "ZKID/DESERIALIZATION"
    KEY_NOT_FOUND = "ZKID/KEY_NOT_FOUND"
    TOO_MANY_AUTHENTICATORS = "ZKID/TOO_MANY_AUTHENTICATORS"
    CONFIG = "ZKID/CONFIG"


class PolicyReason(str, Enum):
    """Stable reasons carried by PolicyViolation (useful for metrics and tests)."""

    EXPIRY_HORIZON = "expiry_horizon_exceeded"
    ISS_MISMATCH = "iss_mismatch"
    UID_POLICY = "uid_policy"
    IDC_MISMATCH = "idc_mismatch"
    NONCE_MISMATCH = "nonce_mismatch"


@dataclass(eq=False)
class ZkIdError(Exception):
    """
    Base structured error.

    Fields:
      code:      stable machine code (ZkIdErrorCode | str)
      msg:       human-readable summary
      ctx:       small dict of contextual fields (issuer, sizes, reasons)
      retryable: whether resubmitting with fresh inputs can succeed
      cause:     optional underlying exception (not serialized)
    """

    code: ZkIdErrorCode | str = ZkIdErrorCode.UNKNOWN
    msg: str = "zkid error"
    ctx: Dict[str, Any] = field(default_factory=dict)
    retryable: bool = False
    cause: Optional[BaseException] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.ctx, dict):
            self.ctx = {"_ctx_type_error": str(type(self.ctx)), "repr": repr(self.ctx)}
        super().__init__(self.msg)

    def __str__(self) -> str:
        code = self.code.value if isinstance(self.code, ZkIdErrorCode) else str(self.code)
        parts = [f"[{code}] {self.msg}"]
        if self.ctx:
            parts.append(f"ctx={self.ctx}")
        if self.cause is not None:
            parts.append(f"cause={self.cause!r}")
        return " ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        code = self.code.value if isinstance(self.code, ZkIdErrorCode) else str(self.code)
        return {
            "code": code,
            "msg": self.msg,
            "ctx": {k: _coerce_json(v) for k, v in self.ctx.items()},
            "retryable": self.retryable,
        }


def _coerce_json(v: Any) -> Any:
    if v is None or isinstance(v, (bool, int, float, str, list, dict)):
        return v
    if isinstance(v, (bytes, bytearray)):
        return bytes(v).hex()
    return str(v)


def _merge(base: Dict[str, Any], extra: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if extra:
        base.update(extra)
    return base


class ClaimsParseError(ZkIdError):
    """The JWT header or payload is not valid base64url / JSON / claim shape."""

    def __init__(
        self,
        msg: str = "malformed JWT",
        *,
        field_name: Optional[str] = None,
        ctx: Optional[Mapping[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        base: Dict[str, Any] = {}
        if field_name is not None:
            base["field"] = field_name
        super().__init__(
            code=ZkIdErrorCode.CLAIMS_PARSE, msg=msg, ctx=_merge(base, ctx), cause=cause
        )


class PolicyViolation(ZkIdError):
    """A structurally valid token fails one of the binding checks."""

    def __init__(
        self,
        reason: PolicyReason,
        msg: str,
        *,
        ctx: Optional[Mapping[str, Any]] = None,
        code: ZkIdErrorCode = ZkIdErrorCode.POLICY,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.reason = reason
        super().__init__(
            code=code, msg=msg, ctx=_merge({"reason": reason.value}, ctx), cause=cause
        )


class ClaimsPolicyError(PolicyViolation):
    """uid_key is not allowed or the claim it names cannot be used."""

    def __init__(
        self,
        msg: str,
        *,
        uid_key: Optional[str] = None,
        ctx: Optional[Mapping[str, Any]] = None,
    ) -> None:
        base: Dict[str, Any] = {}
        if uid_key is not None:
            base["uid_key"] = uid_key
        super().__init__(
            PolicyReason.UID_POLICY,
            msg,
            ctx=_merge(base, ctx),
            code=ZkIdErrorCode.CLAIMS_POLICY,
        )


class _SizeError(ZkIdError):
    _CODE = ZkIdErrorCode.UNKNOWN

    def __init__(
        self,
        msg: str,
        *,
        what: Optional[str] = None,
        size: Optional[int] = None,
        limit: Optional[int] = None,
        ctx: Optional[Mapping[str, Any]] = None,
    ) -> None:
        base: Dict[str, Any] = {}
        if what is not None:
            base["what"] = what
        if size is not None:
            base["size"] = int(size)
        if limit is not None:
            base["limit"] = int(limit)
        super().__init__(code=self._CODE, msg=msg, ctx=_merge(base, ctx))


class HashingError(_SizeError):
    """Input cannot be packed into the fixed number of field elements."""

    _CODE = ZkIdErrorCode.HASHING


class EncodingError(_SizeError):
    """An encoded value exceeds its configured ceiling."""

    _CODE = ZkIdErrorCode.ENCODING


class SignatureInvalid(ZkIdError):
    def __init__(
        self,
        msg: str = "JWT signature verification failed",
        *,
        ctx: Optional[Mapping[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            code=ZkIdErrorCode.SIGNATURE_INVALID, msg=msg, ctx=dict(ctx or {}), cause=cause
        )


class ProofInvalid(ZkIdError):
    def __init__(
        self,
        msg: str = "zero-knowledge proof verification failed",
        *,
        ctx: Optional[Mapping[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            code=ZkIdErrorCode.PROOF_INVALID, msg=msg, ctx=dict(ctx or {}), cause=cause
        )


class Expired(ZkIdError):
    def __init__(self, *, exp_timestamp_secs: int, current_time_micros: int) -> None:
        super().__init__(
            code=ZkIdErrorCode.EXPIRED,
            msg="zkID signature is expired",
            ctx={
                "exp_timestamp_secs": int(exp_timestamp_secs),
                "current_time_micros": int(current_time_micros),
            },
            retryable=True,
        )


class DeserializationError(ZkIdError):
    def __init__(
        self,
        msg: str = "deserialization failed",
        *,
        type_name: Optional[str] = None,
        ctx: Optional[Mapping[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        base: Dict[str, Any] = {}
        if type_name is not None:
            base["type"] = type_name
        super().__init__(
            code=ZkIdErrorCode.DESERIALIZATION, msg=msg, ctx=_merge(base, ctx), cause=cause
        )


class KeyNotFound(ZkIdError):
    def __init__(self, iss: str, kid: str) -> None:
        super().__init__(
            code=ZkIdErrorCode.KEY_NOT_FOUND,
            msg="no provider key for (iss, kid)",
            ctx={"iss": iss, "kid": kid},
        )


class TooManyAuthenticators(ZkIdError):
    def __init__(self, count: int, limit: int) -> None:
        super().__init__(
            code=ZkIdErrorCode.TOO_MANY_AUTHENTICATORS,
            msg="too many zkID authenticators in transaction",
            ctx={"count": int(count), "limit": int(limit)},
        )


class ConfigError(ZkIdError):
    def __init__(
        self,
        msg: str = "invalid configuration",
        *,
        ctx: Optional[Mapping[str, Any]] = None,
        cause: Optional[BaseException] = None,
        **fields: Any,
    ) -> None:
        super().__init__(
            code=ZkIdErrorCode.CONFIG, msg=msg, ctx=_merge(dict(fields), ctx), cause=cause
        )


# Handy guard helpers ---------------------------------------------------------


def ensure(condition: bool, exc: ZkIdError) -> None:
    """Raise `exc` if condition is False. Keeps policy checks one line each."""
    if not condition:
        raise exc


def rethrow_as(factory, **ctx: Any):
    """
    Context-manager converting arbitrary exceptions into a typed ZkIdError built
    by `factory(cause=exc, ctx=ctx)`, preserving the original as __cause__.

      with rethrow_as(ClaimsParseError, where="payload"):
          json.loads(...)
    """

    class _Ctx:
        def __enter__(self) -> None:
            return None

        def __exit__(self, exc_type, exc, tb) -> bool:
            if exc is None or isinstance(exc, ZkIdError) or not isinstance(exc, Exception):
                return False
            raise factory(ctx=ctx, cause=exc) from exc

    return _Ctx()


__all__ = [
    "ZkIdError",
    "ZkIdErrorCode",
    "PolicyReason",
    "ClaimsParseError",
    "PolicyViolation",
    "ClaimsPolicyError",
    "HashingError",
    "EncodingError",
    "SignatureInvalid",
    "ProofInvalid",
    "Expired",
    "DeserializationError",
    "KeyNotFound",
    "TooManyAuthenticators",
    "ConfigError",
    "ensure",
    "rethrow_as",
]
