"""
zkid.encoding

Canonical CBOR encode/decode for every persisted or transmitted zkID value,
plus the base64url helpers used for JWT parts and nonces.

Canonical form
--------------
RFC 8949 §4.2 deterministic encoding (cbor2 `canonical=True`): shortest
integer/length heads, definite lengths, map keys sorted bytewise by their
encodings. Decoding is strict: the bytes must re-encode to themselves, so
alternate encodings of the same logical value (non-minimal heads, unsorted
maps, indefinite lengths, trailing bytes) are rejected. Equality and hashing of
`Canonical` values are defined on these bytes.

Public API
----------
- dumps_canonical(obj) -> bytes
- loads_canonical(data, *, type_name=None) -> Any
- b64url_encode_nopad(b) -> str
- b64url_decode(s) -> bytes          (padding optional)
- Canonical                           mixin: to_bytes/from_bytes/__eq__/__hash__
- expect_map / expect_bytes / expect_str / expect_uint / expect_list
"""

from __future__ import annotations

import base64
import binascii
import re
from typing import Any, Iterable, List, Mapping, Optional, Type, TypeVar

import cbor2

from .errors import DeserializationError

_B64URL_RE = re.compile(r"^[A-Za-z0-9_-]*={0,2}$")

U64_MAX = (1 << 64) - 1

T = TypeVar("T", bound="Canonical")


# --------------------------------------------------------------------------------------
# CBOR
# --------------------------------------------------------------------------------------


def dumps_canonical(obj: Any) -> bytes:
    return cbor2.dumps(obj, canonical=True)


def loads_canonical(data: bytes, *, type_name: Optional[str] = None) -> Any:
    """
    Decode canonical CBOR. Raises DeserializationError on malformed input or on
    any encoding that is not the canonical one for the decoded value.
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise DeserializationError("expected bytes", type_name=type_name)
    raw = bytes(data)
    if not raw:
        raise DeserializationError("empty input", type_name=type_name)
    try:
        obj = cbor2.loads(raw)
    except (cbor2.CBORDecodeError, ValueError, TypeError, EOFError) as e:
        raise DeserializationError("malformed CBOR", type_name=type_name, cause=e) from e
    try:
        again = dumps_canonical(obj)
    except (cbor2.CBOREncodeError, TypeError, ValueError) as e:
        raise DeserializationError("unsupported CBOR value", type_name=type_name, cause=e) from e
    if again != raw:
        raise DeserializationError("non-canonical CBOR encoding", type_name=type_name)
    return obj


# --------------------------------------------------------------------------------------
# base64url
# --------------------------------------------------------------------------------------


def b64url_encode_nopad(b: bytes) -> str:
    return base64.urlsafe_b64encode(bytes(b)).rstrip(b"=").decode("ascii")


def b64url_decode(s: str) -> bytes:
    """Decode base64url text, tolerating present or missing '=' padding."""
    if not isinstance(s, str):
        raise ValueError("base64url input must be str")
    if not _B64URL_RE.match(s):
        raise ValueError("invalid base64url alphabet")
    body = s.rstrip("=")
    if len(body) % 4 == 1:
        raise ValueError("invalid base64url length")
    try:
        return base64.urlsafe_b64decode(body + "=" * (-len(body) % 4))
    except binascii.Error as e:
        raise ValueError(f"invalid base64url: {e}") from e


def b64url_to_str(s: str) -> str:
    return b64url_decode(s).decode("utf-8")


# --------------------------------------------------------------------------------------
# Shape checks used by from_obj implementations
# --------------------------------------------------------------------------------------


def expect_map(o: Any, keys: Iterable[str], *, type_name: str) -> Mapping[str, Any]:
    if not isinstance(o, dict):
        raise DeserializationError("expected map", type_name=type_name)
    want = set(keys)
    if set(o.keys()) != want:
        raise DeserializationError(
            "unexpected map keys",
            type_name=type_name,
            ctx={"got": sorted(map(str, o.keys())), "want": sorted(want)},
        )
    return o


def expect_bytes(v: Any, n: Optional[int] = None, *, type_name: str) -> bytes:
    if not isinstance(v, bytes):
        raise DeserializationError("expected byte string", type_name=type_name)
    if n is not None and len(v) != n:
        raise DeserializationError(
            "wrong byte length", type_name=type_name, ctx={"len": len(v), "want": n}
        )
    return v


def expect_str(v: Any, *, type_name: str) -> str:
    if not isinstance(v, str):
        raise DeserializationError("expected text string", type_name=type_name)
    return v


def expect_uint(v: Any, *, type_name: str, max_value: int = U64_MAX) -> int:
    if isinstance(v, bool) or not isinstance(v, int) or v < 0 or v > max_value:
        raise DeserializationError("expected unsigned integer", type_name=type_name)
    return v


def expect_list(v: Any, n: Optional[int] = None, *, type_name: str) -> List[Any]:
    if not isinstance(v, list):
        raise DeserializationError("expected array", type_name=type_name)
    if n is not None and len(v) != n:
        raise DeserializationError(
            "wrong array length", type_name=type_name, ctx={"len": len(v), "want": n}
        )
    return v


# --------------------------------------------------------------------------------------
# Mixin
# --------------------------------------------------------------------------------------


class Canonical:
    """
    Values with a single canonical byte representation.

    Subclasses implement `to_obj()` and `from_obj()`; everything else (bytes,
    equality, hashing) derives from the canonical encoding.
    """

    def to_obj(self) -> Any:  # pragma: no cover - abstract
        raise NotImplementedError

    @classmethod
    def from_obj(cls: Type[T], o: Any) -> T:  # pragma: no cover - abstract
        raise NotImplementedError

    def to_bytes(self) -> bytes:
        return dumps_canonical(self.to_obj())

    @classmethod
    def from_bytes(cls: Type[T], data: bytes) -> T:
        obj = loads_canonical(data, type_name=cls.__name__)
        try:
            return cls.from_obj(obj)
        except DeserializationError:
            raise
        except (KeyError, TypeError, ValueError, IndexError) as e:
            raise DeserializationError(
                "invalid field value", type_name=cls.__name__, cause=e
            ) from e

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.to_bytes() == other.to_bytes()  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.to_bytes()))


__all__ = [
    "dumps_canonical",
    "loads_canonical",
    "b64url_encode_nopad",
    "b64url_decode",
    "b64url_to_str",
    "expect_map",
    "expect_bytes",
    "expect_str",
    "expect_uint",
    "expect_list",
    "Canonical",
    "U64_MAX",
]
