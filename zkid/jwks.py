"""
Provider signing keys (RSA JWKs) and an in-memory, point-in-time key set.

Fetching and rotating JWKs is somebody else's job; verification only needs a
`resolve(iss, kid)` lookup over whatever snapshot the caller trusts.

JWKS document layout accepted by JwkSnapshot.from_jwks / load_snapshot:

    {
      "https://accounts.example.com": {"keys": [{"kty": "RSA", "kid": "...",
                                                 "alg": "RS256", "e": "AQAB",
                                                 "n": "..."}]},
      ...
    }
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Mapping, Protocol, Tuple, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .claims import parse_jwt_header
from .encoding import b64url_decode, b64url_encode_nopad
from .errors import ClaimsParseError, DeserializationError, KeyNotFound, SignatureInvalid, rethrow_as
from .types import JwkId

SUPPORTED_ALG = "RS256"


@dataclass(frozen=True)
class RsaJwk:
    kid: str
    kty: str
    alg: str
    e: str  # base64url big-endian
    n: str  # base64url big-endian

    @classmethod
    def from_jwk(cls, jwk: Mapping[str, Any]) -> "RsaJwk":
        for k in ("kid", "kty", "e", "n"):
            if not isinstance(jwk.get(k), str):
                raise DeserializationError(f"JWK field '{k}' missing or not a string", type_name="RsaJwk")
        if jwk["kty"] != "RSA":
            raise DeserializationError("only RSA JWKs are supported", type_name="RsaJwk")
        alg = jwk.get("alg", SUPPORTED_ALG)
        if alg != SUPPORTED_ALG:
            raise DeserializationError(f"unsupported JWK alg {alg!r}", type_name="RsaJwk")
        return cls(kid=jwk["kid"], kty="RSA", alg=alg, e=jwk["e"], n=jwk["n"])

    @classmethod
    def from_public_key(cls, kid: str, key: rsa.RSAPublicKey) -> "RsaJwk":
        nums = key.public_numbers()

        def _b64(i: int) -> str:
            return b64url_encode_nopad(i.to_bytes((i.bit_length() + 7) // 8, "big"))

        return cls(kid=kid, kty="RSA", alg=SUPPORTED_ALG, e=_b64(nums.e), n=_b64(nums.n))

    def to_jwk(self) -> Dict[str, str]:
        return {"kid": self.kid, "kty": self.kty, "alg": self.alg, "e": self.e, "n": self.n}

    def modulus_bytes(self) -> bytes:
        return b64url_decode(self.n)

    def public_key(self) -> rsa.RSAPublicKey:
        with rethrow_as(SignatureInvalid, kid=self.kid, reason="provider key is not a valid RSA key"):
            n = int.from_bytes(b64url_decode(self.n), "big")
            e = int.from_bytes(b64url_decode(self.e), "big")
            return rsa.RSAPublicNumbers(e=e, n=n).public_key()

    def verify_signature(self, token: str) -> None:
        """
        Verify a compact RS256 JWS `header.payload.signature`.

        Raises SignatureInvalid; never returns False.
        """
        parts = token.split(".")
        if len(parts) != 3:
            raise SignatureInvalid("token must have three segments")
        head_b64, pay_b64, sig_b64 = parts
        try:
            header = parse_jwt_header(head_b64)
        except ClaimsParseError as ex:
            raise SignatureInvalid("JWT header is malformed", cause=ex) from ex
        if header.alg != self.alg:
            raise SignatureInvalid("JWT alg does not match provider key", ctx={"alg": header.alg})

        try:
            sig = b64url_decode(sig_b64)
        except ValueError as ex:
            raise SignatureInvalid("JWT signature is not base64url", cause=ex) from ex

        signed = f"{head_b64}.{pay_b64}".encode("utf-8")
        try:
            self.public_key().verify(sig, signed, padding.PKCS1v15(), hashes.SHA256())
        except InvalidSignature as ex:
            raise SignatureInvalid(ctx={"kid": self.kid}, cause=ex) from ex


class ProviderKeys(Protocol):
    def resolve(self, iss: str, kid: str) -> RsaJwk: ...


class JwkSnapshot:
    """Immutable map JwkId -> RsaJwk captured at one point in time."""

    def __init__(self, keys: Mapping[JwkId, RsaJwk] | Iterable[Tuple[JwkId, RsaJwk]] = ()):
        items = keys.items() if isinstance(keys, Mapping) else keys
        self._keys: Dict[JwkId, RsaJwk] = dict(items)

    @classmethod
    def from_jwks(cls, per_issuer: Mapping[str, Mapping[str, Any]]) -> "JwkSnapshot":
        out: Dict[JwkId, RsaJwk] = {}
        for iss, doc in per_issuer.items():
            for raw in doc.get("keys", []):
                jwk = RsaJwk.from_jwk(raw)
                out[JwkId(iss, jwk.kid)] = jwk
        return cls(out)

    def resolve(self, iss: str, kid: str) -> RsaJwk:
        try:
            return self._keys[JwkId(iss, kid)]
        except KeyError:
            raise KeyNotFound(iss, kid) from None

    def with_key(self, iss: str, jwk: RsaJwk) -> "JwkSnapshot":
        keys = dict(self._keys)
        keys[JwkId(iss, jwk.kid)] = jwk
        return JwkSnapshot(keys)

    def __contains__(self, item: JwkId) -> bool:
        return item in self._keys

    def __iter__(self) -> Iterator[JwkId]:
        return iter(sorted(self._keys))

    def __len__(self) -> int:
        return len(self._keys)


def load_snapshot(path: Union[str, Path]) -> JwkSnapshot:
    with open(path, "r", encoding="utf-8") as f:
        return JwkSnapshot.from_jwks(json.load(f))


__all__ = ["RsaJwk", "ProviderKeys", "JwkSnapshot", "load_snapshot", "SUPPORTED_ALG"]
