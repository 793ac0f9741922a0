"""
zkid.types
==========

Value types that cross the wire or live on chain. Every type is a frozen
dataclass with a canonical CBOR form (see zkid.encoding); equality and hashing
come from those bytes.

Encodings
---------
Pepper                32-byte bstr
IdCommitment          32-byte bstr
ZkIdPublicKey         {"iss": tstr, "idc": bstr .size 32}
JwkId                 [iss, kid]
EphemeralPublicKey    [scheme, bstr]      scheme 0 = Ed25519 (32-byte key)
EphemeralSignature    [scheme, bstr]      scheme 0 = Ed25519 (64-byte sig)
Groth16Zkp            {"a": [x, y], "b": [[x0, x1], [y0, y1]], "c": [x, y]}
                      affine BN254 coordinates as decimal strings (snarkjs)
OpenIdSig             {"jwt_sig", "jwt_payload", "uid_key", "epk_blinder", "pepper"}
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from py_ecc.optimized_bn128 import field_modulus

from .config import DEFAULT_CONFIG, ZkIdConfig
from .encoding import (
    Canonical,
    expect_bytes,
    expect_list,
    expect_map,
    expect_str,
    expect_uint,
)
from .errors import DeserializationError, EncodingError

PEPPER_NUM_BYTES = 32
EPK_BLINDER_NUM_BYTES = 32
IDC_NUM_BYTES = 32
NONCE_NUM_BYTES = 32

ED25519_PUBLIC_KEY_BYTES = 32
ED25519_SIGNATURE_BYTES = 64

# BN254 base field; Groth16 coordinates must be reduced below it.
BN254_FIELD_MODULUS = int(field_modulus)


# --------------------------------------------------------------------------------------
# Secrets & commitments
# --------------------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class Pepper(Canonical):
    """Hiding randomness of the identity commitment. Never log it."""

    value: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.value, (bytes, bytearray)) or len(self.value) != PEPPER_NUM_BYTES:
            raise ValueError("pepper must be exactly 32 bytes")
        object.__setattr__(self, "value", bytes(self.value))

    @classmethod
    def from_number(cls, n: int) -> "Pepper":
        """Little-endian, zero-extended to 32 bytes."""
        if n < 0 or n >= 1 << (8 * PEPPER_NUM_BYTES):
            raise ValueError("pepper number out of range")
        return cls(int(n).to_bytes(PEPPER_NUM_BYTES, "little"))

    def to_obj(self) -> bytes:
        return self.value

    @classmethod
    def from_obj(cls, o: Any) -> "Pepper":
        return cls(expect_bytes(o, PEPPER_NUM_BYTES, type_name=cls.__name__))

    def __repr__(self) -> str:
        return "Pepper(<redacted>)"


@dataclass(frozen=True, eq=False)
class IdCommitment(Canonical):
    value: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.value, (bytes, bytearray)) or len(self.value) != IDC_NUM_BYTES:
            raise ValueError("identity commitment must be exactly 32 bytes")
        object.__setattr__(self, "value", bytes(self.value))

    @classmethod
    def new_from_preimage(
        cls, aud: str, uid_key: str, uid_val: str, pepper: Pepper, **kw: Any
    ) -> "IdCommitment":
        from .commitment import commit

        return commit(aud, uid_key, uid_val, pepper, **kw)

    def to_obj(self) -> bytes:
        return self.value

    @classmethod
    def from_obj(cls, o: Any) -> "IdCommitment":
        return cls(expect_bytes(o, IDC_NUM_BYTES, type_name=cls.__name__))

    def hex(self) -> str:
        return self.value.hex()


@dataclass(frozen=True, eq=False)
class ZkIdPublicKey(Canonical):
    """On-chain identity: the provider plus a hiding commitment to the user."""

    iss: str
    idc: IdCommitment

    def to_obj(self) -> Dict[str, Any]:
        return {"iss": self.iss, "idc": self.idc.to_obj()}

    @classmethod
    def from_obj(cls, o: Any) -> "ZkIdPublicKey":
        name = cls.__name__
        m = expect_map(o, ("iss", "idc"), type_name=name)
        return cls(
            iss=expect_str(m["iss"], type_name=name),
            idc=IdCommitment.from_obj(m["idc"]),
        )

    @classmethod
    def from_bytes(cls, data: bytes, *, config: ZkIdConfig = DEFAULT_CONFIG) -> "ZkIdPublicKey":
        pk = super().from_bytes(data)
        pk.validate_sizes(config)
        return pk

    def validate_sizes(self, config: ZkIdConfig = DEFAULT_CONFIG) -> None:
        iss_len = len(self.iss.encode("utf-8"))
        if iss_len > config.max_iss_bytes:
            raise EncodingError(
                "issuer too large", what="iss", size=iss_len, limit=config.max_iss_bytes
            )


@dataclass(frozen=True, eq=False, order=False)
class JwkId(Canonical):
    """Identifies one provider key: (issuer, key id)."""

    iss: str
    kid: str

    def to_obj(self) -> list:
        return [self.iss, self.kid]

    @classmethod
    def from_obj(cls, o: Any) -> "JwkId":
        name = cls.__name__
        iss, kid = expect_list(o, 2, type_name=name)
        return cls(iss=expect_str(iss, type_name=name), kid=expect_str(kid, type_name=name))

    def __lt__(self, other: "JwkId") -> bool:
        return (self.iss, self.kid) < (other.iss, other.kid)


# --------------------------------------------------------------------------------------
# Ephemeral keys
# --------------------------------------------------------------------------------------


class EphemeralScheme(IntEnum):
    ED25519 = 0


_EPK_SIZES = {EphemeralScheme.ED25519: ED25519_PUBLIC_KEY_BYTES}
_ESIG_SIZES = {EphemeralScheme.ED25519: ED25519_SIGNATURE_BYTES}


def _scheme(v: Any, type_name: str) -> EphemeralScheme:
    try:
        return EphemeralScheme(expect_uint(v, type_name=type_name))
    except ValueError as e:
        raise DeserializationError("unknown ephemeral scheme", type_name=type_name, cause=e) from e


@dataclass(frozen=True, eq=False)
class EphemeralSignature(Canonical):
    scheme: EphemeralScheme
    sig: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "scheme", EphemeralScheme(self.scheme))
        object.__setattr__(self, "sig", bytes(self.sig))
        if len(self.sig) != _ESIG_SIZES[self.scheme]:
            raise ValueError(f"{self.scheme.name} signature must be {_ESIG_SIZES[self.scheme]} bytes")

    @classmethod
    def ed25519(cls, sig: bytes) -> "EphemeralSignature":
        return cls(EphemeralScheme.ED25519, bytes(sig))

    def to_obj(self) -> list:
        return [int(self.scheme), self.sig]

    @classmethod
    def from_obj(cls, o: Any) -> "EphemeralSignature":
        name = cls.__name__
        scheme, sig = expect_list(o, 2, type_name=name)
        s = _scheme(scheme, name)
        return cls(s, expect_bytes(sig, _ESIG_SIZES[s], type_name=name))


@dataclass(frozen=True, eq=False)
class EphemeralPublicKey(Canonical):
    """Short-lived key that signs the transaction; committed to in the JWT nonce."""

    scheme: EphemeralScheme
    key: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "scheme", EphemeralScheme(self.scheme))
        object.__setattr__(self, "key", bytes(self.key))
        if len(self.key) != _EPK_SIZES[self.scheme]:
            raise ValueError(f"{self.scheme.name} public key must be {_EPK_SIZES[self.scheme]} bytes")

    @classmethod
    def ed25519(cls, key: bytes) -> "EphemeralPublicKey":
        return cls(EphemeralScheme.ED25519, bytes(key))

    def to_obj(self) -> list:
        return [int(self.scheme), self.key]

    @classmethod
    def from_obj(cls, o: Any) -> "EphemeralPublicKey":
        name = cls.__name__
        scheme, key = expect_list(o, 2, type_name=name)
        s = _scheme(scheme, name)
        return cls(s, expect_bytes(key, _EPK_SIZES[s], type_name=name))

    def verify(self, message: bytes, signature: EphemeralSignature) -> bool:
        if signature.scheme != self.scheme:
            return False
        try:
            Ed25519PublicKey.from_public_bytes(self.key).verify(signature.sig, bytes(message))
        except InvalidSignature:
            return False
        return True


# --------------------------------------------------------------------------------------
# Signature variants
# --------------------------------------------------------------------------------------

G1Coords = Tuple[str, str]
G2Coords = Tuple[Tuple[str, str], Tuple[str, str]]


def _coord(v: Any, type_name: str) -> str:
    s = expect_str(v, type_name=type_name)
    if not s.isdigit() or (len(s) > 1 and s[0] == "0"):
        raise DeserializationError("coordinate must be a canonical decimal string", type_name=type_name)
    if int(s) >= BN254_FIELD_MODULUS:
        raise DeserializationError("coordinate not reduced mod p", type_name=type_name)
    return s


def _g1_from_obj(o: Any, type_name: str) -> G1Coords:
    x, y = expect_list(o, 2, type_name=type_name)
    return (_coord(x, type_name), _coord(y, type_name))


def _g2_from_obj(o: Any, type_name: str) -> G2Coords:
    xs, ys = expect_list(o, 2, type_name=type_name)
    x0, x1 = expect_list(xs, 2, type_name=type_name)
    y0, y1 = expect_list(ys, 2, type_name=type_name)
    return (
        (_coord(x0, type_name), _coord(x1, type_name)),
        (_coord(y0, type_name), _coord(y1, type_name)),
    )


@dataclass(frozen=True, eq=False)
class Groth16Zkp(Canonical):
    """A Groth16 proof (A in G1, B in G2, C in G1), affine coordinates."""

    a: G1Coords
    b: G2Coords
    c: G1Coords

    @classmethod
    def from_snarkjs(cls, proof_json: Dict[str, Any]) -> "Groth16Zkp":
        """Accepts snarkjs `pi_a`/`pi_b`/`pi_c` (projective z limb is dropped)."""
        pa, pb, pc = proof_json["pi_a"], proof_json["pi_b"], proof_json["pi_c"]
        return cls.from_obj(
            {
                "a": [str(pa[0]), str(pa[1])],
                "b": [[str(pb[0][0]), str(pb[0][1])], [str(pb[1][0]), str(pb[1][1])]],
                "c": [str(pc[0]), str(pc[1])],
            }
        )

    def to_obj(self) -> Dict[str, Any]:
        return {
            "a": list(self.a),
            "b": [list(self.b[0]), list(self.b[1])],
            "c": list(self.c),
        }

    @classmethod
    def from_obj(cls, o: Any) -> "Groth16Zkp":
        name = cls.__name__
        m = expect_map(o, ("a", "b", "c"), type_name=name)
        return cls(
            a=_g1_from_obj(m["a"], name),
            b=_g2_from_obj(m["b"], name),
            c=_g1_from_obj(m["c"], name),
        )


@dataclass(frozen=True, eq=False)
class OpenIdSig(Canonical):
    """
    The raw JWT pieces plus the secrets needed to open the commitments.

    jwt_sig and jwt_payload are the base64url segments exactly as issued.
    """

    jwt_sig: str
    jwt_payload: str
    uid_key: str
    epk_blinder: bytes
    pepper: Pepper

    def __post_init__(self) -> None:
        if len(self.epk_blinder) != EPK_BLINDER_NUM_BYTES:
            raise ValueError("epk_blinder must be exactly 32 bytes")
        object.__setattr__(self, "epk_blinder", bytes(self.epk_blinder))

    def to_obj(self) -> Dict[str, Any]:
        return {
            "jwt_sig": self.jwt_sig,
            "jwt_payload": self.jwt_payload,
            "uid_key": self.uid_key,
            "epk_blinder": self.epk_blinder,
            "pepper": self.pepper.to_obj(),
        }

    @classmethod
    def from_obj(cls, o: Any) -> "OpenIdSig":
        name = cls.__name__
        m = expect_map(
            o, ("jwt_sig", "jwt_payload", "uid_key", "epk_blinder", "pepper"), type_name=name
        )
        return cls(
            jwt_sig=expect_str(m["jwt_sig"], type_name=name),
            jwt_payload=expect_str(m["jwt_payload"], type_name=name),
            uid_key=expect_str(m["uid_key"], type_name=name),
            epk_blinder=expect_bytes(m["epk_blinder"], EPK_BLINDER_NUM_BYTES, type_name=name),
            pepper=Pepper.from_obj(m["pepper"]),
        )

    def __repr__(self) -> str:
        return f"OpenIdSig(uid_key={self.uid_key!r}, jwt_payload=<{len(self.jwt_payload)} chars>)"


__all__ = [
    "PEPPER_NUM_BYTES",
    "EPK_BLINDER_NUM_BYTES",
    "IDC_NUM_BYTES",
    "NONCE_NUM_BYTES",
    "Pepper",
    "IdCommitment",
    "ZkIdPublicKey",
    "JwkId",
    "EphemeralScheme",
    "EphemeralPublicKey",
    "EphemeralSignature",
    "Groth16Zkp",
    "OpenIdSig",
]
