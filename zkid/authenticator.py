"""
Transaction authenticators and zkID extraction.

A transaction carries a sequence of single-key authenticator slots. Each slot
pairs an `AnyPublicKey` with an `AnySignature`; the variant (Ed25519 or zkID)
is tagged on the wire by class, the same way ZkIdSignature tags its variants.

extract_zkid_authenticators only collects the zkID pairs (slot order kept);
verify_transaction_authenticators enforces the per-transaction cap, checks the
Ed25519 slots and then fully verifies each zkID pair, including the ephemeral
signature over the transaction's signing message.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, Type, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from . import logging as zlog
from .config import DEFAULT_CONFIG, ZkIdConfig
from .encoding import Canonical, expect_bytes, expect_list, expect_map, expect_uint
from .errors import DeserializationError, SignatureInvalid, TooManyAuthenticators
from .jwks import ProviderKeys
from .logging import get_logger
from .signature import ZkIdSignature
from .types import ZkIdPublicKey
from .zkp import ProofVerifier

log = get_logger(__name__)

TX_SIGNING_DOMAIN = b"zkid/tx/v1"


@dataclass(frozen=True, eq=False)
class Ed25519Key(Canonical):
    key: bytes

    def to_obj(self) -> bytes:
        return self.key

    @classmethod
    def from_obj(cls, o: Any) -> "Ed25519Key":
        return cls(expect_bytes(o, 32, type_name=cls.__name__))


@dataclass(frozen=True, eq=False)
class Ed25519Sig(Canonical):
    sig: bytes

    def to_obj(self) -> bytes:
        return self.sig

    @classmethod
    def from_obj(cls, o: Any) -> "Ed25519Sig":
        return cls(expect_bytes(o, 64, type_name=cls.__name__))


PK_VARIANTS: Tuple[Type[Canonical], ...] = (Ed25519Key, ZkIdPublicKey)
SIG_VARIANTS: Tuple[Type[Canonical], ...] = (Ed25519Sig, ZkIdSignature)


def _tagged_from_obj(o: Any, variants: Tuple[Type[Canonical], ...], type_name: str) -> Any:
    tag, payload = expect_list(o, 2, type_name=type_name)
    tag = expect_uint(tag, type_name=type_name)
    if tag >= len(variants):
        raise DeserializationError("unknown variant tag", type_name=type_name, ctx={"tag": tag})
    return variants[tag].from_obj(payload)


@dataclass(frozen=True, eq=False)
class AnyPublicKey(Canonical):
    inner: Union[Ed25519Key, ZkIdPublicKey]

    @property
    def is_zkid(self) -> bool:
        return isinstance(self.inner, ZkIdPublicKey)

    def to_obj(self) -> list:
        return [PK_VARIANTS.index(type(self.inner)), self.inner.to_obj()]

    @classmethod
    def from_obj(cls, o: Any) -> "AnyPublicKey":
        return cls(_tagged_from_obj(o, PK_VARIANTS, cls.__name__))


@dataclass(frozen=True, eq=False)
class AnySignature(Canonical):
    inner: Union[Ed25519Sig, ZkIdSignature]

    @property
    def is_zkid(self) -> bool:
        return isinstance(self.inner, ZkIdSignature)

    def to_obj(self) -> list:
        return [SIG_VARIANTS.index(type(self.inner)), self.inner.to_obj()]

    @classmethod
    def from_obj(cls, o: Any) -> "AnySignature":
        return cls(_tagged_from_obj(o, SIG_VARIANTS, cls.__name__))


@dataclass(frozen=True, eq=False)
class SingleKeyAuthenticator(Canonical):
    public_key: AnyPublicKey
    signature: AnySignature

    def to_obj(self) -> Dict[str, Any]:
        return {"public_key": self.public_key.to_obj(), "signature": self.signature.to_obj()}

    @classmethod
    def from_obj(cls, o: Any) -> "SingleKeyAuthenticator":
        m = expect_map(o, ("public_key", "signature"), type_name=cls.__name__)
        return cls(
            public_key=AnyPublicKey.from_obj(m["public_key"]),
            signature=AnySignature.from_obj(m["signature"]),
        )


class Transaction(Protocol):
    @property
    def authenticators(self) -> Sequence[SingleKeyAuthenticator]: ...

    def signing_message(self) -> bytes: ...


@dataclass(frozen=True, eq=False)
class SignedTransaction(Canonical):
    """Minimal transaction: opaque payload plus its authenticator slots."""

    payload: bytes
    authenticators: Tuple[SingleKeyAuthenticator, ...] = field(default_factory=tuple)

    def signing_message(self) -> bytes:
        return TX_SIGNING_DOMAIN + hashlib.sha3_256(self.payload).digest()

    def to_obj(self) -> Dict[str, Any]:
        return {"payload": self.payload, "authenticators": [a.to_obj() for a in self.authenticators]}

    @classmethod
    def from_obj(cls, o: Any) -> "SignedTransaction":
        name = cls.__name__
        m = expect_map(o, ("payload", "authenticators"), type_name=name)
        return cls(
            payload=expect_bytes(m["payload"], type_name=name),
            authenticators=tuple(
                SingleKeyAuthenticator.from_obj(a)
                for a in expect_list(m["authenticators"], type_name=name)
            ),
        )


def extract_zkid_authenticators(tx: Transaction) -> List[Tuple[ZkIdPublicKey, ZkIdSignature]]:
    out: List[Tuple[ZkIdPublicKey, ZkIdSignature]] = []
    for auth in tx.authenticators:
        pk, sig = auth.public_key.inner, auth.signature.inner
        if isinstance(pk, ZkIdPublicKey) and isinstance(sig, ZkIdSignature):
            out.append((pk, sig))
    return out


def verify_ed25519(pk: Ed25519Key, sig: Ed25519Sig, message: bytes) -> None:
    try:
        Ed25519PublicKey.from_public_bytes(pk.key).verify(sig.sig, message)
    except InvalidSignature as e:
        raise SignatureInvalid("ed25519 signature does not verify", cause=e) from e


def verify_transaction_authenticators(
    tx: Transaction,
    *,
    current_time_micros: int,
    provider_keys: ProviderKeys,
    proof_verifier: Optional[ProofVerifier] = None,
    verification_key: Any = None,
    config: ZkIdConfig = DEFAULT_CONFIG,
) -> int:
    """
    Verify every authenticator slot of `tx` against its signing message.
    Returns how many zkID slots were verified.

    The zkID cap is checked first. Ed25519 slots are checked before any zkID
    slot so the cheap signatures fail fast.
    """
    pairs = extract_zkid_authenticators(tx)
    if len(pairs) > config.max_zkid_authenticators:
        raise TooManyAuthenticators(len(pairs), config.max_zkid_authenticators)

    message = tx.signing_message()
    for auth in tx.authenticators:
        key, signature = auth.public_key.inner, auth.signature.inner
        if isinstance(key, Ed25519Key) and isinstance(signature, Ed25519Sig):
            verify_ed25519(key, signature, message)
        elif auth.public_key.is_zkid != auth.signature.is_zkid:
            raise SignatureInvalid("authenticator pairs a key and a signature of different schemes")

    with zlog.trace_scope():
        for slot, (pk, sig) in enumerate(pairs):
            zlog.bind(zkid_slot=slot)
            sig.verify(
                pk,
                current_time_micros,
                provider_keys,
                proof_verifier,
                verification_key=verification_key,
                config=config,
            )
            sig.verify_ephemeral_signature(message)
        log.debug("transaction authenticators verified", extra={"zkid": len(pairs)})
    return len(pairs)


__all__ = [
    "Ed25519Key",
    "Ed25519Sig",
    "AnyPublicKey",
    "AnySignature",
    "SingleKeyAuthenticator",
    "Transaction",
    "SignedTransaction",
    "extract_zkid_authenticators",
    "verify_ed25519",
    "verify_transaction_authenticators",
    "TX_SIGNING_DOMAIN",
]
