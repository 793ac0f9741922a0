"""
zkid.signature
==============

`ZkIdSignature`: the envelope a zkID authenticator carries, and the single
entry point that verifies it against a `ZkIdPublicKey`.

Wire form (canonical CBOR map):

    {
      "sig":                 [variant_tag, variant_obj],
      "jwt_header":          tstr,          # base64url JWT header, as issued
      "exp_timestamp_secs":  uint,          # EPK expiry, UNIX seconds
      "ephemeral_pubkey":    EphemeralPublicKey,
      "ephemeral_signature": EphemeralSignature,
    }

Variant tags come from the position of the variant class in `SIG_VARIANTS`,
so a tag can never disagree with its payload.

Verification order
------------------
1. size ceilings of the signature and of pk.iss (EncodingError)
2. expiry against the block time in microseconds (Expired)
3. dispatch:
     OpenIdSig  -> claims binding, then RS256 over the untouched JWT
     Groth16Zkp -> public-input hash, then the proof verifier
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Type, Union

from .claims import JwtHeader, parse_jwt_header
from .config import DEFAULT_CONFIG, ZkIdConfig
from .encoding import (
    Canonical,
    expect_list,
    expect_map,
    expect_str,
    expect_uint,
)
from .errors import DeserializationError, EncodingError, Expired, SignatureInvalid, ZkIdError
from .groth16 import Groth16Bn254Verifier
from .jwks import ProviderKeys
from .logging import get_logger
from .openid import verify_claims, verify_jwt_signature
from .types import EphemeralPublicKey, EphemeralSignature, Groth16Zkp, OpenIdSig, ZkIdPublicKey
from .zkp import ProofVerifier, verify_zkp

log = get_logger(__name__)

ZkpOrOpenIdSig = Union[Groth16Zkp, OpenIdSig]

SIG_VARIANTS: Tuple[Type[Canonical], ...] = (Groth16Zkp, OpenIdSig)

_FIELDS = ("sig", "jwt_header", "exp_timestamp_secs", "ephemeral_pubkey", "ephemeral_signature")


def variant_tag(sig: ZkpOrOpenIdSig) -> int:
    try:
        return SIG_VARIANTS.index(type(sig))
    except ValueError:
        raise TypeError(f"not a zkID signature variant: {type(sig).__name__}") from None


def _variant_from_obj(o: Any) -> ZkpOrOpenIdSig:
    tag, payload = expect_list(o, 2, type_name="ZkpOrOpenIdSig")
    tag = expect_uint(tag, type_name="ZkpOrOpenIdSig")
    if tag >= len(SIG_VARIANTS):
        raise DeserializationError("unknown signature variant", type_name="ZkpOrOpenIdSig", ctx={"tag": tag})
    return SIG_VARIANTS[tag].from_obj(payload)  # type: ignore[return-value]


def _default_proof_verifier() -> ProofVerifier:
    return Groth16Bn254Verifier()


@dataclass(frozen=True, eq=False)
class ZkIdSignature(Canonical):
    sig: ZkpOrOpenIdSig
    jwt_header: str
    exp_timestamp_secs: int
    ephemeral_pubkey: EphemeralPublicKey
    ephemeral_signature: EphemeralSignature

    # ---- encoding ----

    def to_obj(self) -> Dict[str, Any]:
        return {
            "sig": [variant_tag(self.sig), self.sig.to_obj()],
            "jwt_header": self.jwt_header,
            "exp_timestamp_secs": int(self.exp_timestamp_secs),
            "ephemeral_pubkey": self.ephemeral_pubkey.to_obj(),
            "ephemeral_signature": self.ephemeral_signature.to_obj(),
        }

    @classmethod
    def from_obj(cls, o: Any) -> "ZkIdSignature":
        name = cls.__name__
        m = expect_map(o, _FIELDS, type_name=name)
        return cls(
            sig=_variant_from_obj(m["sig"]),
            jwt_header=expect_str(m["jwt_header"], type_name=name),
            exp_timestamp_secs=expect_uint(m["exp_timestamp_secs"], type_name=name),
            ephemeral_pubkey=EphemeralPublicKey.from_obj(m["ephemeral_pubkey"]),
            ephemeral_signature=EphemeralSignature.from_obj(m["ephemeral_signature"]),
        )

    @classmethod
    def from_bytes(cls, data: bytes, *, config: ZkIdConfig = DEFAULT_CONFIG) -> "ZkIdSignature":
        if len(data) > config.max_zk_signature_bytes:
            raise EncodingError(
                "zkID signature too large",
                what="signature",
                size=len(data),
                limit=config.max_zk_signature_bytes,
            )
        return super().from_bytes(data)

    # ---- pieces ----

    def parse_jwt_header(self) -> JwtHeader:
        return parse_jwt_header(self.jwt_header)

    def validate_sizes(self, config: ZkIdConfig = DEFAULT_CONFIG) -> None:
        header_len = len(self.jwt_header.encode("utf-8"))
        if header_len > config.max_jwt_header_bytes:
            raise EncodingError(
                "JWT header too large",
                what="jwt_header",
                size=header_len,
                limit=config.max_jwt_header_bytes,
            )
        epk_len = len(self.ephemeral_pubkey.to_bytes())
        if epk_len > config.max_epk_bytes:
            raise EncodingError(
                "ephemeral public key too large",
                what="ephemeral_pubkey",
                size=epk_len,
                limit=config.max_epk_bytes,
            )
        sig_len = len(self.to_bytes())
        if sig_len > config.max_zk_signature_bytes:
            raise EncodingError(
                "zkID signature too large",
                what="signature",
                size=sig_len,
                limit=config.max_zk_signature_bytes,
            )

    def verify_expiry(self, current_time_micros: int) -> None:
        # Integer microseconds; the expiry second itself is still valid.
        if current_time_micros > self.exp_timestamp_secs * 1_000_000:
            raise Expired(
                exp_timestamp_secs=self.exp_timestamp_secs,
                current_time_micros=current_time_micros,
            )

    def verify_ephemeral_signature(self, message: bytes) -> None:
        if not self.ephemeral_pubkey.verify(message, self.ephemeral_signature):
            raise SignatureInvalid("ephemeral signature does not verify over the transaction")

    # ---- entry point ----

    def verify(
        self,
        pk: ZkIdPublicKey,
        current_time_micros: int,
        provider_keys: ProviderKeys,
        proof_verifier: Optional[ProofVerifier] = None,
        *,
        verification_key: Any = None,
        config: ZkIdConfig = DEFAULT_CONFIG,
    ) -> None:
        """
        Verify this signature for `pk` at block time `current_time_micros`.

        Returns None on success; raises a ZkIdError subclass otherwise.
        """
        try:
            self.validate_sizes(config)
            pk.validate_sizes(config)
            self.verify_expiry(current_time_micros)
            _dispatch(
                self,
                pk,
                provider_keys,
                proof_verifier,
                verification_key=verification_key,
                config=config,
            )
        except ZkIdError as e:
            log.debug(
                "zkID signature rejected",
                extra={"iss": pk.iss, "code": getattr(e.code, "value", e.code)},
            )
            raise
        log.debug("zkID signature accepted", extra={"iss": pk.iss})


def _dispatch(
    zsig: ZkIdSignature,
    pk: ZkIdPublicKey,
    provider_keys: ProviderKeys,
    proof_verifier: Optional[ProofVerifier],
    *,
    verification_key: Any,
    config: ZkIdConfig,
) -> None:
    header = zsig.parse_jwt_header()
    sig = zsig.sig

    if isinstance(sig, OpenIdSig):
        verify_claims(sig, zsig.exp_timestamp_secs, zsig.ephemeral_pubkey, pk, config=config)
        jwk = provider_keys.resolve(pk.iss, header.kid)
        verify_jwt_signature(sig, jwk, zsig.jwt_header)
    elif isinstance(sig, Groth16Zkp):
        jwk = provider_keys.resolve(pk.iss, header.kid)
        verify_zkp(
            sig,
            pk=pk,
            epk=zsig.ephemeral_pubkey,
            exp_timestamp_secs=zsig.exp_timestamp_secs,
            jwt_header=zsig.jwt_header,
            jwk=jwk,
            proof_verifier=proof_verifier or _default_proof_verifier(),
            verification_key=verification_key,
            config=config,
        )
    else:
        raise TypeError(f"not a zkID signature variant: {type(sig).__name__}")


__all__ = ["ZkIdSignature", "ZkpOrOpenIdSig", "SIG_VARIANTS", "variant_tag"]
