"""
Direct (ZK-less) OpenID path.

verify_claims binds the JWT to the on-chain identity and to the ephemeral key:

  1. exp_timestamp_secs <= iat + max_expiry_horizon_secs
  2. claims.iss == pk.iss
  3. uid_key is allowed and resolves to a value
  4. commit(aud, uid_key, uid_val, pepper) == pk.idc
  5. reconstruct_nonce(epk, exp, blinder) == claims.nonce

Checks run in that order so the two Poseidon hashes are only computed for
tokens that already passed the cheap comparisons. verify_jwt_signature then
checks the provider's RS256 signature over the untouched JWT segments.
"""

from __future__ import annotations

from .claims import Claims, parse_claims, resolve_uid_val
from .commitment import commit, reconstruct_nonce
from .config import DEFAULT_CONFIG, ZkIdConfig
from .errors import PolicyReason, PolicyViolation, ensure
from .jwks import RsaJwk
from .logging import get_logger
from .types import EphemeralPublicKey, OpenIdSig, ZkIdPublicKey

log = get_logger(__name__)


def verify_claims(
    sig: OpenIdSig,
    exp_timestamp_secs: int,
    epk: EphemeralPublicKey,
    pk: ZkIdPublicKey,
    *,
    config: ZkIdConfig = DEFAULT_CONFIG,
) -> Claims:
    claims = parse_claims(sig.jwt_payload)

    ensure(
        exp_timestamp_secs <= claims.iat + config.max_expiry_horizon_secs,
        PolicyViolation(
            PolicyReason.EXPIRY_HORIZON,
            "ephemeral key expiry is too far past the token's iat",
            ctx={"iat": claims.iat, "exp_timestamp_secs": exp_timestamp_secs},
        ),
    )
    ensure(
        claims.iss == pk.iss,
        PolicyViolation(
            PolicyReason.ISS_MISMATCH,
            "'iss' claim does not match the public key's issuer",
            ctx={"iss": pk.iss},
        ),
    )

    uid_val = resolve_uid_val(claims, sig.uid_key, allowed_uid_keys=config.allowed_uid_keys)

    ensure(
        commit(claims.aud, sig.uid_key, uid_val, sig.pepper, config=config) == pk.idc,
        PolicyViolation(
            PolicyReason.IDC_MISMATCH,
            "identity commitment does not match the token",
            ctx={"iss": pk.iss},
        ),
    )
    ensure(
        reconstruct_nonce(epk, exp_timestamp_secs, sig.epk_blinder, config=config) == claims.nonce,
        PolicyViolation(
            PolicyReason.NONCE_MISMATCH,
            "'nonce' claim does not commit to the ephemeral key and expiry",
            ctx={"iss": pk.iss},
        ),
    )

    log.debug("jwt claims bound to public key", extra={"iss": pk.iss, "uid_key": sig.uid_key})
    return claims


def verify_jwt_signature(sig: OpenIdSig, provider_key: RsaJwk, jwt_header: str) -> None:
    provider_key.verify_signature(f"{jwt_header}.{sig.jwt_payload}.{sig.jwt_sig}")


__all__ = ["verify_claims", "verify_jwt_signature"]
