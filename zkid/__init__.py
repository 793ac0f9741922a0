"""
zkid: verification of OpenID-based (zkID) transaction authenticators.

A user authenticates with an OIDC JWT instead of an on-chain key. A short-lived
ephemeral key signs the transaction, the JWT's `nonce` commits to that key and
its expiry, and the on-chain `ZkIdPublicKey` holds the issuer plus a hiding
commitment to (aud, uid_key, uid_val, pepper).

Quick use:

    from zkid import ZkIdSignature, JwkSnapshot

    sig = ZkIdSignature.from_bytes(raw)
    sig.verify(pk, block_time_micros, JwkSnapshot.from_jwks(jwks))
"""

from .authenticator import (
    AnyPublicKey,
    AnySignature,
    SignedTransaction,
    SingleKeyAuthenticator,
    extract_zkid_authenticators,
    verify_transaction_authenticators,
)
from .claims import Claims, JwtHeader, parse_claims, resolve_uid_val
from .commitment import commit, reconstruct_nonce
from .config import DEFAULT_CONFIG, ZkIdConfig, load_config
from .errors import (
    ClaimsParseError,
    ClaimsPolicyError,
    ConfigError,
    DeserializationError,
    EncodingError,
    Expired,
    HashingError,
    KeyNotFound,
    PolicyReason,
    PolicyViolation,
    ProofInvalid,
    SignatureInvalid,
    TooManyAuthenticators,
    ZkIdError,
    ZkIdErrorCode,
)
from .groth16 import Groth16Bn254Verifier
from .jwks import JwkSnapshot, RsaJwk
from .openid import verify_claims, verify_jwt_signature
from .signature import ZkIdSignature, ZkpOrOpenIdSig
from .types import (
    EphemeralPublicKey,
    EphemeralSignature,
    Groth16Zkp,
    IdCommitment,
    JwkId,
    OpenIdSig,
    Pepper,
    ZkIdPublicKey,
)
from .version import __version__

__all__ = [
    "__version__",
    # config
    "ZkIdConfig",
    "DEFAULT_CONFIG",
    "load_config",
    # values
    "Pepper",
    "IdCommitment",
    "ZkIdPublicKey",
    "JwkId",
    "EphemeralPublicKey",
    "EphemeralSignature",
    "Groth16Zkp",
    "OpenIdSig",
    "ZkIdSignature",
    "ZkpOrOpenIdSig",
    "Claims",
    "JwtHeader",
    # operations
    "commit",
    "reconstruct_nonce",
    "parse_claims",
    "resolve_uid_val",
    "verify_claims",
    "verify_jwt_signature",
    "RsaJwk",
    "JwkSnapshot",
    "Groth16Bn254Verifier",
    "AnyPublicKey",
    "AnySignature",
    "SingleKeyAuthenticator",
    "SignedTransaction",
    "extract_zkid_authenticators",
    "verify_transaction_authenticators",
    # errors
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
]
