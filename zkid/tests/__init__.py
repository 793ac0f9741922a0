"""
zkid.tests helpers

Builders shared by zkid/* tests: RSA provider keys, signed JWTs, ephemeral
Ed25519 keys, complete OpenID-path signatures and a forged-but-valid Groth16
statement.

Exports:
- TEST_ROOT, fixture_path(*parts)
- ISS, AUD, SUB, EMAIL, KID, IAT, EXP, NOW_MICROS
- b64json(obj) -> str
- rsa_private_key() / provider_jwk() / provider_keys()
- sign_jwt(header_b64, payload_b64, key=None) -> str
- OpenIdCase, build_openid_case(**overrides)
- forged_groth16(public_inputs) -> (vk_json, Groth16Zkp)
- env_flag(name, default=False) -> bool
- configure_test_logging() -> None

Environment toggles:
- ZKID_TEST_LOG=1        enable DEBUG logging for zkid.*
- HYPOTHESIS_PROFILE=ci  deeper property runs (default when CI is set)
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from hypothesis import settings
from py_ecc.optimized_bn128 import G1, G2, curve_order, multiply

from zkid import logging as zlog
from zkid.commitment import commit, reconstruct_nonce
from zkid.config import DEFAULT_CONFIG, ZkIdConfig
from zkid.encoding import b64url_encode_nopad
from zkid.groth16 import g1_to_coords, g2_to_coords, proof_from_points
from zkid.jwks import JwkSnapshot, RsaJwk
from zkid.signature import ZkIdSignature
from zkid.types import (
    EphemeralPublicKey,
    EphemeralSignature,
    Groth16Zkp,
    OpenIdSig,
    Pepper,
    ZkIdPublicKey,
)

# Hypothesis: fewer examples locally, more on CI; hashing is pure Python so no deadline
settings.register_profile("local", settings(max_examples=40, deadline=None))
settings.register_profile("ci", settings(max_examples=200, deadline=None))
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE") or ("ci" if os.environ.get("CI") else "local"))

# --- Paths --------------------------------------------------------------------

TEST_ROOT: Path = Path(__file__).resolve().parent


def fixture_path(*parts: Union[str, Path]) -> Path:
    return (TEST_ROOT / "fixtures").joinpath(*map(Path, parts))


# --- Token defaults -------------------------------------------------------------

ISS = "https://accounts.example.com"
AUD = "test-client-id.apps.example.com"
SUB = "123"
EMAIL = "alice@example.com"
KID = "test-kid-1"

IAT = 1_700_000_000
EXP = IAT + 3_600
NOW_MICROS = (IAT + 60) * 1_000_000

PEPPER = Pepper.from_number(76)
BLINDER = bytes(range(32))


def b64json(obj: Any) -> str:
    return b64url_encode_nopad(json.dumps(obj, separators=(",", ":")).encode("utf-8"))


# --- Provider keys --------------------------------------------------------------


@lru_cache(maxsize=None)
def _rsa_key_for_seed(seed: int) -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def rsa_private_key(seed: int = 0) -> rsa.RSAPrivateKey:
    """
    One 2048-bit key per seed, generated once per test session. The cache is
    keyed on the plain seed so rsa_private_key() and rsa_private_key(0) agree.
    """
    return _rsa_key_for_seed(int(seed))


def provider_jwk(kid: str = KID, seed: int = 0) -> RsaJwk:
    return RsaJwk.from_public_key(kid, rsa_private_key(seed).public_key())


def provider_keys(iss: str = ISS, kid: str = KID, seed: int = 0) -> JwkSnapshot:
    return JwkSnapshot.from_jwks({iss: {"keys": [provider_jwk(kid, seed).to_jwk()]}})


def sign_jwt(header_b64: str, payload_b64: str, key: Optional[rsa.RSAPrivateKey] = None) -> str:
    key = key or rsa_private_key(0)
    sig = key.sign(f"{header_b64}.{payload_b64}".encode("utf-8"), padding.PKCS1v15(), hashes.SHA256())
    return b64url_encode_nopad(sig)


# --- Ephemeral keys -------------------------------------------------------------


@lru_cache(maxsize=None)
def ephemeral_private_key(seed: int = 0) -> Ed25519PrivateKey:
    return Ed25519PrivateKey.from_private_bytes(bytes([seed + 1]) * 32)


def ephemeral_public_key(seed: int = 0) -> EphemeralPublicKey:
    return EphemeralPublicKey.ed25519(ephemeral_private_key(seed).public_key().public_bytes_raw())


def ephemeral_sign(message: bytes, seed: int = 0) -> EphemeralSignature:
    return EphemeralSignature.ed25519(ephemeral_private_key(seed).sign(message))


# --- Complete OpenID-path cases ----------------------------------------------------


@dataclass
class OpenIdCase:
    pk: ZkIdPublicKey
    sig: ZkIdSignature
    keys: JwkSnapshot
    claims: Dict[str, Any]
    config: ZkIdConfig = DEFAULT_CONFIG

    @property
    def openid(self) -> OpenIdSig:
        assert isinstance(self.sig.sig, OpenIdSig)
        return self.sig.sig


def build_openid_case(
    *,
    uid_key: str = "sub",
    iss: str = ISS,
    iat: int = IAT,
    exp: int = EXP,
    claim_overrides: Optional[Dict[str, Any]] = None,
    drop_claims: Sequence[str] = (),
    nonce: Optional[str] = None,
    pepper: Pepper = PEPPER,
    blinder: bytes = BLINDER,
    kid: str = KID,
    message: bytes = b"",
    config: ZkIdConfig = DEFAULT_CONFIG,
) -> OpenIdCase:
    """
    A fully consistent signature: correct commitment, nonce and RS256
    signature. Overrides are applied to the JWT claims *before* signing, so the
    provider signature stays valid while the binding checks can fail.
    """
    epk = ephemeral_public_key()
    claims: Dict[str, Any] = {
        "iss": iss,
        "aud": AUD,
        "sub": SUB,
        "email": EMAIL,
        "email_verified": True,
        "iat": iat,
        "nonce": nonce or reconstruct_nonce(epk, exp, blinder, config=config),
    }
    claims.update(claim_overrides or {})
    for k in drop_claims:
        claims.pop(k, None)

    uid_val = claims.get(uid_key, SUB)
    idc = commit(AUD, uid_key, str(uid_val), pepper, config=config)
    pk = ZkIdPublicKey(iss=iss, idc=idc)

    header_b64 = b64json({"alg": "RS256", "kid": kid, "typ": "JWT"})
    payload_b64 = b64json(claims)
    openid = OpenIdSig(
        jwt_sig=sign_jwt(header_b64, payload_b64),
        jwt_payload=payload_b64,
        uid_key=uid_key,
        epk_blinder=blinder,
        pepper=pepper,
    )
    sig = ZkIdSignature(
        sig=openid,
        jwt_header=header_b64,
        exp_timestamp_secs=exp,
        ephemeral_pubkey=epk,
        ephemeral_signature=ephemeral_sign(message),
    )
    return OpenIdCase(pk=pk, sig=sig, keys=provider_keys(iss), claims=claims, config=config)


# --- Groth16 ------------------------------------------------------------------------


def forged_groth16(
    public_inputs: Sequence[int],
    *,
    a: int = 11,
    b: int = 13,
    c: int = 17,
    ic: Sequence[int] = (),
) -> Tuple[Dict[str, Any], Groth16Zkp]:
    """
    A verification key with a known trapdoor and a proof that satisfies the
    pairing equation for exactly `public_inputs`:

      alpha = a*G1, beta = b*G2, gamma = delta = G2, IC_i = ic_i*G1
      A = (a*b + ic_0 + sum x_i*ic_{i+1} + c)*G1, B = G2, C = c*G1
    """
    r = int(curve_order)
    ics: List[int] = list(ic) or [3 + i for i in range(len(public_inputs) + 1)]
    assert len(ics) == len(public_inputs) + 1

    def g1(k: int) -> List[str]:
        return list(g1_to_coords(multiply(G1, k % r)))

    def g2(k: int) -> List[List[str]]:
        x, y = g2_to_coords(multiply(G2, k % r))
        return [list(x), list(y)]

    vk_json = {
        "vk_alpha_1": g1(a),
        "vk_beta_2": g2(b),
        "vk_gamma_2": g2(1),
        "vk_delta_2": g2(1),
        "IC": [g1(k) for k in ics],
    }
    vk_x = ics[0] + sum(int(x) * k for x, k in zip(public_inputs, ics[1:]))
    s = (a * b + vk_x + c) % r
    proof = proof_from_points(multiply(G1, s), G2, multiply(G1, c))
    return vk_json, proof


# --- Env & logging -------------------------------------------------------------


def env_flag(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return str(v).strip().lower() in {"1", "true", "yes", "on"}


def configure_test_logging(level: int | None = None) -> None:
    """Route zkid.* DEBUG logs to stderr when ZKID_TEST_LOG is set."""
    if env_flag("ZKID_TEST_LOG", False):
        zlog.configure(json=False, level=level or logging.DEBUG)


configure_test_logging()

__all__ = [
    "TEST_ROOT",
    "fixture_path",
    "ISS",
    "AUD",
    "SUB",
    "EMAIL",
    "KID",
    "IAT",
    "EXP",
    "NOW_MICROS",
    "PEPPER",
    "BLINDER",
    "b64json",
    "rsa_private_key",
    "provider_jwk",
    "provider_keys",
    "sign_jwt",
    "ephemeral_private_key",
    "ephemeral_public_key",
    "ephemeral_sign",
    "OpenIdCase",
    "build_openid_case",
    "forged_groth16",
    "env_flag",
    "configure_test_logging",
]
