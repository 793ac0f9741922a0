"""
End-to-end checks of the direct OpenID path: claims binding (iss, uid,
commitment, nonce, horizon) and the provider's RS256 signature.
"""

import pytest

from zkid.config import DEFAULT_CONFIG
from zkid.errors import ClaimsPolicyError, PolicyReason, PolicyViolation, SignatureInvalid
from zkid.openid import verify_claims, verify_jwt_signature
from zkid.types import OpenIdSig, Pepper, ZkIdPublicKey
from zkid.tests import (
    b64json,
    build_openid_case,
    configure_test_logging,
    provider_jwk,
    rsa_private_key,
    sign_jwt,
)

configure_test_logging()

H = DEFAULT_CONFIG.max_expiry_horizon_secs


def _verify(case):
    return verify_claims(
        case.openid, case.sig.exp_timestamp_secs, case.sig.ephemeral_pubkey, case.pk, config=case.config
    )


def _flip_one_char(s: str) -> str:
    c = "A" if s[5] != "A" else "B"
    return s[:5] + c + s[6:]


# --- scenario 1 ----------------------------------------------------------------


def test_valid_sub_token_binds():
    case = build_openid_case(iss="https://accounts.example.com", uid_key="sub")
    claims = _verify(case)
    assert claims.sub == "123"


def test_valid_email_token_binds():
    case = build_openid_case(uid_key="email", claim_overrides={"email_verified": "true"})
    assert _verify(case).email == "alice@example.com"


# --- scenario 2 ----------------------------------------------------------------


def test_unverified_email_is_a_policy_error():
    case = build_openid_case(uid_key="email", claim_overrides={"email_verified": "false"})
    with pytest.raises(ClaimsPolicyError) as ei:
        _verify(case)
    assert ei.value.reason is PolicyReason.UID_POLICY


# --- scenario 3 ----------------------------------------------------------------


def test_expiry_horizon_boundary_is_inclusive():
    _verify(build_openid_case(iat=1000, exp=1000 + H))

    case = build_openid_case(iat=1000, exp=1000 + H + 1)
    with pytest.raises(PolicyViolation) as ei:
        _verify(case)
    assert ei.value.reason is PolicyReason.EXPIRY_HORIZON


def test_horizon_follows_config():
    cfg = DEFAULT_CONFIG.with_overrides(max_expiry_horizon_secs=60)
    _verify(build_openid_case(iat=1000, exp=1060, config=cfg))
    with pytest.raises(PolicyViolation):
        _verify(build_openid_case(iat=1000, exp=1061, config=cfg))


# --- scenario 5 ----------------------------------------------------------------


def test_tampered_nonce_fails():
    good = build_openid_case()
    case = build_openid_case(nonce=_flip_one_char(good.claims["nonce"]))
    with pytest.raises(PolicyViolation) as ei:
        _verify(case)
    assert ei.value.reason is PolicyReason.NONCE_MISMATCH


def test_nonce_bound_to_exp():
    case = build_openid_case()
    with pytest.raises(PolicyViolation) as ei:
        verify_claims(case.openid, case.sig.exp_timestamp_secs + 1, case.sig.ephemeral_pubkey, case.pk)
    assert ei.value.reason is PolicyReason.NONCE_MISMATCH


# --- other binding failures ---------------------------------------------------------


def test_issuer_mismatch():
    case = build_openid_case()
    other = ZkIdPublicKey(iss="https://evil.example.com", idc=case.pk.idc)
    with pytest.raises(PolicyViolation) as ei:
        verify_claims(case.openid, case.sig.exp_timestamp_secs, case.sig.ephemeral_pubkey, other)
    assert ei.value.reason is PolicyReason.ISS_MISMATCH


def test_wrong_pepper_breaks_commitment():
    case = build_openid_case()
    sig = OpenIdSig(
        jwt_sig=case.openid.jwt_sig,
        jwt_payload=case.openid.jwt_payload,
        uid_key="sub",
        epk_blinder=case.openid.epk_blinder,
        pepper=Pepper.from_number(1),
    )
    with pytest.raises(PolicyViolation) as ei:
        verify_claims(sig, case.sig.exp_timestamp_secs, case.sig.ephemeral_pubkey, case.pk)
    assert ei.value.reason is PolicyReason.IDC_MISMATCH


def test_horizon_is_checked_before_issuer():
    case = build_openid_case(iat=1000, exp=1000 + H + 1)
    other = ZkIdPublicKey(iss="https://evil.example.com", idc=case.pk.idc)
    with pytest.raises(PolicyViolation) as ei:
        verify_claims(case.openid, case.sig.exp_timestamp_secs, case.sig.ephemeral_pubkey, other)
    assert ei.value.reason is PolicyReason.EXPIRY_HORIZON


# --- provider signature ---------------------------------------------------------------


def test_jwt_signature_verifies():
    case = build_openid_case()
    verify_jwt_signature(case.openid, provider_jwk(), case.sig.jwt_header)


def test_jwt_signature_under_other_key_fails():
    case = build_openid_case()
    with pytest.raises(SignatureInvalid):
        verify_jwt_signature(case.openid, provider_jwk(seed=1), case.sig.jwt_header)


def test_jwt_payload_swap_fails_signature():
    case = build_openid_case()
    forged = OpenIdSig(
        jwt_sig=case.openid.jwt_sig,
        jwt_payload=b64json({**case.claims, "sub": "456"}),
        uid_key="sub",
        epk_blinder=case.openid.epk_blinder,
        pepper=case.openid.pepper,
    )
    with pytest.raises(SignatureInvalid):
        verify_jwt_signature(forged, provider_jwk(), case.sig.jwt_header)


def test_non_rs256_header_is_rejected():
    case = build_openid_case()
    header = b64json({"alg": "HS256", "kid": "test-kid-1"})
    sig = OpenIdSig(
        jwt_sig=sign_jwt(header, case.openid.jwt_payload, rsa_private_key()),
        jwt_payload=case.openid.jwt_payload,
        uid_key="sub",
        epk_blinder=case.openid.epk_blinder,
        pepper=case.openid.pepper,
    )
    with pytest.raises(SignatureInvalid):
        verify_jwt_signature(sig, provider_jwk(), header)
