"""
Transaction-level handling: zkID extraction, the per-transaction cap, and full
verification including the ephemeral signature over the signing message.
"""

import pytest

from zkid.authenticator import (
    AnyPublicKey,
    AnySignature,
    Ed25519Key,
    Ed25519Sig,
    SignedTransaction,
    SingleKeyAuthenticator,
    extract_zkid_authenticators,
    verify_ed25519,
    verify_transaction_authenticators,
)
from zkid.config import DEFAULT_CONFIG
from zkid.errors import SignatureInvalid, TooManyAuthenticators, ZkIdErrorCode
from zkid.tests import (
    NOW_MICROS,
    build_openid_case,
    configure_test_logging,
    ephemeral_private_key,
)

configure_test_logging()

PAYLOAD = b"transfer 10 to bob"


def _signing_message(payload: bytes = PAYLOAD) -> bytes:
    return SignedTransaction(payload).signing_message()


def _zkid_slot(message: bytes, **kw) -> SingleKeyAuthenticator:
    case = build_openid_case(message=message, **kw)
    return SingleKeyAuthenticator(AnyPublicKey(case.pk), AnySignature(case.sig))


def _ed25519_slot(message: bytes, seed: int = 5) -> SingleKeyAuthenticator:
    sk = ephemeral_private_key(seed)
    return SingleKeyAuthenticator(
        AnyPublicKey(Ed25519Key(sk.public_key().public_bytes_raw())),
        AnySignature(Ed25519Sig(sk.sign(message))),
    )


def test_extract_keeps_slot_order_and_skips_other_schemes():
    msg = _signing_message()
    a = _zkid_slot(msg, uid_key="sub")
    b = _zkid_slot(msg, uid_key="email")
    tx = SignedTransaction(PAYLOAD, (a, _ed25519_slot(msg), b))

    pairs = extract_zkid_authenticators(tx)
    assert [pk for pk, _ in pairs] == [a.public_key.inner, b.public_key.inner]
    assert [sig for _, sig in pairs] == [a.signature.inner, b.signature.inner]


def test_extract_without_zkid_is_empty():
    msg = _signing_message()
    assert extract_zkid_authenticators(SignedTransaction(PAYLOAD, (_ed25519_slot(msg),))) == []
    assert extract_zkid_authenticators(SignedTransaction(PAYLOAD)) == []


def test_verify_transaction():
    msg = _signing_message()
    case = build_openid_case(message=msg)
    tx = SignedTransaction(
        PAYLOAD,
        (SingleKeyAuthenticator(AnyPublicKey(case.pk), AnySignature(case.sig)), _ed25519_slot(msg)),
    )
    n = verify_transaction_authenticators(tx, current_time_micros=NOW_MICROS, provider_keys=case.keys)
    assert n == 1


def test_ephemeral_signature_must_cover_this_transaction():
    case = build_openid_case(message=_signing_message(b"some other payload"))
    tx = SignedTransaction(PAYLOAD, (SingleKeyAuthenticator(AnyPublicKey(case.pk), AnySignature(case.sig)),))
    with pytest.raises(SignatureInvalid):
        verify_transaction_authenticators(tx, current_time_micros=NOW_MICROS, provider_keys=case.keys)


def test_too_many_zkid_authenticators():
    msg = _signing_message()
    case = build_openid_case(message=msg)
    slot = SingleKeyAuthenticator(AnyPublicKey(case.pk), AnySignature(case.sig))
    limit = DEFAULT_CONFIG.max_zkid_authenticators

    at_limit = SignedTransaction(PAYLOAD, (slot,) * limit)
    assert verify_transaction_authenticators(
        at_limit, current_time_micros=NOW_MICROS, provider_keys=case.keys
    ) == limit

    over = SignedTransaction(PAYLOAD, (slot,) * (limit + 1))
    with pytest.raises(TooManyAuthenticators) as ei:
        verify_transaction_authenticators(over, current_time_micros=NOW_MICROS, provider_keys=case.keys)
    assert ei.value.code is ZkIdErrorCode.TOO_MANY_AUTHENTICATORS
    assert ei.value.ctx["count"] == limit + 1


def test_cap_follows_config_and_ignores_ed25519_slots():
    msg = _signing_message()
    case = build_openid_case(message=msg)
    slot = SingleKeyAuthenticator(AnyPublicKey(case.pk), AnySignature(case.sig))
    cfg = DEFAULT_CONFIG.with_overrides(max_zkid_authenticators=1)

    tx = SignedTransaction(PAYLOAD, (slot, _ed25519_slot(msg), _ed25519_slot(msg, seed=6)))
    assert verify_transaction_authenticators(
        tx, current_time_micros=NOW_MICROS, provider_keys=case.keys, config=cfg
    ) == 1
    with pytest.raises(TooManyAuthenticators):
        verify_transaction_authenticators(
            SignedTransaction(PAYLOAD, (slot, slot)),
            current_time_micros=NOW_MICROS,
            provider_keys=case.keys,
            config=cfg,
        )


def test_signed_transaction_roundtrip():
    msg = _signing_message()
    tx = SignedTransaction(PAYLOAD, (_zkid_slot(msg), _ed25519_slot(msg)))
    back = SignedTransaction.from_bytes(tx.to_bytes())
    assert back == tx
    assert back.authenticators[0].public_key.is_zkid
    assert not back.authenticators[1].signature.is_zkid
    assert back.signing_message() == msg


def test_verify_ed25519():
    msg = _signing_message()
    slot = _ed25519_slot(msg)
    verify_ed25519(slot.public_key.inner, slot.signature.inner, msg)
    with pytest.raises(SignatureInvalid):
        verify_ed25519(slot.public_key.inner, slot.signature.inner, msg + b"!")


def test_bad_ed25519_slot_fails_the_transaction():
    msg = _signing_message()
    case = build_openid_case(message=msg)
    zk = SingleKeyAuthenticator(AnyPublicKey(case.pk), AnySignature(case.sig))
    stale = _ed25519_slot(_signing_message(b"older payload"))
    with pytest.raises(SignatureInvalid):
        verify_transaction_authenticators(
            SignedTransaction(PAYLOAD, (zk, stale)), current_time_micros=NOW_MICROS, provider_keys=case.keys
        )


def test_mixed_scheme_slot_is_rejected():
    msg = _signing_message()
    case = build_openid_case(message=msg)
    mixed = SingleKeyAuthenticator(_ed25519_slot(msg).public_key, AnySignature(case.sig))
    assert extract_zkid_authenticators(SignedTransaction(PAYLOAD, (mixed,))) == []
    with pytest.raises(SignatureInvalid):
        verify_transaction_authenticators(
            SignedTransaction(PAYLOAD, (mixed,)), current_time_micros=NOW_MICROS, provider_keys=case.keys
        )
