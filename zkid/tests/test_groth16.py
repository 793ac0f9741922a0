"""
Groth16 (BN254) verification with py_ecc.

Uses a verifying key with a known trapdoor (see zkid.tests.forged_groth16) so
the pairing equation can be satisfied without a trusted setup or a circuit.
"""

import json

import pytest
from py_ecc.optimized_bn128 import FQ2, b2, field_modulus

from zkid.errors import ProofInvalid
from zkid.groth16 import (
    Groth16Bn254Verifier,
    g2_to_coords,
    is_in_g2_subgroup,
    is_on_curve_g2,
    load_proof,
    load_vk,
    load_vk_file,
    verify_groth16,
)
from zkid.signature import ZkIdSignature
from zkid.types import Groth16Zkp
from zkid.zkp import public_inputs_hash
from zkid.tests import NOW_MICROS, build_openid_case, configure_test_logging, forged_groth16, provider_jwk

configure_test_logging()


def _with_proof(sig, proof):
    return ZkIdSignature(
        sig=proof,
        jwt_header=sig.jwt_header,
        exp_timestamp_secs=sig.exp_timestamp_secs,
        ephemeral_pubkey=sig.ephemeral_pubkey,
        ephemeral_signature=sig.ephemeral_signature,
    )


def test_vk_loader_counts_inputs():
    vk_json, _ = forged_groth16([5])
    assert load_vk(vk_json).num_public_inputs == 1


def test_vk_loader_rejects_off_curve_points():
    vk_json, _ = forged_groth16([5])
    vk_json["vk_alpha_1"] = ["1", "3"]
    with pytest.raises(ValueError):
        load_vk(vk_json)


def test_vk_loader_reads_file(tmp_path):
    vk_json, _ = forged_groth16([5])
    p = tmp_path / "vk.json"
    p.write_text(json.dumps(vk_json), encoding="utf-8")
    assert load_vk_file(p).num_public_inputs == 1


def test_off_curve_proof_rejected():
    bad = Groth16Zkp(a=("1", "3"), b=(("0", "0"), ("0", "0")), c=("0", "0"))
    with pytest.raises(ValueError):
        load_proof(bad)


def _twist_point_outside_g2():
    # y = sqrt(x^3 + b2) in Fq2 (p = 3 mod 4); the cofactor keeps it out of G2
    p = field_modulus
    one, minus_one = FQ2([1, 0]), FQ2([p - 1, 0])
    for k in range(1, 50):
        x = FQ2([k, 0])
        rhs = x * x * x + b2
        a1 = rhs ** ((p - 3) // 4)
        alpha = a1 * a1 * rhs
        x0 = a1 * rhs
        y = FQ2([0, 1]) * x0 if alpha == minus_one else (alpha + one) ** ((p - 1) // 2) * x0
        if y * y == rhs:
            return (x, y, one)
    raise AssertionError("no twist point found")


def test_g2_points_outside_subgroup_rejected():
    Q = _twist_point_outside_g2()
    assert is_on_curve_g2(Q)
    assert not is_in_g2_subgroup(Q)
    x, y = g2_to_coords(Q)

    with pytest.raises(ValueError):
        load_proof(Groth16Zkp(a=("0", "0"), b=(x, y), c=("0", "0")))

    vk_json, _ = forged_groth16([5])
    vk_json["vk_delta_2"] = [list(x), list(y)]
    with pytest.raises(ValueError):
        load_vk(vk_json)


@pytest.mark.slow
def test_forged_statement_verifies_only_for_its_input():
    vk_json, proof = forged_groth16([42])
    vk = load_vk(vk_json)
    assert verify_groth16(vk, load_proof(proof), [42]) is True
    assert verify_groth16(vk, load_proof(proof), [43]) is False


@pytest.mark.slow
def test_verifier_uses_default_vk():
    vk_json, proof = forged_groth16([7])
    verifier = Groth16Bn254Verifier(default_vk=load_vk(vk_json))
    assert verifier.verify(proof, None, [7]) is True


def test_verifier_without_key_raises():
    _, proof = forged_groth16([7])
    with pytest.raises(ValueError):
        Groth16Bn254Verifier().verify(proof, None, [7])


def test_input_count_mismatch_raises():
    vk_json, proof = forged_groth16([7])
    with pytest.raises(ValueError):
        Groth16Bn254Verifier().verify(proof, vk_json, [7, 8])


@pytest.mark.slow
def test_zk_path_end_to_end():
    case = build_openid_case()
    x = public_inputs_hash(
        pk=case.pk,
        epk=case.sig.ephemeral_pubkey,
        exp_timestamp_secs=case.sig.exp_timestamp_secs,
        jwt_header=case.sig.jwt_header,
        jwk=provider_jwk(),
    )
    vk_json, proof = forged_groth16([x])
    zsig = _with_proof(case.sig, proof)

    zsig.verify(case.pk, NOW_MICROS, case.keys, verification_key=vk_json)

    # same proof, different provider key -> different public input
    other_keys = case.keys.with_key(case.pk.iss, provider_jwk(seed=1))
    with pytest.raises(ProofInvalid):
        zsig.verify(case.pk, NOW_MICROS, other_keys, verification_key=vk_json)


def test_zk_path_without_vk_is_proof_invalid():
    case = build_openid_case()
    _, proof = forged_groth16([1])
    with pytest.raises(ProofInvalid):
        _with_proof(case.sig, proof).verify(case.pk, NOW_MICROS, case.keys)
