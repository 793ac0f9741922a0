"""
zkid.groth16
============

Groth16 verifier for BN254 (altbn128) on top of `py_ecc`, compatible with the
common `snarkjs` JSON layout. This is the default proof verifier of the ZK
path; anything with the same `verify(proof, verification_key, public_inputs)`
shape can replace it.

Verification equation
---------------------
    e(A, B) == e(alpha1, beta2) * e(VK_x, gamma2) * e(C, delta2)

checked as a product in GT with a single final exponentiation:
    e(A, B) * e(-alpha1, beta2) * e(-VK_x, gamma2) * e(-C, delta2) == 1

Verifying key (snarkjs)
-----------------------
  {
    "vk_alpha_1": [ax, ay],
    "vk_beta_2":  [[bx0, bx1], [by0, by1]],
    "vk_gamma_2": [[gx0, gx1], [gy0, gy1]],
    "vk_delta_2": [[dx0, dx1], [dy0, dy1]],
    "IC": [[ic0x, ic0y], [ic1x, ic1y], ...]   # length = 1 + #public_inputs
  }

Coordinates are decimal strings (or numbers); an Fq2 element c0 + c1*i is
written [c0, c1]. [0, 0] denotes the point at infinity.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple, Union

from py_ecc.optimized_bn128 import FQ, FQ2, FQ12
from py_ecc.optimized_bn128 import add as _add
from py_ecc.optimized_bn128 import b as _B
from py_ecc.optimized_bn128 import b2 as _B2
from py_ecc.optimized_bn128 import curve_order as _Q
from py_ecc.optimized_bn128 import final_exponentiate as _final_exponentiate
from py_ecc.optimized_bn128 import is_on_curve as _is_on_curve
from py_ecc.optimized_bn128 import multiply as _mul
from py_ecc.optimized_bn128 import neg as _neg
from py_ecc.optimized_bn128 import normalize as _normalize
from py_ecc.optimized_bn128 import pairing as _pairing

from .logging import get_logger
from .types import Groth16Zkp

log = get_logger(__name__)

# Opaque projective tuples understood by py_ecc.
G1Point = Any
G2Point = Any

FR_MODULUS = int(_Q)


# ---------------------------
# Point helpers
# ---------------------------


def _to_int(z: Union[int, str]) -> int:
    if isinstance(z, int):
        return z
    s = str(z).strip().lower()
    if s.startswith("0x"):
        return int(s, 16)
    return int(s)


def _g1(x: Union[int, str], y: Union[int, str]) -> G1Point:
    xi, yi = _to_int(x), _to_int(y)
    if xi == 0 and yi == 0:
        return (FQ(1), FQ(1), FQ(0))
    return (FQ(xi), FQ(yi), FQ(1))


def _g2(xx: Sequence[Union[int, str]], yy: Sequence[Union[int, str]]) -> G2Point:
    x0, x1 = _to_int(xx[0]), _to_int(xx[1])
    y0, y1 = _to_int(yy[0]), _to_int(yy[1])
    if x0 == 0 and x1 == 0 and y0 == 0 and y1 == 0:
        return (FQ2([1, 0]), FQ2([1, 0]), FQ2([0, 0]))
    return (FQ2([x0, x1]), FQ2([y0, y1]), FQ2([1, 0]))


def _is_inf(P: Any) -> bool:
    return P[2] == P[2].zero()


def is_on_curve_g1(P: G1Point) -> bool:
    return _is_inf(P) or bool(_is_on_curve(P, _B))


def is_on_curve_g2(Q: G2Point) -> bool:
    return _is_inf(Q) or bool(_is_on_curve(Q, _B2))


def is_in_g2_subgroup(Q: G2Point) -> bool:
    """The twist has a large cofactor; G1 has none, so only G2 needs this."""
    return _is_inf(Q) or _is_inf(_mul(Q, FR_MODULUS))


def g1_to_coords(P: G1Point) -> Tuple[str, str]:
    """Affine decimal coordinates of a G1 point ("0", "0" for infinity)."""
    if _is_inf(P):
        return ("0", "0")
    x, y = _normalize(P)
    return (str(int(x.n)), str(int(y.n)))


def g2_to_coords(Q: G2Point) -> Tuple[Tuple[str, str], Tuple[str, str]]:
    if _is_inf(Q):
        return (("0", "0"), ("0", "0"))
    x, y = _normalize(Q)
    return (
        (str(int(x.coeffs[0])), str(int(x.coeffs[1]))),
        (str(int(y.coeffs[0])), str(int(y.coeffs[1]))),
    )


def proof_from_points(A: G1Point, B: G2Point, C: G1Point) -> Groth16Zkp:
    return Groth16Zkp(a=g1_to_coords(A), b=g2_to_coords(B), c=g1_to_coords(C))


# ---------------------------
# Data classes & loaders
# ---------------------------


@dataclass(frozen=True)
class VerifyingKey:
    alpha1: G1Point
    beta2: G2Point
    gamma2: G2Point
    delta2: G2Point
    IC: List[G1Point]  # [IC0, IC1, ..., ICn]

    @property
    def num_public_inputs(self) -> int:
        return len(self.IC) - 1


@dataclass(frozen=True)
class Proof:
    A: G1Point
    B: G2Point
    C: G1Point


def load_vk(vk_json: dict) -> VerifyingKey:
    """Parse a snarkjs-style verifying key JSON object."""
    a1 = vk_json.get("vk_alpha_1") or vk_json["alpha1"]
    b2 = vk_json.get("vk_beta_2") or vk_json["beta2"]
    g2 = vk_json.get("vk_gamma_2") or vk_json["gamma2"]
    d2 = vk_json.get("vk_delta_2") or vk_json["delta2"]
    IC = vk_json.get("IC") or vk_json["ic"]

    alpha1 = _g1(a1[0], a1[1])
    beta2 = _g2(b2[0], b2[1])
    gamma2 = _g2(g2[0], g2[1])
    delta2 = _g2(d2[0], d2[1])
    ic_pts = [_g1(p[0], p[1]) for p in IC]

    if not (
        is_on_curve_g1(alpha1)
        and is_on_curve_g2(beta2)
        and is_on_curve_g2(gamma2)
        and is_on_curve_g2(delta2)
    ):
        raise ValueError("VK points are not on curve")
    if not all(is_in_g2_subgroup(Q) for Q in (beta2, gamma2, delta2)):
        raise ValueError("VK G2 points are not in the prime-order subgroup")
    if not ic_pts:
        raise ValueError("VK has no IC points")
    for P in ic_pts:
        if not is_on_curve_g1(P):
            raise ValueError("IC point not on G1 curve")

    return VerifyingKey(alpha1=alpha1, beta2=beta2, gamma2=gamma2, delta2=delta2, IC=ic_pts)


def load_vk_file(path: Union[str, Path]) -> VerifyingKey:
    with open(path, "r", encoding="utf-8") as f:
        return load_vk(json.load(f))


def load_proof(zkp: Groth16Zkp) -> Proof:
    A = _g1(*zkp.a)
    B = _g2(zkp.b[0], zkp.b[1])
    C = _g1(*zkp.c)
    if not (is_on_curve_g1(A) and is_on_curve_g2(B) and is_on_curve_g1(C)):
        raise ValueError("proof points are not on curve")
    if not is_in_g2_subgroup(B):
        raise ValueError("proof point B is not in the prime-order subgroup")
    return Proof(A=A, B=B, C=C)


# ---------------------------
# Core verification
# ---------------------------


def _vk_x(IC: Sequence[G1Point], inputs: Sequence[int]) -> G1Point:
    """VK_x = IC[0] + sum_i inputs[i] * IC[i+1]."""
    if len(IC) != len(inputs) + 1:
        raise ValueError(f"IC length {len(IC)} != 1 + len(inputs) {len(inputs)}")
    acc = IC[0]
    for i, v in enumerate(inputs):
        s = int(v) % FR_MODULUS
        if s != 0:
            acc = _add(acc, _mul(IC[i + 1], s))
    return acc


def check_pairing_product(pairs: Sequence[Tuple[G1Point, G2Point]]) -> bool:
    acc = FQ12.one()
    for P, Q in pairs:
        if _is_inf(P) or _is_inf(Q):
            continue
        # py_ecc takes (G2, G1)
        acc = acc * _pairing(Q, P, final_exponentiate=False)
    return _final_exponentiate(acc) == FQ12.one()


def verify_groth16(vk: VerifyingKey, proof: Proof, public_inputs: Sequence[int]) -> bool:
    vkx = _vk_x(vk.IC, public_inputs)
    return check_pairing_product(
        [
            (proof.A, proof.B),
            (_neg(vk.alpha1), vk.beta2),
            (_neg(vkx), vk.gamma2),
            (_neg(proof.C), vk.delta2),
        ]
    )


class Groth16Bn254Verifier:
    """
    Default proof verifier. Malformed proofs or keys raise ValueError; the
    caller turns both that and a False result into ProofInvalid.
    """

    name = "groth16-bn254/py_ecc"

    def __init__(self, default_vk: Optional[VerifyingKey] = None):
        self.default_vk = default_vk

    def verify(
        self,
        proof: Groth16Zkp,
        verification_key: Union[VerifyingKey, dict, None],
        public_inputs: Sequence[int],
    ) -> bool:
        vk = verification_key if verification_key is not None else self.default_vk
        if vk is None:
            raise ValueError("no Groth16 verification key configured")
        if isinstance(vk, dict):
            vk = load_vk(vk)
        ok = verify_groth16(vk, load_proof(proof), public_inputs)
        log.debug("groth16 pairing check", extra={"ok": ok, "inputs": len(public_inputs)})
        return ok


__all__ = [
    "VerifyingKey",
    "Proof",
    "load_vk",
    "load_vk_file",
    "load_proof",
    "verify_groth16",
    "check_pairing_product",
    "Groth16Bn254Verifier",
    "proof_from_points",
    "g1_to_coords",
    "g2_to_coords",
    "is_on_curve_g1",
    "is_on_curve_g2",
    "is_in_g2_subgroup",
]
