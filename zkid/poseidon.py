"""
zkid.poseidon
=============

Poseidon hash over the BN254 (altbn128) scalar field Fr, plus the
bytes-to-field packing used by identity commitments and nonces.

The permutation is the reference Poseidon (ARK, S-box x^5, MDS), and the hash
follows the circom convention so it matches what a Groth16 circuit computes:

    hash_scalars([x1..xn]):  t = n + 1
                             state = [0, x1, ..., xn]
                             state = permute(state, params[t])
                             return state[0]

Parameters stay external
------------------------
Different circuits pick different round constants and MDS matrices, and using
the wrong set fails silently. Load the exact constants of your circuit at
startup:

    load_params_json("circuits/poseidon_t4.json", name="bn254_t4")

JSON schema
-----------
{
  "t": 4, "R_F": 8, "R_P": 56, "alpha": 5,
  "mds": [[...t ints...], ...],
  "rc":  [[...t ints...], ... R_F+R_P rows ...]
}
All integers are decimal strings, 0x-hex strings or JSON numbers mod Fr.

Widths with no registered parameters get the circomlib set on first use,
regenerated with the Grain LFSR of the Poseidon reference scripts (field=1,
sbox=0, n=254, R_F=8, circom R_P per width). Round constants are
rejection-sampled below Fr; the MDS is the Cauchy matrix 1/(x_i + y_j) over
the next 2t sampled elements. Poseidon([1, 2]) is
7853200120776062878684798364095072458815029376092732009249414926327459813530.

Packing
-------
- pack_bytes_to_one_scalar(chunk)     <= 32 bytes, little-endian, reduced mod Fr
- pack_bytes_to_scalars(b)            31-byte little-endian chunks
- pad_and_pack_bytes_to_scalars_with_len(b, max_bytes)
                                      zero-pad to max_bytes, pack, append len(b)
- pad_and_hash_string(s, max_bytes)   hash of the above over UTF-8 bytes
- fr_to_bytes_le(x) / fr_from_bytes_le(b)
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

from py_ecc.optimized_bn128 import curve_order

from .config import BYTES_PACKED_PER_SCALAR, MAX_PACKABLE_BYTES, POSEIDON_MAX_INPUTS
from .errors import HashingError

FR_MODULUS: int = int(curve_order)
FR_NUM_BYTES = 32

_MOD = FR_MODULUS

# circom partial-round counts, indexed by t - 2 (t = 2..17)
CIRCOM_PARTIAL_ROUNDS = (56, 57, 56, 60, 60, 63, 64, 63, 60, 66, 60, 65, 70, 60, 64, 68)
FULL_ROUNDS = 8
FIELD_BITS = _MOD.bit_length()


# ---------------------------
# Field arithmetic (mod Fr)
# ---------------------------


def _fadd(a: int, b: int) -> int:
    return (a + b) % _MOD


def _fmul(a: int, b: int) -> int:
    return (a * b) % _MOD


def _fpow_alpha(x: int, alpha: int) -> int:
    if alpha == 5:
        x2 = _fmul(x, x)
        x4 = _fmul(x2, x2)
        return _fmul(x, x4)
    return pow(x, alpha, _MOD)


# ---------------------------
# Parameters & registry
# ---------------------------


@dataclass(frozen=True)
class PoseidonParams:
    t: int  # state width
    R_F: int  # number of full rounds
    R_P: int  # number of partial rounds
    alpha: int  # S-box exponent (odd >= 3, commonly 5)
    mds: List[List[int]]  # t x t
    rc: List[List[int]]  # (R_F + R_P) x t

    def validate(self) -> None:
        if self.t < 2:
            raise ValueError("t must be >= 2")
        if self.R_F % 2 != 0:
            raise ValueError("R_F must be even (split half-before/after partial rounds)")
        if self.alpha < 3 or self.alpha % 2 == 0:
            raise ValueError("alpha must be an odd integer >= 3")
        if len(self.mds) != self.t or any(len(row) != self.t for row in self.mds):
            raise ValueError("mds must be t x t")
        expected_rounds = self.R_F + self.R_P
        if len(self.rc) != expected_rounds or any(len(row) != self.t for row in self.rc):
            raise ValueError(f"rc must be (R_F+R_P) x t = {expected_rounds} x {self.t}")


_PARAMS_REGISTRY: Dict[str, PoseidonParams] = {}


def params_name_for_width(t: int) -> str:
    return f"bn254_t{t}"


def register_params(name: str, params: PoseidonParams) -> None:
    """Register a Poseidon parameter set under `name` (e.g. "bn254_t4")."""
    if not name or not isinstance(name, str):
        raise ValueError("name must be a non-empty string")
    params.validate()
    _PARAMS_REGISTRY[name] = params


def get_params(name: str) -> PoseidonParams:
    params = _PARAMS_REGISTRY.get(name)
    if params is not None:
        return params
    if name.startswith("bn254_t"):
        t = int(name[len("bn254_t"):])
        if 2 <= t <= POSEIDON_MAX_INPUTS + 1:
            params = _derive_circom_params(t)
            _PARAMS_REGISTRY[name] = params
            return params
    raise KeyError(
        f"Poseidon params '{name}' are not registered. "
        "Load them with load_params_json(...) or register_params(...)."
    )


def _to_int(x: Union[int, str]) -> int:
    if isinstance(x, int):
        return x % _MOD
    s = str(x).strip().lower()
    if s.startswith("0x"):
        return int(s, 16) % _MOD
    return int(s) % _MOD


def load_params_json(path: str, name: Optional[str] = None) -> PoseidonParams:
    """
    Load a Poseidon params JSON file and register it.

    If `name` is None it is derived from the width (bn254_t{t}).
    """
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)

    t = int(raw["t"])
    params = PoseidonParams(
        t=t,
        R_F=int(raw["R_F"]),
        R_P=int(raw["R_P"]),
        alpha=int(raw.get("alpha", 5)),
        mds=[[_to_int(v) for v in row] for row in raw["mds"]],
        rc=[[_to_int(v) for v in row] for row in raw["rc"]],
    )
    register_params(name or params_name_for_width(t), params)
    return params


class _GrainLfsr:
    """
    Grain LFSR of the Poseidon reference parameter scripts.

    The 80-bit register is seeded with (field, sbox, n, t, R_F, R_P) followed by
    thirty 1 bits and clocked 160 times. Output bits are filtered in pairs: the
    second bit of a pair is emitted when the first one is 1.
    """

    def __init__(self, n: int, t: int, r_f: int, r_p: int, *, field: int = 1, sbox: int = 0):
        bits: List[int] = []
        for value, width in ((field, 2), (sbox, 4), (n, 12), (t, 12), (r_f, 10), (r_p, 10)):
            bits.extend((value >> i) & 1 for i in reversed(range(width)))
        bits.extend([1] * 30)
        self._state = bits
        self._head = 0
        for _ in range(160):
            self._clock()

    def _clock(self) -> int:
        s, h = self._state, self._head
        bit = (
            s[(h + 62) % 80]
            ^ s[(h + 51) % 80]
            ^ s[(h + 38) % 80]
            ^ s[(h + 23) % 80]
            ^ s[(h + 13) % 80]
            ^ s[h]
        )
        s[h] = bit
        self._head = (h + 1) % 80
        return bit

    def bit(self) -> int:
        while not self._clock():
            self._clock()
        return self._clock()

    def field_element(self, n: int, *, reject: bool) -> int:
        """n output bits, MSB first; rejection-sampled below Fr or reduced mod Fr."""
        while True:
            v = 0
            for _ in range(n):
                v = (v << 1) | self.bit()
            if not reject:
                return v % _MOD
            if v < _MOD:
                return v


def _derive_circom_params(t: int) -> PoseidonParams:
    R_P = CIRCOM_PARTIAL_ROUNDS[t - 2]
    rounds = FULL_ROUNDS + R_P
    lfsr = _GrainLfsr(FIELD_BITS, t, FULL_ROUNDS, R_P)

    flat = [lfsr.field_element(FIELD_BITS, reject=True) for _ in range(rounds * t)]
    rc = [flat[r * t : (r + 1) * t] for r in range(rounds)]

    # Cauchy matrix M[i][j] = 1 / (x_i + y_j) over 2t distinct sampled elements
    while True:
        xy = [lfsr.field_element(FIELD_BITS, reject=False) for _ in range(2 * t)]
        xs, ys = xy[:t], xy[t:]
        if len(set(xy)) == 2 * t and all((x + y) % _MOD for x in xs for y in ys):
            break
    mds = [[pow(x + y, _MOD - 2, _MOD) for y in ys] for x in xs]

    params = PoseidonParams(t=t, R_F=FULL_ROUNDS, R_P=R_P, alpha=5, mds=mds, rc=rc)
    params.validate()
    return params


# ---------------------------
# Permutation
# ---------------------------


def _apply_mds(state: List[int], mds: List[List[int]]) -> List[int]:
    t = len(state)
    out = [0] * t
    for i in range(t):
        acc = 0
        row = mds[i]
        for j in range(t):
            acc += row[j] * state[j]
        out[i] = acc % _MOD
    return out


def poseidon_permute(state: Sequence[int], params: PoseidonParams) -> List[int]:
    """
    Round schedule:
      - first R_F/2 full rounds (S-box on all t elements)
      - R_P partial rounds (S-box on state[0] only)
      - last R_F/2 full rounds
    """
    t, alpha, mds, rc = params.t, params.alpha, params.mds, params.rc
    if len(state) != t:
        raise ValueError(f"state length {len(state)} != t={t}")

    x = [int(v) % _MOD for v in state]
    r = 0
    half = params.R_F // 2

    for _ in range(half):
        x = [_fpow_alpha(_fadd(x[i], rc[r][i]), alpha) for i in range(t)]
        x = _apply_mds(x, mds)
        r += 1

    for _ in range(params.R_P):
        x = [_fadd(x[i], rc[r][i]) for i in range(t)]
        x[0] = _fpow_alpha(x[0], alpha)
        x = _apply_mds(x, mds)
        r += 1

    for _ in range(half):
        x = [_fpow_alpha(_fadd(x[i], rc[r][i]), alpha) for i in range(t)]
        x = _apply_mds(x, mds)
        r += 1

    assert r == params.R_F + params.R_P, "round counter mismatch"
    return x


# ---------------------------
# Hash interface
# ---------------------------


def hash_scalars(inputs: Sequence[int]) -> int:
    """Poseidon of 1..16 field elements (circom layout, output state[0])."""
    n = len(inputs)
    if n == 0 or n > POSEIDON_MAX_INPUTS:
        raise HashingError(
            "Poseidon takes between 1 and 16 inputs",
            what="scalars",
            size=n,
            limit=POSEIDON_MAX_INPUTS,
        )
    for v in inputs:
        if isinstance(v, bool) or not isinstance(v, int) or not 0 <= v < _MOD:
            raise HashingError("Poseidon input is not a canonical field element", what="scalar")
    params = get_params(params_name_for_width(n + 1))
    state = poseidon_permute([0, *inputs], params)
    return int(state[0])


# ---------------------------
# Packing
# ---------------------------


def pack_bytes_to_one_scalar(chunk: bytes) -> int:
    if len(chunk) > FR_NUM_BYTES:
        raise HashingError(
            "cannot pack more than 32 bytes into one scalar",
            what="chunk",
            size=len(chunk),
            limit=FR_NUM_BYTES,
        )
    return int.from_bytes(bytes(chunk), "little") % _MOD


def pack_bytes_to_scalars(b: bytes) -> List[int]:
    step = BYTES_PACKED_PER_SCALAR
    return [pack_bytes_to_one_scalar(b[i : i + step]) for i in range(0, len(b), step)]


def pad_and_pack_bytes_to_scalars_with_len(b: bytes, max_bytes: int) -> List[int]:
    if max_bytes > MAX_PACKABLE_BYTES:
        raise HashingError(
            "max_bytes exceeds what a single Poseidon call can absorb",
            what="max_bytes",
            size=max_bytes,
            limit=MAX_PACKABLE_BYTES,
        )
    if len(b) > max_bytes:
        raise HashingError(
            "input longer than its maximum", what="bytes", size=len(b), limit=max_bytes
        )
    padded = bytes(b) + b"\x00" * (max_bytes - len(b))
    len_scalar = pack_bytes_to_one_scalar(len(b).to_bytes(8, "little"))
    return pack_bytes_to_scalars(padded) + [len_scalar]


def pad_and_hash_bytes_with_len(b: bytes, max_bytes: int) -> int:
    return hash_scalars(pad_and_pack_bytes_to_scalars_with_len(b, max_bytes))


def pad_and_hash_string(s: str, max_bytes: int) -> int:
    return pad_and_hash_bytes_with_len(s.encode("utf-8"), max_bytes)


def fr_to_bytes_le(x: int) -> bytes:
    """Uncompressed canonical serialization: 32 bytes little-endian."""
    if not 0 <= x < _MOD:
        raise HashingError("value is not a canonical field element", what="fr")
    return int(x).to_bytes(FR_NUM_BYTES, "little")


def fr_from_bytes_le(b: bytes) -> int:
    if len(b) != FR_NUM_BYTES:
        raise HashingError("field element must be 32 bytes", size=len(b), limit=FR_NUM_BYTES)
    x = int.from_bytes(bytes(b), "little")
    if x >= _MOD:
        raise HashingError("non-canonical field element", what="fr")
    return x


__all__ = [
    "FR_MODULUS",
    "FR_NUM_BYTES",
    "PoseidonParams",
    "register_params",
    "get_params",
    "load_params_json",
    "params_name_for_width",
    "poseidon_permute",
    "hash_scalars",
    "pack_bytes_to_one_scalar",
    "pack_bytes_to_scalars",
    "pad_and_pack_bytes_to_scalars_with_len",
    "pad_and_hash_bytes_with_len",
    "pad_and_hash_string",
    "fr_to_bytes_le",
    "fr_from_bytes_le",
]


if __name__ == "__main__":  # pragma: no cover
    print("[poseidon] BN254 Fr modulus =", _MOD)
    h1 = hash_scalars([1, 2])
    assert h1 == hash_scalars([1, 2]), "non-deterministic hash"
    assert hash_scalars([1, 3]) != h1, "input sensitivity failed"
    print("hash([1,2]) =", h1)
