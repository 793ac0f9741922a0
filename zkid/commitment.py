"""
Identity commitments and nonce reconstruction.

    idc   = Poseidon(H(aud), H(uid_key), H(uid_val), Fr(pepper))
    nonce = b64url_nopad(le32(Poseidon(pack(epk, 93)..., Fr(exp), Fr(blinder))))

H(s) pads the UTF-8 bytes of `s` to its configured maximum, packs them into
31-byte field elements, appends the unpadded length and hashes the lot.
"""

from __future__ import annotations

from typing import List

from .config import DEFAULT_CONFIG, ZkIdConfig
from .encoding import U64_MAX, b64url_encode_nopad
from .errors import EncodingError, HashingError
from .poseidon import (
    fr_to_bytes_le,
    hash_scalars,
    pack_bytes_to_one_scalar,
    pad_and_hash_string,
    pad_and_pack_bytes_to_scalars_with_len,
)
from .types import EPK_BLINDER_NUM_BYTES, EphemeralPublicKey, IdCommitment, Pepper


def commit(
    aud: str,
    uid_key: str,
    uid_val: str,
    pepper: Pepper,
    *,
    config: ZkIdConfig = DEFAULT_CONFIG,
) -> IdCommitment:
    aud_h = pad_and_hash_string(aud, config.max_aud_val_bytes)
    uid_key_h = pad_and_hash_string(uid_key, config.max_uid_key_bytes)
    uid_val_h = pad_and_hash_string(uid_val, config.max_uid_val_bytes)
    pepper_fr = pack_bytes_to_one_scalar(pepper.value)
    fr = hash_scalars([aud_h, uid_key_h, uid_val_h, pepper_fr])
    return IdCommitment(fr_to_bytes_le(fr))


def epk_scalars(epk: EphemeralPublicKey, *, config: ZkIdConfig = DEFAULT_CONFIG) -> List[int]:
    """Padded-and-packed canonical EPK bytes (chunks + length element)."""
    raw = epk.to_bytes()
    if len(raw) > config.max_epk_bytes:
        raise EncodingError(
            "ephemeral public key too large",
            what="ephemeral_pubkey",
            size=len(raw),
            limit=config.max_epk_bytes,
        )
    return pad_and_pack_bytes_to_scalars_with_len(raw, config.max_epk_bytes)


def reconstruct_nonce(
    epk: EphemeralPublicKey,
    exp_timestamp_secs: int,
    blinder: bytes,
    *,
    config: ZkIdConfig = DEFAULT_CONFIG,
) -> str:
    if isinstance(exp_timestamp_secs, bool) or not 0 <= exp_timestamp_secs <= U64_MAX:
        raise HashingError("exp_timestamp_secs must be a u64", what="exp_timestamp_secs")
    if len(blinder) != EPK_BLINDER_NUM_BYTES:
        raise HashingError(
            "epk blinder must be 32 bytes",
            what="epk_blinder",
            size=len(blinder),
            limit=EPK_BLINDER_NUM_BYTES,
        )
    frs = epk_scalars(epk, config=config)
    frs.append(int(exp_timestamp_secs))
    frs.append(pack_bytes_to_one_scalar(bytes(blinder)))
    return b64url_encode_nopad(fr_to_bytes_le(hash_scalars(frs)))


__all__ = ["commit", "epk_scalars", "reconstruct_nonce"]
