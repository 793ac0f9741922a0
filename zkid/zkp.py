"""
ZK path: public-input assembly and the call into the proof verifier.

The circuit exposes a single public input, a Poseidon hash over everything the
verifier knows in the clear:

    Poseidon(
        epk_0, epk_1, epk_2, epk_len,       # padded-and-packed EPK bytes
        Fr(idc),                            # identity commitment
        Fr(exp_timestamp_secs),
        Fr(max_expiry_horizon_secs),
        H(iss),                             # padded to max_iss_bytes
        H(jwt_header),                      # padded to max_jwt_header_bytes
        H(jwk.n),                           # RSA modulus bytes, padded to 465
    )

The proof verifier is any object with
`verify(proof, verification_key, public_inputs) -> bool`.
"""

from __future__ import annotations

from typing import Any, List, Protocol, Sequence

from .commitment import epk_scalars
from .config import DEFAULT_CONFIG, MAX_PACKABLE_BYTES, ZkIdConfig
from .errors import ProofInvalid, ensure
from .jwks import RsaJwk
from .logging import get_logger
from .poseidon import fr_from_bytes_le, hash_scalars, pad_and_hash_bytes_with_len, pad_and_hash_string
from .types import EphemeralPublicKey, Groth16Zkp, ZkIdPublicKey

log = get_logger(__name__)


class ProofVerifier(Protocol):
    def verify(self, proof: Groth16Zkp, verification_key: Any, public_inputs: Sequence[int]) -> bool: ...


def public_inputs_hash(
    *,
    pk: ZkIdPublicKey,
    epk: EphemeralPublicKey,
    exp_timestamp_secs: int,
    jwt_header: str,
    jwk: RsaJwk,
    config: ZkIdConfig = DEFAULT_CONFIG,
) -> int:
    frs: List[int] = epk_scalars(epk, config=config)
    frs.append(fr_from_bytes_le(pk.idc.value))
    frs.append(int(exp_timestamp_secs))
    frs.append(int(config.max_expiry_horizon_secs))
    frs.append(pad_and_hash_string(pk.iss, config.max_iss_bytes))
    frs.append(pad_and_hash_string(jwt_header, config.max_jwt_header_bytes))
    frs.append(pad_and_hash_bytes_with_len(jwk.modulus_bytes(), MAX_PACKABLE_BYTES))
    return hash_scalars(frs)


def verify_zkp(
    proof: Groth16Zkp,
    *,
    pk: ZkIdPublicKey,
    epk: EphemeralPublicKey,
    exp_timestamp_secs: int,
    jwt_header: str,
    jwk: RsaJwk,
    proof_verifier: ProofVerifier,
    verification_key: Any = None,
    config: ZkIdConfig = DEFAULT_CONFIG,
) -> None:
    inputs = [
        public_inputs_hash(
            pk=pk,
            epk=epk,
            exp_timestamp_secs=exp_timestamp_secs,
            jwt_header=jwt_header,
            jwk=jwk,
            config=config,
        )
    ]
    # verifier failures of any kind, typed or not, surface as ProofInvalid
    try:
        ok = proof_verifier.verify(proof, verification_key, inputs)
    except Exception as e:
        raise ProofInvalid("proof verifier raised", ctx={"iss": pk.iss}, cause=e) from e
    ensure(bool(ok), ProofInvalid(ctx={"iss": pk.iss}))


__all__ = ["ProofVerifier", "public_inputs_hash", "verify_zkp"]
