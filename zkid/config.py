"""
zkid.config
-----------

Policy constants for zkID verification, modelled as an injected value rather
than compiled-in literals so on-chain governance can adjust them.

The loader supports environment variables and optional YAML/JSON files.

ENV overrides (all optional; examples shown as defaults):
  ZKID_MAX_EPK_BYTES=93
  ZKID_MAX_ISS_BYTES=248
  ZKID_MAX_AUD_VAL_BYTES=248
  ZKID_MAX_UID_KEY_BYTES=248
  ZKID_MAX_UID_VAL_BYTES=248
  ZKID_MAX_JWT_HEADER_BYTES=248
  ZKID_MAX_ZK_SIGNATURE_BYTES=2048
  ZKID_MAX_AUTHENTICATORS=10
  ZKID_MAX_EXPIRY_HORIZON_SECS=1728000000     # 20000 days
  ZKID_ALLOWED_UID_KEYS=sub,email
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from .errors import ConfigError, rethrow_as

# Poseidon over BN254 takes at most 16 inputs and packs 31 bytes per scalar;
# one scalar of every padded string is reserved for its length.
POSEIDON_MAX_INPUTS = 16
BYTES_PACKED_PER_SCALAR = 31
MAX_PACKABLE_BYTES = (POSEIDON_MAX_INPUTS - 1) * BYTES_PACKED_PER_SCALAR


def _get_env_int(name: str, default: int) -> int:
    val = os.environ.get(name)
    if val is None or val.strip() == "":
        return default
    try:
        return int(val, 0)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer", value=val) from e


def _get_env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    val = os.environ.get(name)
    if val is None:
        return default
    return tuple(s.strip() for s in val.split(",") if s.strip())


@dataclass(frozen=True)
class ZkIdConfig:
    max_epk_bytes: int = 93
    max_iss_bytes: int = 248
    max_aud_val_bytes: int = 248
    max_uid_key_bytes: int = 248
    max_uid_val_bytes: int = 248
    max_jwt_header_bytes: int = 248
    max_zk_signature_bytes: int = 2048
    max_zkid_authenticators: int = 10
    # How far past the JWT's `iat` the EPK expiry may be set.
    max_expiry_horizon_secs: int = 1_728_000_000
    allowed_uid_keys: Tuple[str, ...] = ("sub", "email")

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["allowed_uid_keys"] = list(self.allowed_uid_keys)
        return d

    def with_overrides(self, **kw: Any) -> "ZkIdConfig":
        if "allowed_uid_keys" in kw:
            kw["allowed_uid_keys"] = tuple(kw["allowed_uid_keys"])
        cfg = replace(self, **kw)
        cfg.validate()
        return cfg

    # Sanity checks; raise ConfigError on misconfiguration.
    def validate(self) -> None:
        packed = {
            "max_epk_bytes": self.max_epk_bytes,
            "max_iss_bytes": self.max_iss_bytes,
            "max_aud_val_bytes": self.max_aud_val_bytes,
            "max_uid_key_bytes": self.max_uid_key_bytes,
            "max_uid_val_bytes": self.max_uid_val_bytes,
            "max_jwt_header_bytes": self.max_jwt_header_bytes,
        }
        for name, v in packed.items():
            if v <= 0:
                raise ConfigError(f"{name} must be > 0", value=v)
            if v > MAX_PACKABLE_BYTES:
                raise ConfigError(
                    f"{name} cannot be packed into a single Poseidon call",
                    value=v,
                    limit=MAX_PACKABLE_BYTES,
                )
        # EPK scalars plus the six other public-input fields must fit one hash
        # (the nonce hash needs only two more, so it fits too)
        epk_scalars = -(-self.max_epk_bytes // BYTES_PACKED_PER_SCALAR) + 1
        if epk_scalars + 6 > POSEIDON_MAX_INPUTS:
            raise ConfigError("max_epk_bytes too large for public-input hash", value=self.max_epk_bytes)
        if self.max_zk_signature_bytes <= 0:
            raise ConfigError("max_zk_signature_bytes must be > 0")
        if self.max_zkid_authenticators < 0:
            raise ConfigError("max_zkid_authenticators must be >= 0")
        if self.max_expiry_horizon_secs <= 0 or self.max_expiry_horizon_secs >= 1 << 64:
            raise ConfigError(
                "max_expiry_horizon_secs must fit a u64 and be > 0",
                value=self.max_expiry_horizon_secs,
            )
        if not self.allowed_uid_keys:
            raise ConfigError("allowed_uid_keys must not be empty")
        for k in self.allowed_uid_keys:
            if not isinstance(k, str) or not k:
                raise ConfigError("allowed_uid_keys must be non-empty strings", value=repr(k))
            if len(k.encode("utf-8")) > self.max_uid_key_bytes:
                raise ConfigError("allowed uid_key longer than max_uid_key_bytes", value=k)


DEFAULT_CONFIG = ZkIdConfig()


# --------- Loading -----------------------------------------------------------


def _from_env(base: ZkIdConfig) -> ZkIdConfig:
    cfg = ZkIdConfig(
        max_epk_bytes=_get_env_int("ZKID_MAX_EPK_BYTES", base.max_epk_bytes),
        max_iss_bytes=_get_env_int("ZKID_MAX_ISS_BYTES", base.max_iss_bytes),
        max_aud_val_bytes=_get_env_int("ZKID_MAX_AUD_VAL_BYTES", base.max_aud_val_bytes),
        max_uid_key_bytes=_get_env_int("ZKID_MAX_UID_KEY_BYTES", base.max_uid_key_bytes),
        max_uid_val_bytes=_get_env_int("ZKID_MAX_UID_VAL_BYTES", base.max_uid_val_bytes),
        max_jwt_header_bytes=_get_env_int(
            "ZKID_MAX_JWT_HEADER_BYTES", base.max_jwt_header_bytes
        ),
        max_zk_signature_bytes=_get_env_int(
            "ZKID_MAX_ZK_SIGNATURE_BYTES", base.max_zk_signature_bytes
        ),
        max_zkid_authenticators=_get_env_int(
            "ZKID_MAX_AUTHENTICATORS", base.max_zkid_authenticators
        ),
        max_expiry_horizon_secs=_get_env_int(
            "ZKID_MAX_EXPIRY_HORIZON_SECS", base.max_expiry_horizon_secs
        ),
        allowed_uid_keys=_get_env_list("ZKID_ALLOWED_UID_KEYS", base.allowed_uid_keys),
    )
    cfg.validate()
    return cfg


def _from_mapping(m: Dict[str, Any]) -> ZkIdConfig:
    data = dict(m.get("zkid", m))
    known = set(ZkIdConfig.__dataclass_fields__)
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError("unknown config keys", keys=unknown)
    if "allowed_uid_keys" in data:
        data["allowed_uid_keys"] = tuple(data["allowed_uid_keys"])
    cfg = ZkIdConfig(**data)
    cfg.validate()
    return cfg


def load_config(path: Optional[Union[str, Path]] = None, *, env: bool = True) -> ZkIdConfig:
    """
    Load configuration from (in order of precedence):
      1) Environment variables (see header), unless env=False.
      2) File at `path` (YAML/JSON), if provided.
      3) Built-in defaults.
    """
    base = DEFAULT_CONFIG
    if path:
        p = Path(path)
        if not p.exists():
            raise ConfigError("config file not found", path=str(p))
        with rethrow_as(ConfigError, path=str(p), reason="config file does not parse"):
            text = p.read_text(encoding="utf-8")
            if p.suffix.lower() in {".yml", ".yaml"}:
                data = yaml.safe_load(text) or {}
            else:
                data = json.loads(text)
        if not isinstance(data, dict):
            raise ConfigError("config file must contain a mapping", path=str(p))
        base = _from_mapping(data)
    if env:
        return _from_env(base)
    base.validate()
    return base


__all__ = [
    "ZkIdConfig",
    "DEFAULT_CONFIG",
    "load_config",
    "BYTES_PACKED_PER_SCALAR",
    "POSEIDON_MAX_INPUTS",
    "MAX_PACKABLE_BYTES",
]
