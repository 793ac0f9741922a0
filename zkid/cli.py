#!/usr/bin/env python3
"""
zkid.cli
========

Operator tooling around zkID values.

  zkid idc     --aud APP --uid-key sub --uid-val 1234 --pepper 0x...
  zkid nonce   --epk 0x<32-byte ed25519 key> --exp 1700000000 --blinder 0x...
  zkid inspect signature.cbor
  zkid verify  signature.cbor --pk pk.cbor --jwks jwks.json --time-micros ...
  zkid config  [--config zkid.yaml]

Binary inputs may be raw CBOR files or files holding hex text. Add --json for
machine-readable output.
"""

from __future__ import annotations

import json
import string
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import logging as zlog
from .claims import parse_claims
from .commitment import commit, reconstruct_nonce
from .config import ZkIdConfig, load_config
from .errors import ZkIdError
from .groth16 import Groth16Bn254Verifier, load_vk_file
from .jwks import load_snapshot
from .signature import ZkIdSignature
from .types import EphemeralPublicKey, Groth16Zkp, OpenIdSig, Pepper, ZkIdPublicKey
from .version import runtime_banner


def _die(msg: str, code: int = 2) -> None:
    sys.stderr.write(msg.rstrip() + "\n")
    raise typer.Exit(code)


def _hex_arg(value: str, n: int, what: str) -> bytes:
    s = value[2:] if value.lower().startswith("0x") else value
    try:
        b = bytes.fromhex(s)
    except ValueError:
        _die(f"{what}: not hex")
    if len(b) != n:
        _die(f"{what}: expected {n} bytes, got {len(b)}")
    return b


def _read_blob(path: Path) -> bytes:
    """Raw bytes, or hex text if the whole file is hex."""
    data = path.read_bytes()
    text = data.strip()
    if text.lower().startswith(b"0x"):
        text = text[2:]
    if text and all(chr(c) in string.hexdigits for c in text):
        return bytes.fromhex(text.decode("ascii"))
    return data


def _load_cfg(path: Optional[Path]) -> ZkIdConfig:
    return load_config(path)


def _emit_error(e: ZkIdError, json_out: bool) -> None:
    if json_out:
        print(json.dumps({"ok": False, "error": e.to_dict()}))
        raise typer.Exit(1)
    _die(f"[zkid] {e}", 1)


def _signature_summary(sig: ZkIdSignature) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "variant": type(sig.sig).__name__,
        "exp_timestamp_secs": sig.exp_timestamp_secs,
        "ephemeral_pubkey": sig.ephemeral_pubkey.key.hex(),
        "encoded_bytes": len(sig.to_bytes()),
    }
    try:
        header = sig.parse_jwt_header()
        out["kid"], out["alg"] = header.kid, header.alg
    except ZkIdError as e:
        out["jwt_header_error"] = e.msg
    if isinstance(sig.sig, OpenIdSig):
        out["uid_key"] = sig.sig.uid_key
        try:
            claims = parse_claims(sig.sig.jwt_payload)
            out["iss"], out["aud"], out["iat"] = claims.iss, claims.aud, claims.iat
        except ZkIdError as e:
            out["jwt_payload_error"] = e.msg
    elif isinstance(sig.sig, Groth16Zkp):
        out["proof_a"] = list(sig.sig.a)
    return out


def build_app() -> typer.Typer:
    app = typer.Typer(
        name="zkid",
        help="Compute, inspect and verify zkID commitments and signatures",
        no_args_is_help=True,
        add_completion=False,
    )

    @app.callback(invoke_without_command=True)
    def _meta(
        version: bool = typer.Option(
            False, "--version", "-V", help="Print version and exit", is_eager=True
        ),
        log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG/INFO/..."),
    ) -> None:
        if version:
            typer.echo(runtime_banner())
            raise typer.Exit(0)
        zlog.configure(level=log_level)

    @app.command("idc")
    def idc_cmd(
        aud: str = typer.Option(..., "--aud", help="OAuth client id (aud claim)"),
        uid_key: str = typer.Option("sub", "--uid-key"),
        uid_val: str = typer.Option(..., "--uid-val"),
        pepper: str = typer.Option(..., "--pepper", help="32-byte pepper, hex"),
        iss: Optional[str] = typer.Option(None, "--iss", help="Also print the encoded public key"),
        config: Optional[Path] = typer.Option(None, "--config", "-c"),
    ) -> None:
        """Compute an identity commitment."""
        try:
            cfg = _load_cfg(config)
            idc = commit(aud, uid_key, uid_val, Pepper(_hex_arg(pepper, 32, "pepper")), config=cfg)
            public_key = ZkIdPublicKey(iss=iss, idc=idc) if iss is not None else None
            if public_key is not None:
                public_key.validate_sizes(cfg)
        except ZkIdError as e:
            _emit_error(e, False)
            return
        typer.echo(idc.hex())
        if public_key is not None:
            typer.echo(public_key.to_bytes().hex())

    @app.command("nonce")
    def nonce_cmd(
        epk: str = typer.Option(..., "--epk", help="Ed25519 ephemeral public key, hex"),
        exp: int = typer.Option(..., "--exp", help="EPK expiry, UNIX seconds"),
        blinder: str = typer.Option(..., "--blinder", help="32-byte EPK blinder, hex"),
        config: Optional[Path] = typer.Option(None, "--config", "-c"),
    ) -> None:
        """Compute the nonce an OpenID provider must embed in the JWT."""
        key = EphemeralPublicKey.ed25519(_hex_arg(epk, 32, "epk"))
        try:
            cfg = _load_cfg(config)
            typer.echo(reconstruct_nonce(key, exp, _hex_arg(blinder, 32, "blinder"), config=cfg))
        except ZkIdError as e:
            _emit_error(e, False)

    @app.command("inspect")
    def inspect_cmd(
        path: Path = typer.Argument(..., help="ZkIdSignature (CBOR or hex)"),
        json_out: bool = typer.Option(False, "--json"),
    ) -> None:
        """Decode a signature and print its public parts (secrets are never shown)."""
        try:
            sig = ZkIdSignature.from_bytes(_read_blob(path))
        except ZkIdError as e:
            _emit_error(e, json_out)
            return
        summary = _signature_summary(sig)
        if json_out:
            print(json.dumps(summary, indent=2, sort_keys=True))
            return
        t = Table(title=str(path), box=box.SIMPLE)
        t.add_column("Field")
        t.add_column("Value")
        for k, v in summary.items():
            t.add_row(k, str(v))
        Console().print(t)

    @app.command("verify")
    def verify_cmd(
        path: Path = typer.Argument(..., help="ZkIdSignature (CBOR or hex)"),
        pk: Path = typer.Option(..., "--pk", help="ZkIdPublicKey (CBOR or hex)"),
        jwks: Path = typer.Option(..., "--jwks", help="JSON map issuer -> JWKS document"),
        time_micros: int = typer.Option(..., "--time-micros", help="Block time, microseconds"),
        vk: Optional[Path] = typer.Option(None, "--vk", help="snarkjs verification key (ZK path)"),
        config: Optional[Path] = typer.Option(None, "--config", "-c"),
        json_out: bool = typer.Option(False, "--json"),
    ) -> None:
        """Verify a signature against a public key and a JWK snapshot."""
        try:
            cfg = _load_cfg(config)
            sig = ZkIdSignature.from_bytes(_read_blob(path), config=cfg)
            public_key = ZkIdPublicKey.from_bytes(_read_blob(pk), config=cfg)
            verifier = Groth16Bn254Verifier(load_vk_file(vk) if vk else None)
            sig.verify(public_key, time_micros, load_snapshot(jwks), verifier, config=cfg)
        except ZkIdError as e:
            _emit_error(e, json_out)
            return
        if json_out:
            print(json.dumps({"ok": True, "iss": public_key.iss, "variant": type(sig.sig).__name__}))
            return
        meta = Table.grid(padding=(0, 2))
        meta.add_row("Issuer", public_key.iss)
        meta.add_row("Variant", type(sig.sig).__name__)
        meta.add_row("Expires", str(sig.exp_timestamp_secs))
        Console().print(Panel(meta, title="[green]valid[/green]", expand=False))

    @app.command("config")
    def config_cmd(
        config: Optional[Path] = typer.Option(None, "--config", "-c"),
        json_out: bool = typer.Option(False, "--json"),
    ) -> None:
        """Print the effective configuration (file + ZKID_* env)."""
        try:
            cfg = _load_cfg(config)
        except ZkIdError as e:
            _emit_error(e, json_out)
            return
        if json_out:
            print(json.dumps(cfg.to_dict(), indent=2, sort_keys=True))
            return
        t = Table(title="zkID configuration", box=box.SIMPLE)
        t.add_column("Key")
        t.add_column("Value", justify="right")
        for k, v in cfg.to_dict().items():
            t.add_row(k, ",".join(v) if isinstance(v, list) else str(v))
        Console().print(t)

    return app


app = build_app()


def main(argv: Optional[List[str]] = None) -> int:
    app(args=argv)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
