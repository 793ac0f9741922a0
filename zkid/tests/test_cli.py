import json

import pytest
from typer.testing import CliRunner

from zkid.cli import app
from zkid.commitment import reconstruct_nonce
from zkid.config import DEFAULT_CONFIG
from zkid.tests import (
    AUD,
    BLINDER,
    EXP,
    ISS,
    NOW_MICROS,
    PEPPER,
    SUB,
    build_openid_case,
    ephemeral_public_key,
    provider_jwk,
)
from zkid.types import IdCommitment, ZkIdPublicKey

runner = CliRunner()


@pytest.fixture
def case_files(tmp_path):
    case = build_openid_case()
    sig_p = tmp_path / "sig.cbor"
    sig_p.write_bytes(case.sig.to_bytes())
    pk_p = tmp_path / "pk.hex"
    pk_p.write_text(case.pk.to_bytes().hex() + "\n", encoding="utf-8")
    jwks_p = tmp_path / "jwks.json"
    jwks_p.write_text(json.dumps({ISS: {"keys": [provider_jwk().to_jwk()]}}), encoding="utf-8")
    return case, sig_p, pk_p, jwks_p


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.stdout.startswith("zkid ")


def test_config_json():
    result = runner.invoke(app, ["config", "--json"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout) == DEFAULT_CONFIG.to_dict()


def test_idc_matches_library():
    result = runner.invoke(
        app, ["idc", "--aud", AUD, "--uid-val", SUB, "--pepper", PEPPER.value.hex(), "--iss", ISS]
    )
    assert result.exit_code == 0, result.output
    idc_hex, pk_hex = result.stdout.split()
    assert idc_hex == IdCommitment.new_from_preimage(AUD, "sub", SUB, PEPPER).hex()
    assert ZkIdPublicKey.from_bytes(bytes.fromhex(pk_hex)).idc.hex() == idc_hex


def test_idc_rejects_short_pepper():
    result = runner.invoke(app, ["idc", "--aud", AUD, "--uid-val", SUB, "--pepper", "00" * 31])
    assert result.exit_code == 2


def test_idc_oversized_value_fails():
    result = runner.invoke(
        app, ["idc", "--aud", AUD, "--uid-val", "v" * 249, "--pepper", PEPPER.value.hex()]
    )
    assert result.exit_code == 1


def test_nonce_matches_library():
    epk = ephemeral_public_key()
    result = runner.invoke(
        app, ["nonce", "--epk", "0x" + epk.key.hex(), "--exp", str(EXP), "--blinder", BLINDER.hex()]
    )
    assert result.exit_code == 0, result.output
    assert result.stdout.strip() == reconstruct_nonce(epk, EXP, BLINDER)


def test_inspect_json_hides_secrets(case_files):
    case, sig_p, _, _ = case_files
    result = runner.invoke(app, ["inspect", str(sig_p), "--json"])
    assert result.exit_code == 0, result.output
    summary = json.loads(result.stdout)
    assert summary["variant"] == "OpenIdSig"
    assert summary["kid"] == "test-kid-1"
    assert summary["iss"] == ISS
    assert "pepper" not in result.stdout
    assert case.openid.epk_blinder.hex() not in result.stdout


def test_inspect_garbage(tmp_path):
    p = tmp_path / "junk.bin"
    p.write_bytes(b"\xff\xfe\xfd")
    result = runner.invoke(app, ["inspect", str(p), "--json"])
    assert result.exit_code == 1
    assert json.loads(result.stdout)["error"]["code"] == "ZKID/DESERIALIZATION"


def test_verify_ok(case_files):
    _, sig_p, pk_p, jwks_p = case_files
    result = runner.invoke(
        app,
        ["verify", str(sig_p), "--pk", str(pk_p), "--jwks", str(jwks_p), "--time-micros", str(NOW_MICROS), "--json"],
    )
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout) == {"ok": True, "iss": ISS, "variant": "OpenIdSig"}


def test_verify_expired(case_files):
    _, sig_p, pk_p, jwks_p = case_files
    late = str((EXP + 1) * 1_000_000)
    result = runner.invoke(
        app, ["verify", str(sig_p), "--pk", str(pk_p), "--jwks", str(jwks_p), "--time-micros", late, "--json"]
    )
    assert result.exit_code == 1
    err = json.loads(result.stdout)["error"]
    assert err["code"] == "ZKID/EXPIRED"
    assert err["retryable"] is True
