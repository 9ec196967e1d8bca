"""CLI tests, including key-handling hardening."""

import json
import os
import stat

from click.testing import CliRunner
from eth_account import Account

from carvault.cli import main
from carvault.delegation import DelegatedIdentityWire, RootIdentity, delegate


def _mode(path) -> int:
    return stat.S_IMODE(os.stat(path).st_mode)


def test_keygen_writes_private_jwk(tmp_path):
    runner = CliRunner()
    out = tmp_path / "root.json"

    result = runner.invoke(main, ["keygen", "--out", str(out)])

    assert result.exit_code == 0, result.output
    root = RootIdentity.from_jwk(json.loads(out.read_text()))
    assert root.principal in result.output
    assert _mode(out) == 0o600


def test_keygen_refuses_overwrite(tmp_path):
    runner = CliRunner()
    out = tmp_path / "root.json"
    out.write_text("{}")

    result = runner.invoke(main, ["keygen", "--out", str(out)])

    assert result.exit_code != 0
    assert out.read_text() == "{}"


def test_delegate_rejects_raw_key_on_argv(tmp_path):
    runner = CliRunner()
    key = Account.create().key.hex()

    result = runner.invoke(main, ["delegate", "--key", key, "--out", str(tmp_path / "wire.json")])

    assert result.exit_code != 0
    assert "Refusing --key from argv" in result.output
    assert not (tmp_path / "wire.json").exists()


def test_delegate_with_prompted_key(tmp_path):
    runner = CliRunner()
    key = Account.create().key.hex()
    out = tmp_path / "wire.json"

    result = runner.invoke(main, ["delegate", "--short-lived", "--out", str(out)], input=f"{key}\n")

    assert result.exit_code == 0, result.output
    assert key not in result.output
    wire = DelegatedIdentityWire.from_dict(json.loads(out.read_text()))
    assert wire.principal == RootIdentity.from_hex(key).principal
    assert _mode(out) == 0o600


def test_delegate_with_unsafe_key_arg(tmp_path):
    runner = CliRunner()
    key = Account.create().key.hex()
    out = tmp_path / "wire.json"

    result = runner.invoke(
        main, ["delegate", "--key", key, "--unsafe-allow-key-arg", "--out", str(out)]
    )

    assert result.exit_code == 0, result.output
    assert out.exists()


def test_delegate_from_key_file_then_extend(tmp_path):
    runner = CliRunner()
    key_file = tmp_path / "root.json"
    first = tmp_path / "first.json"
    second = tmp_path / "second.json"

    assert runner.invoke(main, ["keygen", "--out", str(key_file)]).exit_code == 0
    result = runner.invoke(main, ["delegate", "--key-file", str(key_file), "--out", str(first)])
    assert result.exit_code == 0, result.output

    result = runner.invoke(
        main, ["delegate", "--from-wire", str(first), "--max-age-hours", "1", "--out", str(second)]
    )

    assert result.exit_code == 0, result.output
    wire = DelegatedIdentityWire.from_dict(json.loads(second.read_text()))
    assert len(wire.delegation_chain) == 2


def test_delegate_rejects_conflicting_lifetimes(tmp_path):
    runner = CliRunner()
    result = runner.invoke(
        main,
        ["delegate", "--short-lived", "--max-age-hours", "2", "--out", str(tmp_path / "w.json")],
        input="00\n",
    )
    assert result.exit_code != 0


def test_inspect_valid_wire(tmp_path):
    runner = CliRunner()
    root = RootIdentity.generate()
    wire = delegate(root)
    path = tmp_path / "wire.json"
    path.write_text(wire.to_json())

    result = runner.invoke(main, ["inspect", str(path)])

    assert result.exit_code == 0, result.output
    assert root.principal in result.output
    assert wire.to_secret["d"] not in result.output


def test_inspect_tampered_wire(tmp_path):
    runner = CliRunner()
    payload = delegate(RootIdentity.generate()).to_dict()
    payload["delegation_chain"][0]["delegation"]["expiration"] += 1
    path = tmp_path / "wire.json"
    path.write_text(json.dumps(payload))

    result = runner.invoke(main, ["inspect", str(path)])

    assert result.exit_code != 0
    assert "invalid" in result.output


def test_principal_rejects_raw_key_on_argv():
    runner = CliRunner()
    result = runner.invoke(main, ["principal", "--key", Account.create().key.hex()])
    assert result.exit_code != 0
    assert "Refusing --key from argv" in result.output


def test_principal_from_prompt():
    runner = CliRunner()
    key = Account.create().key.hex()
    result = runner.invoke(main, ["principal"], input=f"{key}\n")
    assert result.exit_code == 0, result.output
    assert RootIdentity.from_hex(key).principal in result.output
