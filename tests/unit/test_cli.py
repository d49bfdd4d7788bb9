import json

import pytest
from typer.testing import CliRunner

from token_manager.cli import app


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    monkeypatch.delenv("TOKEN_MANAGER_SERVICE_NAME", raising=False)
    monkeypatch.delenv("TOKEN_MANAGER_STORE_URL", raising=False)
    path = tmp_path / "token_manager.yaml"
    path.write_text(
        f"""
service_name: cli
token_ttl: 60
store_url: sqlite://{tmp_path / 'keys.db'}
trusted_issuers:
  cli: {{}}
"""
    )
    return str(path)


def test_key_id_and_rotate(config_path):
    runner = CliRunner()
    first = runner.invoke(app, ["key-id", "--config", config_path])
    assert first.exit_code == 0, first.stdout
    kid = first.stdout.strip()

    again = runner.invoke(app, ["key-id", "--config", config_path])
    assert again.stdout.strip() == kid

    rotated = runner.invoke(app, ["rotate", "--config", config_path])
    assert rotated.exit_code == 0, rotated.stdout
    new_kid = rotated.stdout.strip()
    assert new_kid != kid

    document = runner.invoke(app, ["public-key", "--kid", kid, "--config", config_path])
    assert document.exit_code == 0
    assert json.loads(document.stdout)["public_key"].startswith("-----BEGIN PUBLIC KEY-----")


def test_encode_then_decode(config_path):
    runner = CliRunner()
    encoded = runner.invoke(
        app, ["encode", "--aud", "cli", "--claim", "user=42", "--claim", "role=admin", "--config", config_path]
    )
    assert encoded.exit_code == 0, encoded.stdout
    token = encoded.stdout.strip()

    decoded = runner.invoke(app, ["decode", token, "--config", config_path])
    assert decoded.exit_code == 0, decoded.stdout
    claims = json.loads(decoded.stdout)["claims"]
    assert claims["user"] == 42
    assert claims["role"] == "admin"
    assert claims["iss"] == "cli"


def test_decode_failure_exits_nonzero(config_path):
    runner = CliRunner()
    result = runner.invoke(app, ["decode", "garbage", "--config", config_path])
    assert result.exit_code == 1
    assert "MalformedToken" in result.stdout


def test_missing_service_name(tmp_path, monkeypatch):
    monkeypatch.delenv("TOKEN_MANAGER_SERVICE_NAME", raising=False)
    runner = CliRunner()
    result = runner.invoke(app, ["key-id", "--config", str(tmp_path / "absent.yaml")])
    assert result.exit_code == 1
    assert "service_name" in result.stdout
