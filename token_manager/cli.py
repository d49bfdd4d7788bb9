"""Command line interface for managing a service's signing keys."""

from __future__ import annotations

import json
from typing import List, Optional

import typer

from token_manager.errors import TokenManagerError
from token_manager.manager import TokenManager

app = typer.Typer(help="CLI for service token keys")

_config_option = typer.Option(
    None, "--config", "-c", help="Path to YAML config (default: TOKEN_MANAGER_CONFIG)"
)


def _manager(config: Optional[str]) -> TokenManager:
    try:
        return TokenManager.from_config(config)
    except TokenManagerError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _parse_claim(raw: str) -> tuple[str, object]:
    if "=" not in raw:
        raise typer.BadParameter(f"expected key=value, got {raw!r}")
    key, value = raw.split("=", 1)
    try:
        return key, json.loads(value)
    except ValueError:
        return key, value


@app.callback()
def main() -> None:
    """Token manager CLI entry point."""
    pass


@app.command("key-id")
def key_id(config: Optional[str] = _config_option) -> None:
    """Print the active key id, generating the first key if needed."""
    manager = _manager(config)
    try:
        typer.echo(manager.key_id)
    except TokenManagerError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)


@app.command("rotate")
def rotate(config: Optional[str] = _config_option) -> None:
    """
    Generate a new signing key and retire the current one.

    The retired key stays resolvable for ``old_key_ttl`` seconds so tokens
    signed before the rotation keep verifying.

    Example:
        token-manager rotate --config token_manager.yaml
    """
    manager = _manager(config)
    try:
        pair = manager.rotate()
    except TokenManagerError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(pair.key_id)


@app.command("public-key")
def public_key(
    kid: Optional[str] = typer.Option(None, help="Key id (default: active key)"),
    config: Optional[str] = _config_option,
) -> None:
    """Print the resolution endpoint body for a key id."""
    manager = _manager(config)
    try:
        document = manager.public_key_document(kid)
    except TokenManagerError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(document))


@app.command("encode")
def encode(
    aud: str = typer.Option(..., help="Audience service name"),
    exp: Optional[int] = typer.Option(None, help="Expiry as Unix time"),
    claim: List[str] = typer.Option([], help="Extra claim as key=value (JSON values allowed)"),
    config: Optional[str] = _config_option,
) -> None:
    """
    Sign a token for ``aud``.

    Example:
        token-manager encode --aud billing --claim user_id=42
    """
    claims = dict(_parse_claim(raw) for raw in claim)
    claims["aud"] = aud
    if exp is not None:
        claims["exp"] = exp

    manager = _manager(config)
    try:
        typer.echo(manager.encode(claims))
    except TokenManagerError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)


@app.command("decode")
def decode(token: str, config: Optional[str] = _config_option) -> None:
    """Verify a token and print its claims and header as JSON."""
    manager = _manager(config)
    try:
        claims, header = manager.decode(token)
    except TokenManagerError as e:
        typer.secho(f"{type(e).__name__}: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(json.dumps({"claims": claims, "header": header}, sort_keys=True))
