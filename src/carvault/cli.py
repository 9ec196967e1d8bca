"""
Carvault CLI — key and delegation management for the booking service.

Commands:
    carvault keygen      Generate a root identity and store it privately
    carvault delegate    Delegate a root identity (or a session) to a new session key
    carvault inspect     Verify a delegated identity file
    carvault principal   Show the principal of a root identity
"""

from __future__ import annotations

import logging
import sys
import time
from datetime import timedelta
from pathlib import Path
from typing import Optional

import click
from click.core import ParameterSource

from . import __version__
from .delegation import (
    DELEGATION_MAX_AGE,
    NANOS_PER_SECOND,
    SHORT_LIVED_MAX_AGE,
    DelegatedIdentityWire,
    RootIdentity,
    delegate as delegate_identity,
    reconstruct,
    verify_delegation_chain,
)
from .errors import DelegationError
from .storage import ensure_private_dir, read_json, write_private_json


CARVAULT_DIR = Path.home() / ".carvault"
DEFAULT_KEY_PATH = CARVAULT_DIR / "root_key.json"


def _format_ns(value: int) -> str:
    return time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(value / NANOS_PER_SECOND))


def _refuse_key_from_argv(unsafe_allow_key_arg: bool) -> None:
    ctx = click.get_current_context(silent=True)
    key_from_argv = (
        ctx is not None
        and ctx.get_parameter_source("key") == ParameterSource.COMMANDLINE
    )
    if key_from_argv and not unsafe_allow_key_arg:
        click.echo(
            "❌ Refusing --key from argv. Re-run with prompt input, use --key-file, or pass "
            "--unsafe-allow-key-arg to acknowledge the risk.",
            err=True,
        )
        sys.exit(1)


def _load_root(key: Optional[str], key_file: Optional[Path]) -> RootIdentity:
    try:
        if key_file is not None:
            return RootIdentity.from_jwk(read_json(key_file))
        secret = key if key is not None else click.prompt("Root key (JWK or hex)", hide_input=True)
        return RootIdentity.from_secret(secret)
    except (DelegationError, ValueError, OSError) as e:
        click.echo(f"❌ Could not load root key: {e}", err=True)
        sys.exit(1)


def _load_wire(path: Path) -> DelegatedIdentityWire:
    try:
        payload = read_json(path)
    except (OSError, ValueError) as e:
        click.echo(f"❌ Could not read {path}: {e}", err=True)
        sys.exit(1)
    try:
        return DelegatedIdentityWire.from_dict(payload)
    except DelegationError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)


def _key_options(f):
    f = click.option(
        "--unsafe-allow-key-arg",
        is_flag=True,
        default=False,
        help="Allow passing --key via argv (unsafe; can leak in shell/process history).",
    )(f)
    f = click.option(
        "--key-file",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        default=None,
        help="Root key JWK file written by `carvault keygen`",
    )(f)
    f = click.option("--key", default=None, help="Root key (JWK or hex). Prompted when omitted.")(f)
    return f


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging")
def main(verbose: bool):
    """Carvault — delegated ledger authority for car bookings."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


@main.command()
@click.option(
    "--out",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_KEY_PATH,
    show_default=True,
    help="Where to write the root key JWK",
)
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing key file")
def keygen(out: Path, force: bool):
    """Generate a new root identity."""
    if out.exists() and not force:
        click.echo(f"❌ {out} already exists. Pass --force to overwrite it.", err=True)
        sys.exit(1)
    if out.parent == CARVAULT_DIR:
        ensure_private_dir(CARVAULT_DIR)

    root = RootIdentity.generate()
    write_private_json(out, root.export_jwk())

    click.echo(f"✅ Root identity created: {root.principal}")
    click.echo(f"   Address:  {root.address}")
    click.echo(f"   Saved to: {out}")


@main.command()
@_key_options
@click.option(
    "--from-wire",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Extend an existing delegated identity instead of a root key",
)
@click.option("--short-lived", is_flag=True, default=False, help="Use the 1-day preset")
@click.option("--max-age-hours", type=float, default=None, help="Delegation lifetime in hours")
@click.option("--target", "targets", multiple=True, help="Restrict the delegation to a canister (repeatable)")
@click.option(
    "--out",
    type=click.Path(dir_okay=False, path_type=Path),
    required=True,
    help="Where to write the delegated identity (mode 0600)",
)
def delegate(
    key: Optional[str],
    key_file: Optional[Path],
    unsafe_allow_key_arg: bool,
    from_wire: Optional[Path],
    short_lived: bool,
    max_age_hours: Optional[float],
    targets: tuple[str, ...],
    out: Path,
):
    """Delegate authority to a fresh session key."""
    if short_lived and max_age_hours is not None:
        click.echo("❌ --short-lived and --max-age-hours are mutually exclusive.", err=True)
        sys.exit(1)
    if max_age_hours is not None and max_age_hours <= 0:
        click.echo("❌ --max-age-hours must be positive.", err=True)
        sys.exit(1)
    max_age = SHORT_LIVED_MAX_AGE if short_lived else DELEGATION_MAX_AGE
    if max_age_hours is not None:
        max_age = timedelta(hours=max_age_hours)

    if from_wire is not None:
        try:
            source = reconstruct(_load_wire(from_wire))
        except DelegationError as e:
            click.echo(f"❌ Cannot extend {from_wire}: {e}", err=True)
            sys.exit(1)
    else:
        _refuse_key_from_argv(unsafe_allow_key_arg)
        source = _load_root(key, key_file)

    wire = delegate_identity(source, max_age, targets=list(targets) or None)
    write_private_json(out, wire.to_dict())

    click.echo(f"✅ Delegated identity for {wire.principal}")
    click.echo(f"   Links:    {len(wire.delegation_chain)}")
    click.echo(f"   Expires:  {_format_ns(wire.expiry_ns)}")
    click.echo(f"   Saved to: {out}")


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def inspect(path: Path):
    """Verify a delegated identity file without printing its session key."""
    wire = _load_wire(path)
    valid, reason = verify_delegation_chain(wire.from_key, wire.delegation_chain)
    if valid:
        try:
            reconstruct(wire)
        except DelegationError as e:
            valid, reason = False, str(e)

    click.echo(f"   Principal: {wire.principal}")
    click.echo(f"   Links:     {len(wire.delegation_chain)}")
    if wire.delegation_chain:
        click.echo(f"   Expires:   {_format_ns(wire.expiry_ns)}")
    if valid:
        click.echo(f"✅ Delegated identity is valid: {reason}")
    else:
        click.echo(f"❌ Delegated identity is invalid: {reason}")
        sys.exit(1)


@main.command()
@_key_options
def principal(key: Optional[str], key_file: Optional[Path], unsafe_allow_key_arg: bool):
    """Show the principal of a root identity."""
    _refuse_key_from_argv(unsafe_allow_key_arg)
    root = _load_root(key, key_file)
    click.echo(root.principal)


if __name__ == "__main__":
    main()
