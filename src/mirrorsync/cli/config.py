"""
CLI config commands — mirror configuration checking.

Usage:
    mirror-sync check-config [--config-file FILE] [--json]
"""

from __future__ import annotations

import json

import click

from .sync import EXIT_FATAL, config_file_option


@click.command("check-config")
@config_file_option
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def check_config(ctx: click.Context, config_file: str, as_json: bool) -> None:
    """Check the mirror configuration and its environment."""
    from ..config.validator import LEVEL_WARNING, ConfigValidator

    validator = ConfigValidator(ctx.obj["root"] / config_file)
    checks = validator.validate_all()
    failed = validator.has_errors(checks)

    if as_json:
        click.echo(json.dumps({
            "ok": not failed,
            "checks": [c.to_dict() for c in checks],
        }, indent=2))
        if failed:
            raise SystemExit(EXIT_FATAL)
        return

    click.echo("\n📋 Mirror Configuration Status\n")

    for check in checks:
        if check.ok:
            click.secho(f"  ✓ {check.name}", fg="green", nl=False)
        elif check.level == LEVEL_WARNING:
            click.secho(f"  ! {check.name}", fg="yellow", nl=False)
        else:
            click.secho(f"  ✗ {check.name}", fg="red", nl=False)
        click.echo(f" — {check.message}")

    warnings = [c for c in checks if c.level == LEVEL_WARNING]
    errors = [c for c in checks if not c.ok and c.level != LEVEL_WARNING]

    click.echo()
    click.secho(
        f"Summary: {len(checks) - len(warnings) - len(errors)} ok, "
        f"{len(warnings)} warning(s), {len(errors)} error(s)",
        bold=True,
    )

    guided = [c for c in checks if not c.ok and c.guidance]
    if guided:
        click.echo("\n📖 Setup Guide:\n")
        for check in guided:
            click.echo(f"  {check.name}:")
            click.echo(f"    → {check.guidance}")

    if failed:
        raise SystemExit(EXIT_FATAL)
