"""
Mirror Sync — CLI Entry Point

Usage:
    mirror-sync sync [--parallel|--sequential] [--dashboard]
    mirror-sync projects
    mirror-sync status
    mirror-sync check-config
    python -m mirrorsync.main sync
"""

from __future__ import annotations

# Load .env file FIRST, before any other imports that might read env vars
from pathlib import Path
from dotenv import load_dotenv

_env_file = Path.cwd() / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

import click

from .logging_config import setup_logging
from .cli.config import check_config
from .cli.sync import projects, status, sync

# Initialize logging
setup_logging()


def get_project_root() -> Path:
    """Relative paths on the command line resolve against the working directory."""
    return Path.cwd()


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Mirror Sync — keep local mirrors of git projects pushed to a target host."""
    ctx.ensure_object(dict)
    ctx.obj.setdefault("root", get_project_root())


cli.add_command(sync)
cli.add_command(projects)
cli.add_command(status)
cli.add_command(check_config)


if __name__ == "__main__":
    cli()
