"""
quiver.cli._common — Helpers shared by commands.
"""

import sys

import click


def load_cli_config(ctx):
    """quiver.yaml for this invocation; exits on a broken file."""
    from quiver.errors import ConfigError
    from quiver.registry.config import load_config

    path = (ctx.obj or {}).get("config_file") if ctx else None
    try:
        return load_config(path)
    except ConfigError as e:
        fail(e)


def fail(error):
    click.echo(f"Error: {error}", err=True)
    sys.exit(getattr(error, "exit_code", 1))
