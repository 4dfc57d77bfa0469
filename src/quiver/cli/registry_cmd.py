"""
quiver.cli.registry_cmd — quiver registry command.

  quiver registry login ghcr.io -u USERNAME -p TOKEN
  echo $TOKEN | quiver registry login ghcr.io -u USERNAME --password-stdin

Logins are written to the docker credential file, where the push
commands (and docker itself) pick them up.
"""

import sys
import click


@click.group("registry")
def registry_cmd():
    """Registry logins."""
    pass


@registry_cmd.command("login")
@click.argument("hostname")
@click.option("--username", "-u", default=None, help="Registry username")
@click.option("--password", "-p", default=None,
              help="Registry password/token (or use --password-stdin)")
@click.option("--password-stdin", is_flag=True,
              help="Read password from stdin")
def registry_login(hostname, username, password, password_stdin):
    """Store a login for a registry.

    \b
    Examples:
      quiver registry login docker.io -u alice
      quiver registry login ghcr.io -u alice -p ghp_TOKEN
      echo $GITHUB_TOKEN | quiver registry login ghcr.io -u alice --password-stdin
    """
    from quiver.errors import ConfigError
    from quiver.registry.dockerconfig import store_auth

    if password_stdin:
        password = sys.stdin.readline().strip()

    if not username:
        username = click.prompt("Username")
    if not password:
        password = click.prompt("Password/Token", hide_input=True)

    try:
        path = store_auth(hostname, username, password)
    except (ConfigError, OSError) as e:
        click.echo(f"Error: Login failed: {e}", err=True)
        sys.exit(1)
    click.echo(f"✓ Login for {hostname} saved to {path}")
