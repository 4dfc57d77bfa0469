"""
quiver.cli.init_cmd — quiver init command.

  quiver init
  quiver init --force
"""

import sys
import click


CONFIG_TEMPLATE = """\
# quiver.yaml: fallback values for `quiver image push`.
# Command-line flags win, then environment variables, then this file.
registry:
  image: ""            # default image, e.g. myapp:v1
  target_image: ""     # default target for `quiver image tag`

  dockerhub:
    username: ""
    password: ""       # prefer DOCKER_PASSWORD

  ghcr:
    username: ""
    token: ""          # prefer GITHUB_TOKEN

  ecr:
    region: ""         # e.g. us-east-1
    repository: ""
    account_id: ""     # optional, read from the token endpoint otherwise

  acr:
    subscription_id: ""
    resource_group: ""
    registry_name: ""

  gcp:
    project_id: ""
    credentials_file: ""   # service account key, optional
    region: us-central1    # Artifact Registry location
    repository: ""         # Artifact Registry repository, defaults to the image name
    use_gcr: false
"""


@click.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_context
def init_cmd(ctx, force):
    """Write a quiver.yaml template."""
    from pathlib import Path
    from quiver.registry.config import config_path

    config_file = (ctx.obj or {}).get("config_file")
    path = Path(config_file) if config_file else config_path()

    if path.exists() and not force:
        click.echo(f"Error: {path} already exists (use --force).", err=True)
        sys.exit(1)

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(CONFIG_TEMPLATE)
    click.echo(f"✓ Wrote {path}")
