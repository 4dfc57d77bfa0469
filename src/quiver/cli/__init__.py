"""
quiver.cli — CLI entry point.

Commands:
  quiver image push hub|ghcr|aws|az|gcp [IMAGE]  — Tag and push to a registry
  quiver image tag [SOURCE] [TARGET]             — Tag a local image
  quiver image remove [IMAGE]                    — Remove a local image
  quiver registry login HOST                     — Store a registry login
  quiver init                                    — Write a quiver.yaml template
"""

import click

from quiver.cli.image_cmd import image_cmd
from quiver.cli.registry_cmd import registry_cmd
from quiver.cli.init_cmd import init_cmd


@click.group()
@click.version_option(package_name="quiver")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.option("--config", "config_file", default=None,
              type=click.Path(dir_okay=False),
              help="Path to quiver.yaml (default: ./quiver.yaml or $QUIVER_CONFIG)")
@click.pass_context
def main(ctx, verbose, config_file):
    """quiver — Push container images to any registry."""
    from quiver.logging import configure_logging

    configure_logging("DEBUG" if verbose else None)
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config_file


main.add_command(image_cmd, "image")
main.add_command(registry_cmd, "registry")
main.add_command(init_cmd, "init")
