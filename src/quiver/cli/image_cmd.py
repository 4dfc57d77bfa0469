"""
quiver.cli.image_cmd — quiver image command.

  quiver image push hub myapp:v1 -u alice
  quiver image push ghcr ghcr.io/acme/api:v1
  quiver image push aws myapp:v1 --region us-east-1 --repository myrepo --yes
  quiver image push az myapp:v1 -s SUB -r my-rg -g myregistry --delete
  quiver image push gcp myapp:v1 --project-id my-project --use-gcr
  quiver image tag myapp:v1 registry.internal/myapp:v1
  quiver image remove registry.internal/myapp:v1
"""

import click

from quiver.cli._common import fail, load_cli_config


@click.group("image")
def image_cmd():
    """Local image and registry push commands."""
    pass


@image_cmd.group("push")
def push_cmd():
    """Tag and push an image to a registry."""
    pass


def push_options(f):
    f = click.option("--timeout", default=1500.0, show_default=True, type=float,
                     help="Seconds for authentication and push")(f)
    f = click.option("--yes", "-y", is_flag=True, help="Push without asking")(f)
    f = click.option("--delete", is_flag=True,
                     help="Remove the local target tag after a successful push")(f)
    f = click.argument("image", required=False)(f)
    return f


def _progress_printer():
    seen = {}

    def show(layer):
        # Byte updates are not printed, only state changes
        if seen.get(layer.layer_id) == layer.state:
            return
        seen[layer.layer_id] = layer.state
        click.echo(f"  {layer.layer_id}: {layer.state.value}", err=True)

    return show


def _push(ctx, kind, image, explicit, delete, yes, timeout, use_gcr=False):
    from quiver.errors import QuiverError
    from quiver.registry.publish import PublishOptions, assume_yes, publish_image

    cfg = load_cli_config(ctx)
    image = image or cfg.image
    if not image:
        raise click.UsageError("No IMAGE given and registry.image is not set in quiver.yaml")

    def confirm(target):
        return click.confirm(f"Push {image} to {target}?", default=False, err=True)

    options = PublishOptions(
        image=image,
        kind=kind,
        explicit={k: v for k, v in explicit.items() if v},
        use_gcr=use_gcr,
        delete_after_push=delete,
        confirm=assume_yes if yes else confirm,
        timeout=timeout,
        on_progress=_progress_printer(),
    )

    click.echo(f"Pushing {image} to {kind.label}...", err=True)
    try:
        outcome = publish_image(options, config=cfg)
    except QuiverError as e:
        fail(e)

    click.echo(f"✓ Pushed {outcome.target}", err=True)
    if outcome.result.digest:
        click.echo(f"  digest: {outcome.result.digest}", err=True)
    if outcome.cleanup_warning is not None:
        click.echo(f"Warning: {outcome.cleanup_warning}", err=True)
    elif delete:
        click.echo(f"✓ Removed local tag {outcome.target}", err=True)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PUSH TARGETS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
@push_cmd.command("hub")
@push_options
@click.option("--username", "-u", default=None, help="Docker Hub username")
@click.option("--password", "-p", default=None, help="Docker Hub password or access token")
@click.pass_context
def push_hub(ctx, image, delete, yes, timeout, username, password):
    """Push to Docker Hub."""
    from quiver.registry.reference import RegistryKind

    _push(ctx, RegistryKind.DOCKER_HUB, image,
          {"username": username, "password": password}, delete, yes, timeout)


@push_cmd.command("ghcr")
@push_options
@click.option("--username", "-u", default=None, help="GitHub username")
@click.option("--token", "-t", default=None, help="GitHub personal access token")
@click.pass_context
def push_ghcr(ctx, image, delete, yes, timeout, username, token):
    """Push to GitHub Container Registry (image must start with ghcr.io/)."""
    from quiver.registry.reference import RegistryKind

    _push(ctx, RegistryKind.GHCR, image,
          {"username": username, "token": token}, delete, yes, timeout)


@push_cmd.command("aws")
@push_options
@click.option("--region", default=None, help="AWS region")
@click.option("--repository", default=None, help="ECR repository name")
@click.option("--account-id", default=None, help="AWS account ID")
@click.pass_context
def push_aws(ctx, image, delete, yes, timeout, region, repository, account_id):
    """Push to Amazon ECR (the repository is created if missing)."""
    from quiver.registry.reference import RegistryKind

    _push(ctx, RegistryKind.ECR, image,
          {"region": region, "repository": repository, "account_id": account_id},
          delete, yes, timeout)


@push_cmd.command("az")
@push_options
@click.option("--subscription-id", "-s", default=None, help="Azure subscription ID")
@click.option("--resource-group", "-r", default=None, help="Resource group of the registry")
@click.option("--registry-name", "-g", default=None, help="ACR registry name")
@click.pass_context
def push_az(ctx, image, delete, yes, timeout, subscription_id, resource_group, registry_name):
    """Push to Azure Container Registry (admin user must be enabled)."""
    from quiver.registry.reference import RegistryKind

    _push(ctx, RegistryKind.ACR, image,
          {"subscription_id": subscription_id, "resource_group": resource_group,
           "registry_name": registry_name},
          delete, yes, timeout)


@push_cmd.command("gcp")
@push_options
@click.option("--project-id", default=None, help="GCP project ID")
@click.option("--region", default=None, help="Artifact Registry location (default us-central1)")
@click.option("--repository", default=None, help="Artifact Registry repository")
@click.option("--credentials-file", default=None, type=click.Path(dir_okay=False),
              help="Service account key file")
@click.option("--use-gcr", is_flag=True, help="Push to gcr.io instead of Artifact Registry")
@click.pass_context
def push_gcp(ctx, image, delete, yes, timeout, project_id, region, repository,
             credentials_file, use_gcr):
    """Push to Artifact Registry or GCR."""
    from quiver.registry.reference import RegistryKind

    kind = RegistryKind.GCR if use_gcr else RegistryKind.ARTIFACT_REGISTRY
    _push(ctx, kind, image,
          {"project_id": project_id, "region": region, "repository": repository,
           "credentials_file": credentials_file},
          delete, yes, timeout, use_gcr=use_gcr)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# LOCAL
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
@image_cmd.command("tag")
@click.argument("source", required=False)
@click.argument("target", required=False)
@click.pass_context
def tag_cmd(ctx, source, target):
    """Tag a local image as TARGET."""
    from quiver.errors import QuiverError
    from quiver.registry.publish import tag_local

    cfg = load_cli_config(ctx)
    source = source or cfg.image
    target = target or cfg.target_image
    if not source or not target:
        raise click.UsageError(
            "SOURCE and TARGET are required (or set registry.image and "
            "registry.target_image in quiver.yaml)"
        )

    try:
        ref = tag_local(source, target)
    except QuiverError as e:
        fail(e)
    click.echo(f"✓ Tagged {source} as {ref}")


@image_cmd.command("remove")
@click.argument("image", required=False)
@click.option("--yes", "-y", is_flag=True, help="Remove without asking")
@click.pass_context
def remove_cmd(ctx, image, yes):
    """Remove a local image."""
    from quiver.errors import QuiverError
    from quiver.registry.publish import remove_local

    cfg = load_cli_config(ctx)
    image = image or cfg.image
    if not image:
        raise click.UsageError("No IMAGE given and registry.image is not set in quiver.yaml")

    if not yes and not click.confirm(f"Remove local image {image}?", default=False, err=True):
        click.echo("Aborted.", err=True)
        return

    try:
        ref = remove_local(image)
    except QuiverError as e:
        fail(e)
    click.echo(f"✓ Removed {ref}")
