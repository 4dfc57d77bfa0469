"""
quiver.registry.publish — The publish pipeline.

    parse → credentials → qualify → authenticate → confirm → tag/push → cleanup

One PublishOptions value carries every per-run setting; nothing is read
from module state. Authentication and tag/push run under one deadline
(the time spent waiting for the user to confirm is not counted).
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

import structlog

from quiver.errors import CleanupWarning, PushCancelledError, PushTimeoutError
from quiver.registry.auth import Authenticator, create_authenticator
from quiver.registry.config import QuiverConfig, load_config
from quiver.registry.credentials import platform_fallback, resolve_credentials
from quiver.registry.progress import LayerProgress
from quiver.registry.push import PushResult, cleanup_image, ensure_local_image, tag_and_push
from quiver.registry.reference import ImageReference, RegistryKind, parse_reference, qualify


logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = 1500.0


def assume_yes(target: ImageReference) -> bool:
    return True


@dataclass(frozen=True)
class PublishOptions:
    """Everything one publish run needs.

    ``confirm`` is called with the final target after authentication and
    must return True for the push to go ahead. Leaving it unset declines.
    """
    image: str
    kind: RegistryKind | None = None
    explicit: Mapping[str, str] = field(default_factory=dict)
    use_gcr: bool = False
    delete_after_push: bool = False
    confirm: Callable[[ImageReference], bool] | None = None
    timeout: float = DEFAULT_TIMEOUT
    on_progress: Callable[[LayerProgress], None] | None = None


@dataclass
class PublishOutcome:
    source: str
    target: ImageReference
    result: PushResult
    credential_source: str = ""
    cleanup_warning: CleanupWarning | None = None

    @property
    def success(self) -> bool:
        return self.result.success


async def publish(
    options: PublishOptions,
    config: QuiverConfig | None = None,
    environ: Mapping[str, str] | None = None,
    engine: Any = None,
    authenticator: Authenticator | None = None,
    platform: Callable[[], Mapping[str, str] | None] | None = None,
) -> PublishOutcome:
    """Run the pipeline for one image. See publish_image for the sync form."""
    parsed = parse_reference(options.image, options.kind)
    source = str(parsed)
    kind = parsed.kind

    explicit = dict(options.explicit)
    if kind == RegistryKind.ECR and parsed.registry_host:
        # A full ECR host already names the region and account
        explicit = {"region": parsed.region, "account_id": parsed.account_id, **explicit}

    config = config if config is not None else load_config()
    resolved = resolve_credentials(
        kind,
        explicit=explicit,
        environ=environ,
        config_values=config.registry_values(kind),
        platform=platform if platform is not None else platform_fallback(kind),
    )
    use_gcr = options.use_gcr or config.gcp.use_gcr
    target = qualify(parsed, resolved.values, use_gcr=use_gcr)
    log = logger.bind(source=source, registry=target.kind.value)

    started = time.monotonic()
    async with _open(engine) as eng:
        try:
            async with asyncio.timeout(options.timeout):
                await ensure_local_image(eng, source, str(target))
                auth = authenticator or create_authenticator(target.kind, resolved.values)
                authorization = await asyncio.to_thread(auth.authenticate, target)
        except TimeoutError as e:
            raise PushTimeoutError(str(target), options.timeout) from e
        elapsed = time.monotonic() - started

        target = authorization.target
        log.debug("authenticated", target=str(target), credential_source=resolved.source)

        if options.confirm is None or not options.confirm(target):
            raise PushCancelledError(str(target))

        remaining = max(options.timeout - elapsed, 0.0)
        try:
            async with asyncio.timeout(remaining):
                result = await tag_and_push(eng, source, target, authorization.token, options.on_progress)
        except TimeoutError as e:
            raise PushTimeoutError(str(target), options.timeout) from e

        warning = None
        if options.delete_after_push and result.success:
            warning = await cleanup_image(eng, target)

    return PublishOutcome(source, target, result, resolved.source, warning)


def publish_image(options: PublishOptions, **kwargs: Any) -> PublishOutcome:
    return asyncio.run(publish(options, **kwargs))


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# LOCAL TAG / REMOVE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
def _open(engine: Any):
    if engine is None:
        from quiver.registry.engine import DockerEngine
        return DockerEngine()
    return contextlib.nullcontext(engine)


def tag_local(source: str, target: str, engine: Any = None) -> ImageReference:
    """Tag a local image under a new name. No registry is contacted."""
    from quiver.registry.push import tag_image

    src = str(parse_reference(source))
    dst = parse_reference(target)

    async def run():
        async with _open(engine) as eng:
            await tag_image(eng, src, dst)

    asyncio.run(run())
    return dst


def remove_local(name: str, engine: Any = None) -> str:
    from quiver.registry.push import remove_image

    ref = str(parse_reference(name))

    async def run():
        async with _open(engine) as eng:
            await remove_image(eng, ref)

    asyncio.run(run())
    return ref
