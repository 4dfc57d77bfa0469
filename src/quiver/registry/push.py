"""
quiver.registry.push — Tag, push, cleanup.

    tag_and_push(engine, "myapp:v1", target, token)
      ├── inspect local image      missing → TagFailedError
      ├── tag as target            error   → TagFailedError
      └── push with token          error event → PushFailedError

The first error event ends the stream read. Layers that were already
pushed do not count: the registry may not have committed the manifest.
"""

from __future__ import annotations

from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, Callable

import aiodocker
import structlog

from quiver.errors import CleanupWarning, EngineError, PushFailedError, TagFailedError
from quiver.registry.auth.base import AuthToken
from quiver.registry.progress import LayerProgress, LayerState, LayerTracker, PushEvent
from quiver.registry.reference import ImageReference


logger = structlog.get_logger(__name__)


@dataclass
class PushResult:
    success: bool
    final_reference: str
    error: str | None = None
    layers: list[LayerProgress] = field(default_factory=list)
    digest: str = ""

    def counts(self) -> dict[LayerState, int]:
        out: dict[LayerState, int] = {}
        for layer in self.layers:
            out[layer.state] = out.get(layer.state, 0) + 1
        return out


def _docker_reason(e: aiodocker.exceptions.DockerError) -> str:
    return getattr(e, "message", None) or str(e)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# TAG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
async def ensure_local_image(engine: Any, source: str, target: str = "") -> dict[str, Any]:
    try:
        info = await engine.inspect(source)
    except aiodocker.exceptions.DockerError as e:
        raise TagFailedError(source, target or source, _docker_reason(e)) from e
    if info is None:
        raise TagFailedError(source, target or source, "image not found locally")
    return info


async def tag_image(engine: Any, source: str, target: ImageReference) -> None:
    await ensure_local_image(engine, source, str(target))
    try:
        await engine.tag(source, target)
    except aiodocker.exceptions.DockerError as e:
        raise TagFailedError(source, str(target), _docker_reason(e)) from e


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PUSH
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
async def push_image(
    engine: Any,
    target: ImageReference,
    token: AuthToken,
    on_progress: Callable[[LayerProgress], None] | None = None,
) -> PushResult:
    """Push an already tagged image and decode its progress stream."""
    tracker = LayerTracker(on_progress)
    reference = str(target)

    def failed(reason: str) -> PushResult:
        return PushResult(False, reference, reason, tracker.snapshot(), tracker.digest)

    try:
        async with aclosing(engine.push(target, token)) as stream:
            async for message in stream:
                event = PushEvent.from_message(message)
                if event.error:
                    logger.debug("push_error_event", reference=reference, error=event.error)
                    raise PushFailedError(reference, event.error, failed(event.error))
                tracker.apply(event)
    except aiodocker.exceptions.DockerError as e:
        reason = _docker_reason(e)
        raise PushFailedError(reference, reason, failed(reason)) from e

    result = PushResult(True, reference, None, tracker.snapshot(), tracker.digest)
    logger.info(
        "image_pushed",
        reference=reference,
        digest=result.digest or None,
        layers={state.value: n for state, n in result.counts().items()},
    )
    return result


async def tag_and_push(
    engine: Any,
    source: str,
    target: ImageReference,
    token: AuthToken,
    on_progress: Callable[[LayerProgress], None] | None = None,
) -> PushResult:
    await tag_image(engine, source, target)
    return await push_image(engine, target, token, on_progress)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# CLEANUP
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
async def cleanup_image(engine: Any, target: ImageReference | str) -> CleanupWarning | None:
    """Best-effort removal of the pushed tag. Never raises."""
    try:
        await engine.remove(target)
    except (aiodocker.exceptions.DockerError, EngineError, OSError) as e:
        reason = _docker_reason(e) if isinstance(e, aiodocker.exceptions.DockerError) else str(e)
        logger.warning("local_image_cleanup_failed", image=str(target), error=reason)
        return CleanupWarning(str(target), reason)
    logger.info("local_image_removed", image=str(target))
    return None


async def remove_image(engine: Any, name: str) -> None:
    """Remove a local image, failing loudly."""
    try:
        await engine.remove(name)
    except aiodocker.exceptions.DockerError as e:
        if e.status == 404:
            raise EngineError(f"Image {name} not found locally") from e
        raise EngineError(f"Failed to remove {name}: {_docker_reason(e)}") from e
