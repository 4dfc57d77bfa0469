"""
quiver.registry.engine — Local image engine (Docker daemon via aiodocker).

    async with DockerEngine() as engine:
        await engine.inspect("myapp:v1")
        await engine.tag("myapp:v1", target)
        async for message in engine.push(target, token):
            ...
        await engine.remove(target)

Anything with the same four coroutines can stand in for it (tests use an
in-memory fake).
"""

from __future__ import annotations

import inspect
from typing import Any, AsyncIterator

import aiodocker
import structlog

from quiver.errors import EngineError
from quiver.registry.auth.base import AuthToken
from quiver.registry.reference import ImageReference


logger = structlog.get_logger(__name__)


class DockerEngine:
    def __init__(self, url: str | None = None) -> None:
        self._url = url
        self._docker: aiodocker.Docker | None = None

    async def __aenter__(self) -> DockerEngine:
        try:
            self._docker = aiodocker.Docker(url=self._url)
        except (ValueError, OSError) as e:
            raise EngineError(f"Cannot connect to the Docker engine: {e}") from e
        return self

    async def __aexit__(self, *exc) -> None:
        if self._docker is not None:
            await self._docker.close()
            self._docker = None

    @property
    def docker(self) -> aiodocker.Docker:
        if self._docker is None:
            raise EngineError("Docker engine is not open")
        return self._docker

    async def inspect(self, name: str) -> dict[str, Any] | None:
        """Image details, or None when the image does not exist."""
        try:
            return await self.docker.images.inspect(name)
        except aiodocker.exceptions.DockerError as e:
            if e.status == 404:
                return None
            raise

    async def tag(self, source: str, target: ImageReference) -> None:
        await self.docker.images.tag(name=source, repo=target.name, tag=target.tag)
        logger.debug("image_tagged", source=source, target=str(target))

    async def push(self, target: ImageReference, token: AuthToken) -> AsyncIterator[dict[str, Any]]:
        # aiodocker rebuilds X-Registry-Auth from the mapping
        stream = self.docker.images.push(
            target.name,
            auth=token.decode(),
            tag=target.tag,
            stream=True,
        )
        # Older aiodocker releases hand back a coroutine
        if inspect.iscoroutine(stream):
            stream = await stream
        async for message in stream:
            yield message

    async def remove(self, target: ImageReference | str) -> None:
        await self.docker.images.delete(name=str(target), force=True)
        logger.debug("image_removed", image=str(target))
