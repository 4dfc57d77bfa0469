"""
quiver.registry.progress — Push stream decoding.

The engine streams one JSON object per message:

    {"status": "Preparing", "id": "a1b2c3"}
    {"status": "Pushing", "id": "a1b2c3", "progressDetail": {"current": 512, "total": 2048}}
    {"status": "Layer already exists", "id": "d4e5f6"}
    {"status": "v1: digest: sha256:... size: 1570"}
    {"error": "denied: requested access to the resource is denied",
     "errorDetail": {"message": "denied: ..."}}

Each layer moves forward only:

    Waiting → Preparing → Pushing → Verifying → Pushed | Exists | Mounted

Statuses that are not recognised leave the layer untouched.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Mapping


class LayerState(str, Enum):
    WAITING = "Waiting"
    PREPARING = "Preparing"
    PUSHING = "Pushing"
    VERIFYING = "Verifying"
    PUSHED = "Pushed"
    EXISTS = "Exists"
    MOUNTED = "Mounted"

    @property
    def rank(self) -> int:
        return _RANK[self]

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATES


_RANK = {
    LayerState.WAITING: 0,
    LayerState.PREPARING: 1,
    LayerState.PUSHING: 2,
    LayerState.VERIFYING: 3,
    LayerState.PUSHED: 4,
    LayerState.EXISTS: 4,
    LayerState.MOUNTED: 4,
}

TERMINAL_STATES = frozenset({LayerState.PUSHED, LayerState.EXISTS, LayerState.MOUNTED})

_STATUS_STATES = {
    "Waiting": LayerState.WAITING,
    "Preparing": LayerState.PREPARING,
    "Pushing": LayerState.PUSHING,
    "Verifying Checksum": LayerState.VERIFYING,
    "Pushed": LayerState.PUSHED,
    "Layer already exists": LayerState.EXISTS,
}

_DIGEST_RE = re.compile(r"digest:\s*(sha256:[0-9a-f]{64})")


def state_for_status(status: str) -> LayerState | None:
    """Map an engine status string to a layer state, None if unknown."""
    status = status.strip()
    if status in _STATUS_STATES:
        return _STATUS_STATES[status]
    if status.startswith("Mounted from"):
        return LayerState.MOUNTED
    return None


@dataclass
class LayerProgress:
    layer_id: str
    state: LayerState = LayerState.WAITING
    current_bytes: int = 0
    total_bytes: int = 0

    @property
    def terminal(self) -> bool:
        return self.state.terminal


@dataclass(frozen=True)
class PushEvent:
    """One decoded stream message."""
    layer_id: str = ""
    status: str = ""
    current: int | None = None
    total: int | None = None
    error: str = ""
    digest: str = ""

    @classmethod
    def from_message(cls, msg: Mapping[str, Any]) -> PushEvent:
        detail = msg.get("errorDetail") or {}
        error = msg.get("error") or (detail.get("message") if isinstance(detail, dict) else "") or ""

        progress = msg.get("progressDetail") or {}
        current = progress.get("current") if isinstance(progress, dict) else None
        total = progress.get("total") if isinstance(progress, dict) else None

        status = str(msg.get("status") or "")
        digest = ""
        aux = msg.get("aux")
        if isinstance(aux, dict) and aux.get("Digest"):
            digest = str(aux["Digest"])
        else:
            m = _DIGEST_RE.search(status)
            if m:
                digest = m.group(1)

        return cls(
            layer_id=str(msg.get("id") or ""),
            status=status,
            current=current,
            total=total,
            error=str(error),
            digest=digest,
        )


class LayerTracker:
    """Per-layer state for one push, keyed by first occurrence."""

    def __init__(self, on_progress: Callable[[LayerProgress], None] | None = None) -> None:
        self.layers: dict[str, LayerProgress] = {}
        self.digest = ""
        self._on_progress = on_progress

    def apply(self, event: PushEvent) -> LayerProgress | None:
        """Feed one event. Returns the layer if it changed."""
        if event.digest:
            self.digest = event.digest
        if not event.layer_id:
            return None

        state = state_for_status(event.status)
        layer = self.layers.get(event.layer_id)
        if layer is None:
            if state is None:
                return None
            layer = self.layers[event.layer_id] = LayerProgress(event.layer_id)

        if layer.terminal or state is None:
            return None

        before = replace(layer)
        if state in (LayerState.EXISTS, LayerState.MOUNTED) or state.rank >= layer.state.rank:
            layer.state = state

        if event.total:
            layer.total_bytes = int(event.total)
        if event.current is not None and layer.state == LayerState.PUSHING:
            layer.current_bytes = max(layer.current_bytes, int(event.current))
        if layer.state == LayerState.PUSHED and layer.total_bytes:
            layer.current_bytes = layer.total_bytes

        if layer == before:
            return None
        if self._on_progress is not None:
            self._on_progress(replace(layer))
        return layer

    def summary(self) -> dict[LayerState, int]:
        counts: dict[LayerState, int] = {}
        for layer in self.layers.values():
            counts[layer.state] = counts.get(layer.state, 0) + 1
        return counts

    def snapshot(self) -> list[LayerProgress]:
        return [replace(layer) for layer in self.layers.values()]
