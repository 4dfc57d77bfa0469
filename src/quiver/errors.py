"""
quiver.errors — Exception hierarchy.

    QuiverError (base)
    ├── ConfigError                          # quiver.yaml unreadable
    ├── EngineError                          # local image engine failed
    ├── InvalidReferenceError                # malformed image string
    ├── MissingCredentialsError              # no credential source was usable
    ├── AuthenticationUnavailableError       # every auth method failed
    ├── RegistryCredentialsUnavailableError  # registry exposes no secret
    ├── TagFailedError                       # local tag failed
    ├── PushFailedError                      # registry reported an error
    ├── PushTimeoutError                     # deadline expired
    └── PushCancelledError                   # confirmation declined

Each class carries the CLI exit code it maps to. CleanupWarning is a
warning, not an error: it is logged and returned, never raised.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from quiver.registry.push import PushResult


class QuiverError(Exception):
    """Base exception for all quiver errors."""

    exit_code: int = 1


class ConfigError(QuiverError):
    pass


class EngineError(QuiverError):
    pass


class InvalidReferenceError(QuiverError):
    """Raised when an image string cannot be turned into a reference."""

    exit_code: int = 2

    def __init__(self, image: str, reason: str) -> None:
        self.image = image
        self.reason = reason
        super().__init__(f"Invalid image reference '{image}': {reason}")


class MissingCredentialsError(QuiverError):
    """Raised when no credential source yields the required values.

    Attributes:
        registry: Registry kind the credentials were resolved for.
        missing: Field names that stayed empty.
        attempted: Sources consulted, in order.
    """

    exit_code: int = 3

    def __init__(
        self,
        registry: str,
        missing: Sequence[str],
        attempted: Sequence[str],
        hint: str = "",
    ) -> None:
        self.registry = registry
        self.missing = list(missing)
        self.attempted = list(attempted)
        msg = (
            f"Missing {registry} credentials: {', '.join(self.missing)} "
            f"(tried: {', '.join(self.attempted) or 'nothing'})"
        )
        if hint:
            msg += f". {hint}"
        super().__init__(msg)


class AuthenticationUnavailableError(QuiverError):
    """Raised when every authentication method for a registry failed."""

    exit_code: int = 3

    def __init__(self, registry: str, attempted: Sequence[str]) -> None:
        self.registry = registry
        self.attempted = list(attempted)
        super().__init__(
            f"No authentication method succeeded for {registry} "
            f"(tried: {', '.join(self.attempted)})"
        )


class RegistryCredentialsUnavailableError(QuiverError):
    exit_code: int = 3

    def __init__(self, registry: str, reason: str) -> None:
        self.registry = registry
        self.reason = reason
        super().__init__(f"Registry credentials are not available for {registry}: {reason}")


class TagFailedError(QuiverError):
    exit_code: int = 4

    def __init__(self, source: str, target: str, reason: str) -> None:
        self.source = source
        self.target = target
        self.reason = reason
        super().__init__(f"Failed to tag {source} as {target}: {reason}")


class PushFailedError(QuiverError):
    """Raised when the registry reports an error in the push stream.

    Layers that already reached a terminal state do not make the push a
    partial success; ``result.success`` is always False here.
    """

    exit_code: int = 5

    def __init__(self, reference: str, reason: str, result: PushResult | None = None) -> None:
        self.reference = reference
        self.reason = reason
        self.result = result
        super().__init__(f"Push of {reference} failed: {reason}")


class PushTimeoutError(QuiverError):
    exit_code: int = 6

    def __init__(self, reference: str, timeout: float) -> None:
        self.reference = reference
        self.timeout = timeout
        super().__init__(f"Push of {reference} timed out after {timeout:g}s")


class PushCancelledError(QuiverError):
    exit_code: int = 7

    def __init__(self, reference: str) -> None:
        self.reference = reference
        super().__init__(f"Push of {reference} cancelled")


class CleanupWarning(UserWarning):
    """Local image removal after a successful push failed."""

    def __init__(self, reference: str, reason: str) -> None:
        self.reference = reference
        self.reason = reason
        super().__init__(f"Could not remove local image {reference}: {reason}")
