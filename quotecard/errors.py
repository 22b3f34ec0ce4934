"""Error taxonomy shared by the signer, adapters and orchestrator."""
from __future__ import annotations

RETRYABLE_STATUSES = frozenset({401, 403, 429})


class PortraitError(Exception):
    """Base class for every portrait pipeline failure."""


class ConfigError(PortraitError):
    """Missing credentials or endpoint; never retried."""


class UpstreamError(PortraitError):
    """A provider answered with a non-2xx status."""

    def __init__(self, status: int, body: str = "", *, provider: str | None = None) -> None:
        self.status = status
        self.body = body
        self.provider = provider
        label = f"{provider} " if provider else ""
        super().__init__(f"{label}upstream error {status}: {body[:300]}")

    @property
    def retryable(self) -> bool:
        return self.status in RETRYABLE_STATUSES or self.status >= 500


class NetworkError(PortraitError):
    """The transport failed before any HTTP status was received."""


class ProtocolError(PortraitError):
    """A 2xx response whose body matches no known shape."""


class TaskFailedError(PortraitError):
    """The async task ended as ``expired`` or ``not_found``."""

    def __init__(self, status: str, body: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(f"task {status}")


class TaskTimeoutError(PortraitError, TimeoutError):
    """Polling exhausted its attempt budget without a terminal status."""

    def __init__(self, task_id: str, attempts: int) -> None:
        self.task_id = task_id
        self.attempts = attempts
        super().__init__(f"task {task_id} still pending after {attempts} attempts")


def is_retryable(exc: BaseException) -> bool:
    """Decide whether a primary-provider failure should fall through to the chain.

    Auth, quota and server errors mean the provider is unavailable; any other
    4xx points at a malformed request and is surfaced.
    """

    if isinstance(exc, NetworkError):
        return True
    if isinstance(exc, UpstreamError):
        return exc.retryable
    return False


def error_summary(exc: BaseException) -> str:
    if isinstance(exc, UpstreamError):
        return f"{type(exc).__name__}({exc.status})"
    return f"{type(exc).__name__}: {exc}"
