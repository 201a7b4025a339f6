"""Exception hierarchy for sagaflow."""

from typing import Any


class SagaError(Exception):
    """Base exception for all sagaflow errors."""


class SagaConfigError(SagaError):
    """Invalid watcher or handler configuration."""


class DuplicateWatcherError(SagaConfigError):
    """A trigger tag is already bound to a different handler or policy."""

    def __init__(self, trigger: str, existing, requested):
        self.trigger = trigger
        self.existing = existing
        self.requested = requested
        super().__init__(
            f"{trigger!r} is already watched by {existing.handler.__qualname__} "
            f"({existing.policy.value}); cannot bind {requested.handler.__qualname__} "
            f"({requested.policy.value})"
        )


class RegistryClosedError(SagaConfigError):
    """The watcher registry was torn down."""


class SchedulerNotRunningError(SagaError):
    """Dispatch was attempted outside the scheduler's running context."""


class RequestFailed(SagaError):
    """An external call failed (network fault, non-2xx status, timeout)."""

    def __init__(self, reason: str, *, endpoint: str = "", status_code: int = None):
        self.reason = reason
        self.endpoint = endpoint
        self.status_code = status_code
        super().__init__(reason)


class JoinFailedError(SagaError):
    """A member of a join failed; carries the first failure observed."""

    def __init__(self, request_id, payload: Any):
        self.request_id = request_id
        self.payload = payload
        super().__init__(f"{request_id} failed: {payload!r}")


class JoinCancelledError(SagaError):
    """A join was cancelled before it settled."""
