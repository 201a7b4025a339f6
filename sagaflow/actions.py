from dataclasses import dataclass, replace
from typing import Any, Hashable, Mapping, Optional

STARTED = "STARTED"
SUCCEEDED = "SUCCEEDED"
FAILED = "FAILED"


@dataclass(frozen=True)
class Action:
    """A dispatched action. Never mutated once created."""
    type: str
    payload: Any = None
    meta: Optional[Mapping[str, Any]] = None

    @property
    def request_id(self) -> Optional["RequestId"]:
        return (self.meta or {}).get("request_id")

    def with_meta(self, **meta) -> "Action":
        return replace(self, meta={**(self.meta or {}), **meta})


@dataclass(frozen=True)
class RequestId:
    """Identity of one request: the lifecycle name plus an optional key."""
    name: str
    key: Hashable = None

    def __str__(self):
        return self.name if self.key is None else f"{self.name}:{self.key}"


@dataclass(frozen=True)
class Lifecycle:
    """The STARTED / SUCCEEDED / FAILED tags of one named request."""
    name: str

    @property
    def started(self) -> str:
        return f"{self.name}_{STARTED}"

    @property
    def succeeded(self) -> str:
        return f"{self.name}_{SUCCEEDED}"

    @property
    def failed(self) -> str:
        return f"{self.name}_{FAILED}"

    @property
    def terminal(self) -> tuple[str, str]:
        return self.succeeded, self.failed

    @property
    def tags(self) -> tuple[str, str, str]:
        return self.started, self.succeeded, self.failed

    def request(self, key: Hashable = None) -> RequestId:
        return RequestId(self.name, key)

    def start(self, payload: Any = None, *, request_id: RequestId = None) -> Action:
        return _action(self.started, payload, request_id)

    def succeed(self, payload: Any = None, *, request_id: RequestId = None) -> Action:
        return _action(self.succeeded, payload, request_id)

    def fail(self, error: str, *, request_id: RequestId = None, **details) -> Action:
        # Failure payloads always carry a plain message, never a raw exception
        return _action(self.failed, {"error": str(error), **details}, request_id)

    def owns(self, action: Action) -> bool:
        return action.type in self.tags

    def is_terminal(self, action: Action) -> bool:
        return action.type in self.terminal


def _action(tag: str, payload: Any, request_id: Optional[RequestId]) -> Action:
    if request_id is None:
        return Action(tag, payload)
    return Action(tag, payload, {"request_id": request_id})
