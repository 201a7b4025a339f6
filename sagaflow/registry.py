import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncGenerator, Callable, Hashable, Iterator, Optional

from .actions import Action, Lifecycle, RequestId
from .errors import DuplicateWatcherError, RegistryClosedError, SagaConfigError

_logger = logging.getLogger(__name__)

Handler = Callable[[Action], AsyncGenerator[Any, Any]]


class Policy(str, Enum):
    """What happens when a trigger arrives while an instance is in flight."""
    LATEST = "latest"  # cancel the in-flight instances, then spawn
    EVERY = "every"    # spawn alongside
    FIRST = "first"    # ignore the new trigger


@dataclass(frozen=True)
class WatcherEntry:
    trigger: str
    handler: Handler
    policy: Policy
    lifecycle: Lifecycle
    key: Optional[Callable[[Action], Hashable]] = None

    def request_id(self, action: Action) -> RequestId:
        return self.lifecycle.request(self.key(action) if self.key else None)

    def same_binding(self, other: "WatcherEntry") -> bool:
        return self.handler == other.handler and self.policy is other.policy


class WatcherRegistry:
    """Maps trigger tags to the handler that runs in response."""

    def __init__(self):
        self._entries: dict[str, WatcherEntry] = {}
        self._closed = False

    def register(
        self,
        trigger: str,
        handler: Handler,
        policy: Policy,
        *,
        lifecycle: Lifecycle = None,
        key: Callable[[Action], Hashable] = None,
    ) -> WatcherEntry:
        if self._closed:
            raise RegistryClosedError("cannot register watchers on a closed registry")
        if not inspect.isasyncgenfunction(handler):
            raise SagaConfigError(f"{handler!r} is not an async generator function")
        lifecycle = lifecycle or getattr(handler, "lifecycle", None)
        if lifecycle is None:
            raise SagaConfigError(
                f"{handler.__qualname__} has no lifecycle; decorate it with @saga or pass lifecycle="
            )

        entry = WatcherEntry(trigger, handler, Policy(policy), lifecycle, key)
        existing = self._entries.get(trigger)
        if existing is not None:
            if existing.same_binding(entry):
                return existing
            raise DuplicateWatcherError(trigger, existing, entry)

        self._entries[trigger] = entry
        _logger.debug("Watching %s with %s (%s)", trigger, handler.__qualname__, entry.policy.value)
        return entry

    def watch(self, trigger: str, policy: Policy, **options):
        """Decorator form of :meth:`register`."""

        def decorator(handler):
            self.register(trigger, handler, policy, **options)
            return handler

        return decorator

    def resolve(self, action: Action) -> Optional[WatcherEntry]:
        return self._entries.get(action.type)

    def unregister(self, trigger: str) -> Optional[WatcherEntry]:
        return self._entries.pop(trigger, None)

    def close(self):
        self._entries.clear()
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def __contains__(self, trigger: str) -> bool:
        return trigger in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[WatcherEntry]:
        return iter(list(self._entries.values()))
