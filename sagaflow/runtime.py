import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Iterable, Optional

from anyio import Event, create_task_group
from anyio.abc import TaskGroup

from .actions import Action, Lifecycle, RequestId
from .config import SagaConfig
from .errors import SchedulerNotRunningError
from .handler import EffectInstance
from .join import JoinCombinator, JoinHandle
from .registry import Policy, WatcherRegistry
from .store import StoreBridge

_logger = logging.getLogger(__name__)


class EffectScheduler:
    """Feeds dispatched actions to the store and spawns the watchers' handlers.

    Use as an async context manager; handler instances run in its task group
    and are cancelled when the context exits::

        async with EffectScheduler(store, registry) as scheduler:
            scheduler.dispatch(CHECK_AUTH.start())
    """

    def __init__(self, store: StoreBridge, registry: WatcherRegistry, config: SagaConfig = None):
        self.store = store
        self.registry = registry
        self.config = config or SagaConfig()
        self.joins = JoinCombinator(self)
        self._tg: Optional[TaskGroup] = None
        self._in_flight: dict[str, set[EffectInstance]] = defaultdict(set)
        self._idle: Optional[Event] = None

    async def __aenter__(self):
        self._tg = create_task_group()
        await self._tg.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.cancel_all("scheduler closed")
        self.joins.cancel_all()
        self._tg.cancel_scope.cancel()
        try:
            return await self._tg.__aexit__(exc_type, exc_val, exc_tb)
        finally:
            self._tg = None

    @property
    def running(self) -> bool:
        return self._tg is not None

    def dispatch(self, action: Action) -> Action:
        """Apply ``action`` to the store, then run its watcher if any.

        Never blocks: handlers are spawned into the task group and start at
        the next checkpoint of the caller.
        """
        if self._tg is None:
            raise SchedulerNotRunningError(f"cannot dispatch {action.type}: scheduler is not running")

        self.store.dispatch(action)
        entry = self.registry.resolve(action)
        if entry is None:
            return action

        in_flight = self._in_flight[entry.trigger]
        if entry.policy is Policy.FIRST and in_flight:
            _logger.debug("Ignoring %s, %d instance(s) still in flight", action.type, len(in_flight))
            return action
        if entry.policy is Policy.LATEST:
            for instance in list(in_flight):
                instance.cancel(f"superseded by a newer {action.type}")

        instance = EffectInstance(self, entry, action)
        in_flight.add(instance)
        if self._idle is None or self._idle.is_set():
            self._idle = Event()
        _logger.debug("Spawning %s for %s", instance.request_id, action.type)
        self._tg.start_soon(instance.run, name=f"saga:{instance.request_id}")
        return action

    def cancel(self, request_id: RequestId, reason: str = "cancelled") -> int:
        """Request cancellation of every in-flight instance of ``request_id``."""
        cancelled = 0
        for instance in self.in_flight():
            if instance.request_id == request_id and instance.cancel(reason):
                cancelled += 1
        return cancelled

    def cancel_all(self, reason: str = "cancelled") -> int:
        return sum(1 for instance in self.in_flight() if instance.cancel(reason))

    def in_flight(self, trigger: str = None) -> list[EffectInstance]:
        if trigger is not None:
            return list(self._in_flight.get(trigger, ()))
        return [instance for instances in self._in_flight.values() for instance in instances]

    async def wait_idle(self):
        """Wait until no handler instance is in flight."""
        while self._idle is not None and not self._idle.is_set():
            await self._idle.wait()

    def join(
        self,
        members: Iterable[RequestId],
        *,
        dispatch: Iterable[Action] = (),
        lifecycle: Lifecycle = None,
    ) -> JoinHandle:
        return self.joins.join(members, dispatch=dispatch, lifecycle=lifecycle)

    def start_soon(self, fn: Callable[..., Awaitable[Any]], *args, name: str = None):
        if self._tg is None:
            raise SchedulerNotRunningError("scheduler is not running")
        self._tg.start_soon(fn, *args, name=name)

    def _retire(self, instance: EffectInstance):
        instances = self._in_flight.get(instance.entry.trigger)
        if instances is not None:
            instances.discard(instance)
            if not instances:
                del self._in_flight[instance.entry.trigger]
        _logger.debug("%s finished: %s", instance.request_id, instance.state.value)
        if not self._in_flight and self._idle is not None:
            self._idle.set()
