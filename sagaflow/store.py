import logging
import math
from collections import deque
from typing import Any, Callable, Mapping, Optional, Protocol

from anyio import create_memory_object_stream, BrokenResourceError, ClosedResourceError, EndOfStream

from .actions import Action

_logger = logging.getLogger(__name__)

Reducer = Callable[[Any, Action], Any]
Predicate = Callable[[Action], bool]


class StoreBridge(Protocol):
    """What the scheduler needs from the application store."""

    def dispatch(self, action: Action) -> Action: ...

    def subscribe(self, predicate: Optional[Predicate] = None) -> "Subscription": ...

    def get_state(self) -> Any: ...


class Subscription:
    """Stream of the actions a store applied that match a predicate."""

    def __init__(self, store: "Store", predicate: Optional[Predicate]):
        self._store = store
        self._predicate = predicate
        self._sender, self._receiver = create_memory_object_stream[Action](math.inf)

    def matches(self, action: Action) -> bool:
        return self._predicate is None or self._predicate(action)

    def _push(self, action: Action) -> bool:
        try:
            self._sender.send_nowait(action)
        except (BrokenResourceError, ClosedResourceError):
            return False
        return True

    async def receive(self) -> Action:
        return await self._receiver.receive()

    def close(self):
        self._store._unsubscribe(self)
        self._sender.close()
        self._receiver.close()

    def __aiter__(self):
        return self

    async def __anext__(self) -> Action:
        try:
            return await self._receiver.receive()
        except (EndOfStream, ClosedResourceError):
            raise StopAsyncIteration

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.close()


class Store:
    """In-memory store applying one action at a time.

    A dispatch issued while another is being applied (from a reducer or a
    subscriber) is queued and applied right after, so actions stay linearized.
    """

    def __init__(self, reducer: Reducer = None, state: Any = None):
        self.reducer = reducer
        self.state = state
        self._subscriptions: list[Subscription] = []
        self._queue: deque[Action] = deque()
        self._dispatching = False
        if reducer is not None and state is None:
            self.state = reducer(None, Action("@@INIT"))

    def dispatch(self, action: Action) -> Action:
        self._queue.append(action)
        if self._dispatching:
            return action
        self._dispatching = True
        try:
            while self._queue:
                self._apply(self._queue.popleft())
        except Exception:
            # Follow-ups queued by the failed action must not leak into the next dispatch
            self._queue.clear()
            raise
        finally:
            self._dispatching = False
        return action

    def _apply(self, action: Action):
        if self.reducer is not None:
            self.state = self.reducer(self.state, action)
        for subscription in list(self._subscriptions):
            if subscription.matches(action) and not subscription._push(action):
                _logger.debug("Dropping closed subscription %r", subscription)
                self._unsubscribe(subscription)

    def subscribe(self, predicate: Optional[Predicate] = None) -> Subscription:
        subscription = Subscription(self, predicate)
        self._subscriptions.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription):
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def get_state(self) -> Any:
        return self.state


def combine_reducers(reducers: Mapping[str, Reducer]) -> Reducer:
    """Build a reducer over a dict of slices, one reducer per key."""

    def reducer(state, action: Action) -> dict:
        state = state or {}
        next_state = {key: fn(state.get(key), action) for key, fn in reducers.items()}
        if all(next_state[key] is state.get(key) for key in reducers) and len(state) == len(next_state):
            return state
        return next_state

    return reducer
