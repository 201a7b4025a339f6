from typing import Any, Callable, List, Optional

from anyio import Event
from anyio.lowlevel import checkpoint

from .actions import Action, Lifecycle
from .config import SagaConfig
from .errors import RequestFailed
from .registry import WatcherRegistry
from .runtime import EffectScheduler
from .store import Store, Reducer


class FakeRequest:
    """Scripted request capability.

    Responses are looked up by endpoint; an exception instance is raised, a
    callable is called with the request args. ``hold`` parks every call to an
    endpoint until ``release``.
    """

    def __init__(self, responses: dict[str, Any] = None):
        self.responses = dict(responses or {})
        self.calls: List[tuple[str, Any]] = []
        self._gates: dict[str, Event] = {}

    def respond(self, endpoint: str, response: Any):
        self.responses[endpoint] = response

    def fail(self, endpoint: str, reason: str = "network", status_code: int = None):
        self.responses[endpoint] = RequestFailed(reason, endpoint=endpoint, status_code=status_code)

    def hold(self, endpoint: str):
        self._gates[endpoint] = Event()

    def release(self, endpoint: str):
        gate = self._gates.pop(endpoint, None)
        if gate is not None:
            gate.set()

    async def wait_calls(self, count: int):
        """Yield to the event loop until ``count`` calls were made."""
        while len(self.calls) < count:
            await checkpoint()

    async def call(self, endpoint: str, args: Any = None) -> Any:
        self.calls.append((endpoint, args))
        gate = self._gates.get(endpoint)
        if gate is not None:
            await gate.wait()
        if endpoint not in self.responses:
            raise RequestFailed("not found", endpoint=endpoint, status_code=404)
        response = self.responses[endpoint]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(args)
        return response


class RecordingStore(Store):
    """Store that keeps every applied action, in order"""

    def __init__(self, reducer: Reducer = None, state: Any = None):
        self.actions: List[Action] = []
        super().__init__(reducer, state)

    def _apply(self, action: Action):
        self.actions.append(action)
        super()._apply(action)


class SagaTester:
    """Utility for testing sagas: a registry, a recording store and a scheduler wired together"""

    def __init__(self, reducer: Reducer = None, *, config: SagaConfig = None):
        self.registry = WatcherRegistry()
        self.store = RecordingStore(reducer)
        self.scheduler = EffectScheduler(self.store, self.registry, config)

    async def __aenter__(self):
        await self.scheduler.__aenter__()
        return self

    async def __aexit__(self, *exc_info):
        return await self.scheduler.__aexit__(*exc_info)

    def register(self, *args, **kwargs):
        return self.registry.register(*args, **kwargs)

    def dispatch(self, action: Action) -> Action:
        return self.scheduler.dispatch(action)

    async def settle(self):
        await self.scheduler.wait_idle()

    @property
    def actions(self) -> List[Action]:
        return self.store.actions

    def types(self, lifecycle: Optional[Lifecycle] = None) -> List[str]:
        return [action.type for action in self.of(lifecycle)]

    def of(self, lifecycle: Optional[Lifecycle] = None, where: Callable[[Action], bool] = None) -> List[Action]:
        actions = self.actions
        if lifecycle is not None:
            actions = [action for action in actions if lifecycle.owns(action)]
        if where is not None:
            actions = [action for action in actions if where(action)]
        return actions

    @property
    def state(self):
        return self.store.get_state()
