import inspect
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

from anyio import CancelScope, create_task_group

from .actions import Action
from .cancellation import CancellationToken
from .effects import Effect, Call, Put, Take, Select, All, Race, Join
from .registry import WatcherEntry

if TYPE_CHECKING:
    from .runtime import EffectScheduler

_logger = logging.getLogger(__name__)


class InstanceState(str, Enum):
    IDLE = "idle"
    STARTED = "started"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({InstanceState.SUCCEEDED, InstanceState.FAILED, InstanceState.CANCELLED})


class EffectInstance:
    """One running invocation of a watcher's handler.

    Drives the handler's generator, performs the effects it yields and
    enforces the lifecycle: one STARTED, then exactly one of SUCCEEDED or
    FAILED, or nothing at all once cancelled.
    """

    def __init__(self, scheduler: "EffectScheduler", entry: WatcherEntry, trigger: Action):
        self.scheduler = scheduler
        self.entry = entry
        self.trigger = trigger
        self.lifecycle = entry.lifecycle
        self.request_id = entry.request_id(trigger)
        self.token = CancellationToken()
        self.state = InstanceState.IDLE

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    def cancel(self, reason: str = "cancelled") -> bool:
        if self.done or not self.token.cancel(reason):
            return False
        if self.scheduler.config.log_cancellations:
            _logger.debug("Cancelling %s (%s)", self.request_id, reason)
        return True

    async def run(self):
        gen = None
        try:
            if self._checkpoint():
                return
            self._start()
            gen = self.entry.handler(self.trigger)
            value, error = None, None
            while True:
                try:
                    if error is not None:
                        effect = await gen.athrow(error)
                    else:
                        effect = await gen.asend(value)
                except StopAsyncIteration:
                    break
                value, error = None, None
                if self._checkpoint():
                    return
                try:
                    value = await self._perform(effect)
                except Exception as exc:
                    error = exc
                if self._checkpoint():
                    return
            if not self.done:
                _logger.warning("%s finished without a terminal action", self.request_id)
                self._settle(self.lifecycle.fail(self.scheduler.config.missing_result_error))
        except Exception:
            _logger.exception("Effect %s raised", self.request_id)
            if not self.done and not self._checkpoint():
                self._settle(self.lifecycle.fail(self.scheduler.config.unexpected_error))
        finally:
            if gen is not None:
                with CancelScope(shield=True):
                    try:
                        await gen.aclose()
                    except Exception:
                        # Already settled or cancelled: log only, dispatch nothing
                        _logger.exception("Effect %s failed while unwinding", self.request_id)
            if not self.done:
                self.state = InstanceState.CANCELLED
            self.scheduler._retire(self)

    def _checkpoint(self) -> bool:
        """Poll the token; True means unwind without dispatching anything."""
        if self.token.cancelled and not self.done:
            self.state = InstanceState.CANCELLED
        return self.state is InstanceState.CANCELLED

    def _start(self):
        self.state = InstanceState.STARTED
        # The trigger may itself be this request's STARTED action
        if self.trigger.type != self.lifecycle.started:
            self._dispatch(self.lifecycle.start(self.trigger.payload))

    def _dispatch(self, action: Action) -> Action:
        if self.lifecycle.owns(action) and action.request_id is None:
            action = action.with_meta(request_id=self.request_id)
        return self.scheduler.dispatch(action)

    def _settle(self, action: Action) -> Action:
        self.state = InstanceState.SUCCEEDED if action.type == self.lifecycle.succeeded else InstanceState.FAILED
        return self._dispatch(action)

    def _put(self, action: Action) -> Action:
        if not self.lifecycle.is_terminal(action):
            return self._dispatch(action)
        if self._checkpoint():
            return action
        if self.done:
            _logger.warning("Dropping second terminal action %s from %s", action.type, self.request_id)
            return action
        return self._settle(action)

    async def _perform(self, effect: Effect) -> Any:
        """Handle a saga effect."""
        match effect:
            case Call(fn, args, kwargs):
                result = fn(*args, **(kwargs or {}))
                if inspect.isawaitable(result):
                    result = await result
                return result

            case Put(action):
                return self._put(action)

            case Take():
                async with self.scheduler.store.subscribe(effect.matches) as actions:
                    return await actions.receive()

            case Select(selector):
                state = self.scheduler.store.get_state()
                return selector(state) if selector else state

            case All(effects):
                return await self._all(effects)

            case Race(effects):
                return await self._race(effects)

            case Join(members, dispatch):
                return await self.scheduler.join(members, dispatch=dispatch)

            case _:
                raise TypeError(f"{self.entry.handler.__qualname__} yielded {effect!r}, not an effect")

    async def _all(self, effects: list[Effect]) -> list:
        results = [None] * len(effects)
        failure = None

        async with create_task_group() as tg:
            async def run_effect(index: int, effect: Effect):
                nonlocal failure
                try:
                    results[index] = await self._perform(effect)
                except Exception as exc:
                    if failure is None:
                        failure = exc
                    tg.cancel_scope.cancel()

            for index, effect in enumerate(effects):
                tg.start_soon(run_effect, index, effect)

        if failure is not None:
            raise failure
        return results

    async def _race(self, effects: dict[str, Effect]) -> dict[str, Any]:
        """Handle racing between multiple effects."""
        results = {}
        failure = None

        async with create_task_group() as tg:
            async def run_effect(key: str, effect: Effect):
                nonlocal failure
                try:
                    result = await self._perform(effect)
                except Exception as exc:
                    if not results and failure is None:
                        failure = exc
                else:
                    if not results and failure is None:
                        results[key] = result
                tg.cancel_scope.cancel()  # Cancel other tasks

            for key, effect in effects.items():
                tg.start_soon(run_effect, key, effect)

        if failure is not None:
            raise failure
        return results

    def __repr__(self):
        return f"<EffectInstance {self.request_id} {self.state.value}>"
