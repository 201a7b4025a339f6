"""Join several independently scheduled requests into one settle event.

A join subscribes to the terminal lifecycle actions of its members and
settles once:

* every member succeeded: the result maps each :class:`RequestId` to its
  SUCCEEDED payload;
* any member failed: the first failure observed wins, every member still
  pending is cancelled, and outcomes arriving afterwards are discarded.
"""

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, Optional

from anyio import Event

from .actions import Action, Lifecycle, RequestId, SUCCEEDED, FAILED
from .errors import JoinCancelledError, JoinFailedError

if TYPE_CHECKING:
    from .runtime import EffectScheduler

_logger = logging.getLogger(__name__)


class JoinState(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class JoinHandle:
    """Future-like view of one join group. ``await handle`` for the results."""

    def __init__(self, members: frozenset[RequestId], lifecycle: Optional[Lifecycle] = None):
        self.members = members
        self.lifecycle = lifecycle
        self.results: dict[RequestId, Any] = {}
        self.failure: Optional[tuple[RequestId, Any]] = None
        self.state = JoinState.PENDING
        self._settled = Event()
        self._subscription = None

    @property
    def pending(self) -> frozenset[RequestId]:
        if self.done:
            return frozenset()
        return frozenset(member for member in self.members if member not in self.results)

    @property
    def done(self) -> bool:
        return self.state is not JoinState.PENDING

    async def wait(self) -> dict[RequestId, Any]:
        await self._settled.wait()
        if self.state is JoinState.FAILED:
            raise JoinFailedError(*self.failure)
        if self.state is JoinState.CANCELLED:
            raise JoinCancelledError(f"join over {sorted(map(str, self.members))} was cancelled")
        return dict(self.results)

    def __await__(self):
        return self.wait().__await__()

    def cancel(self) -> bool:
        return self._finish(JoinState.CANCELLED)

    def _finish(self, state: JoinState) -> bool:
        if self.done:
            return False
        self.state = state
        if self._subscription is not None:
            self._subscription.close()
        self._settled.set()
        return True

    def __repr__(self):
        return f"<JoinHandle {len(self.members)} member(s) {self.state.value}>"


def _outcome(action: Action) -> Optional[str]:
    request_id = action.request_id
    if request_id is None:
        return None
    if action.type == f"{request_id.name}_{SUCCEEDED}":
        return SUCCEEDED
    if action.type == f"{request_id.name}_{FAILED}":
        return FAILED
    return None


class JoinCombinator:
    """Creates join groups and settles them from the store's action stream."""

    def __init__(self, scheduler: "EffectScheduler"):
        self.scheduler = scheduler
        self._pending: set[JoinHandle] = set()

    def join(
        self,
        members: Iterable[RequestId],
        *,
        dispatch: Iterable[Action] = (),
        lifecycle: Lifecycle = None,
    ) -> JoinHandle:
        handle = JoinHandle(frozenset(members), lifecycle)
        if lifecycle is not None:
            self.scheduler.dispatch(lifecycle.start({"members": sorted(map(str, handle.members))}))

        if not handle.members:
            self._settle(handle, JoinState.SUCCEEDED)
            return handle

        handle._subscription = self.scheduler.store.subscribe(
            lambda action: action.request_id in handle.members and _outcome(action) is not None
        )
        self._pending.add(handle)
        self.scheduler.start_soon(self._observe, handle, name=f"join:{len(handle.members)}")
        for action in dispatch:
            self.scheduler.dispatch(action)
        return handle

    async def _observe(self, handle: JoinHandle):
        try:
            async for action in handle._subscription:
                if handle.done:
                    break
                self.record(handle, action)
                if handle.done:
                    break
        finally:
            self._pending.discard(handle)

    def record(self, handle: JoinHandle, action: Action):
        """Record one member's terminal action and settle the group if it can."""
        request_id = action.request_id
        if handle.done or request_id not in handle.pending:
            return

        if _outcome(action) == FAILED:
            handle.failure = (request_id, action.payload)
            for member in handle.pending - {request_id}:
                self.scheduler.cancel(member, reason=f"{request_id} failed")
            _logger.debug("Join failed on %s", request_id)
            self._settle(handle, JoinState.FAILED)
            return

        handle.results[request_id] = action.payload
        if not handle.pending:
            self._settle(handle, JoinState.SUCCEEDED)

    def _settle(self, handle: JoinHandle, state: JoinState):
        if not handle._finish(state) or handle.lifecycle is None:
            return
        if state is JoinState.SUCCEEDED:
            self.scheduler.dispatch(handle.lifecycle.succeed(dict(handle.results)))
        else:
            request_id, payload = handle.failure
            error = payload.get("error") if isinstance(payload, dict) else None
            self.scheduler.dispatch(
                handle.lifecycle.fail(error or self.scheduler.config.join_failed_error, request=request_id)
            )

    def cancel_all(self):
        for handle in list(self._pending):
            handle.cancel()
        self._pending.clear()
