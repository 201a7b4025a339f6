"""Book page effects.

A book view depends on three independent endpoints (images, metadata and
ratings). ``BOOK_DETAILS`` joins the three fetches and settles once, so the
view renders either the complete book or a single error, never partial data.
"""

import logging
from typing import Any, Optional

from .actions import Action, Lifecycle
from .decorators import saga
from .effects import Call, Join, Put
from .errors import JoinFailedError, RequestFailed
from .registry import Policy, WatcherRegistry
from .request import RequestCapability

_logger = logging.getLogger(__name__)

BOOK_IMAGES = Lifecycle("BOOK_IMAGES")
BOOK_META = Lifecycle("BOOK_META")
BOOK_RATINGS = Lifecycle("BOOK_RATINGS")
BOOK_DETAILS = Lifecycle("BOOK_DETAILS")

# lifecycle -> (endpoint template, key in the aggregate payload)
SOURCES = {
    BOOK_IMAGES: ("/books/{book_id}/images", "images"),
    BOOK_META: ("/books/{book_id}/meta", "meta"),
    BOOK_RATINGS: ("/books/{book_id}/ratings", "ratings"),
}

LOAD_FAILED = "Could not load book"

_BY_TRIGGER = {lifecycle.started: lifecycle for lifecycle in SOURCES}


def book_key(action: Action):
    return (action.payload or {}).get("book_id")


def book_details_reducer(state: Optional[dict], action: Action) -> dict:
    """Per-book view state: ``pending``, ``ready`` (with data) or ``error``."""
    state = state or {}
    match action.type:
        case BOOK_DETAILS.started:
            return {**state, book_key(action): {"status": "pending"}}
        case BOOK_DETAILS.succeeded:
            book_id = action.payload["book_id"]
            return {**state, book_id: {"status": "ready", "data": action.payload}}
        case BOOK_DETAILS.failed:
            book_id = action.request_id.key if action.request_id else None
            return {**state, book_id: {"status": "error", "error": action.payload["error"]}}
    return state


class BookEffects:

    def __init__(self, request: RequestCapability):
        self.request = request

    def register(self, registry: WatcherRegistry) -> WatcherRegistry:
        for lifecycle in SOURCES:
            registry.register(lifecycle.started, self.fetch, Policy.EVERY, lifecycle=lifecycle, key=book_key)
        registry.register(BOOK_DETAILS.started, self.details, Policy.EVERY, key=book_key)
        return registry

    async def fetch(self, action: Action):
        lifecycle = _BY_TRIGGER[action.type]
        book_id = book_key(action)
        endpoint, _ = SOURCES[lifecycle]
        try:
            data = yield Call(self.request.call, endpoint.format(book_id=book_id))
        except RequestFailed as exc:
            _logger.debug("%s for book %s failed: %s", lifecycle.name, book_id, exc.reason)
            yield Put(lifecycle.fail(LOAD_FAILED))
            return
        yield Put(lifecycle.succeed(data))

    @saga(BOOK_DETAILS)
    async def details(self, action: Action):
        book_id = book_key(action)
        members = {lifecycle.request(book_id): name for lifecycle, (_, name) in SOURCES.items()}
        triggers = tuple(lifecycle.start({"book_id": book_id}) for lifecycle in SOURCES)
        try:
            results = yield Join(members, dispatch=triggers)
        except JoinFailedError as exc:
            error = exc.payload.get("error") if isinstance(exc.payload, dict) else None
            yield Put(BOOK_DETAILS.fail(error or LOAD_FAILED, source=exc.request_id.name))
            return

        payload: dict[str, Any] = {"book_id": book_id}
        for request_id, data in results.items():
            payload[members[request_id]] = data
        yield Put(BOOK_DETAILS.succeed(payload))
