from typing import Any, Protocol


class RequestCapability(Protocol):
    """Opaque transport used by handlers to reach external APIs.

    ``call`` returns the response data on success and raises
    :class:`sagaflow.errors.RequestFailed` on any failure (network fault,
    non-2xx status, timeout). Timeouts are the transport's own concern.
    """

    async def call(self, endpoint: str, args: Any = None) -> Any: ...
