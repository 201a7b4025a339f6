from typing import Optional


class CancellationToken:
    """Cooperative cancellation signal polled by a running effect instance.

    Cancelling never interrupts an external call already in progress; the
    instance observes the flag at its next suspension point and unwinds.
    """

    def __init__(self):
        self._cancelled = False
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "cancelled") -> bool:
        """Request cancellation. Returns False if it was already requested."""
        if self._cancelled:
            return False
        self._cancelled = True
        self.reason = reason
        return True

    def __repr__(self):
        state = f"cancelled: {self.reason}" if self._cancelled else "active"
        return f"<CancellationToken {state}>"
