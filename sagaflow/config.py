"""Runtime configuration for sagaflow."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from .errors import SagaConfigError

ENV_PREFIX = "SAGAFLOW_"

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


def _parse_flag(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise SagaConfigError(f"{name}={raw!r} is not a boolean")


@dataclasses.dataclass(frozen=True)
class SagaConfig:
    """Scheduler configuration.

    Parameters
    ----------
    unexpected_error : str
        Error message put in the ``_FAILED`` payload when a handler raises.
        The raw exception is logged, never dispatched.
    missing_result_error : str
        Error message used when a handler finishes without dispatching a
        terminal lifecycle action.
    join_failed_error : str
        Fallback message for aggregate join failures whose member payload
        carries no ``error`` field.
    log_cancellations : bool
        Log a debug record each time an instance is cancelled.
    """

    unexpected_error: str = "Unexpected error"
    missing_result_error: str = "Effect finished without a result"
    join_failed_error: str = "A dependent request failed"
    log_cancellations: bool = True

    @classmethod
    def from_env(cls, **overrides: Any) -> SagaConfig:
        """Read each field from ``SAGAFLOW_<FIELD>``, e.g. ``SAGAFLOW_LOG_CANCELLATIONS``.

        Explicit keyword arguments win over the environment.
        """
        values: dict[str, Any] = {}
        for field in dataclasses.fields(cls):
            name = ENV_PREFIX + field.name.upper()
            raw = os.environ.get(name)
            if raw is None or field.name in overrides:
                continue
            values[field.name] = _parse_flag(name, raw) if field.type == "bool" else raw
        values.update(overrides)
        return cls(**values)
