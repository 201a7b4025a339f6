import inspect

from .actions import Lifecycle
from .errors import SagaConfigError


def saga(lifecycle: Lifecycle):
    """Decorator to mark async generator functions as the handler of ``lifecycle``"""

    def decorator(func):
        if not inspect.isasyncgenfunction(func):
            raise SagaConfigError(f"{func.__qualname__} must be an async generator function")
        func.lifecycle = lifecycle
        return func

    return decorator
