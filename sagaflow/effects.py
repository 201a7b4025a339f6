from typing import TypeVar, Generic, Any, Callable, Iterable, Union
from dataclasses import dataclass, field
from .actions import Action, RequestId

T = TypeVar('T')


class Effect(Generic[T]):
    """Base class for all effects"""
    pass


@dataclass(init=False)
class Call(Effect[T]):
    fn: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = None

    def __init__(self, fn: Callable[..., Any], *args, **kwargs):
        self.fn = fn
        self.args = args
        self.kwargs = kwargs if kwargs else None


@dataclass
class Put(Effect[Action]):
    action: Action


@dataclass
class Take(Effect[Action]):
    pattern: Union[str, Callable[[Action], bool]]  # tag or predicate

    def matches(self, action: Action) -> bool:
        if isinstance(self.pattern, str):
            return action.type == self.pattern
        return bool(self.pattern(action))


@dataclass
class Select(Effect[Any]):
    selector: Callable[[Any], Any] = None


@dataclass
class All(Effect[list]):
    effects: list[Effect]


@dataclass
class Race(Effect[dict]):
    effects: dict[str, Effect]


@dataclass
class Join(Effect[dict]):
    """Wait for every request in ``members`` to settle.

    ``dispatch`` holds trigger actions sent after the join subscribes, so no
    member can settle unobserved.
    """
    members: Iterable[RequestId]
    dispatch: tuple[Action, ...] = field(default_factory=tuple)
