from .actions import Action, Lifecycle, RequestId
from .cancellation import CancellationToken
from .config import SagaConfig
from .decorators import saga
from .effects import Effect, Call, Put, Take, Select, All, Race, Join
from .errors import (
    DuplicateWatcherError,
    JoinCancelledError,
    JoinFailedError,
    RegistryClosedError,
    RequestFailed,
    SagaConfigError,
    SagaError,
    SchedulerNotRunningError,
)
from .handler import EffectInstance, InstanceState
from .join import JoinCombinator, JoinHandle, JoinState
from .registry import Policy, WatcherEntry, WatcherRegistry
from .request import RequestCapability
from .runtime import EffectScheduler
from .store import Store, StoreBridge, Subscription, combine_reducers

__all__ = [
    "Action",
    "All",
    "Call",
    "CancellationToken",
    "DuplicateWatcherError",
    "Effect",
    "EffectInstance",
    "EffectScheduler",
    "InstanceState",
    "Join",
    "JoinCancelledError",
    "JoinCombinator",
    "JoinFailedError",
    "JoinHandle",
    "JoinState",
    "Lifecycle",
    "Policy",
    "Put",
    "Race",
    "RegistryClosedError",
    "RequestCapability",
    "RequestFailed",
    "RequestId",
    "SagaConfig",
    "SagaConfigError",
    "SagaError",
    "SchedulerNotRunningError",
    "Select",
    "Store",
    "StoreBridge",
    "Subscription",
    "Take",
    "WatcherEntry",
    "WatcherRegistry",
    "combine_reducers",
    "saga",
]
