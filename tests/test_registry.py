import pytest

from sagaflow.actions import Action, Lifecycle
from sagaflow.decorators import saga
from sagaflow.effects import Put
from sagaflow.errors import DuplicateWatcherError, RegistryClosedError, SagaConfigError
from sagaflow.registry import Policy, WatcherRegistry

PING = Lifecycle("PING")


@saga(PING)
async def ping(action):
    yield Put(PING.succeed())


@saga(PING)
async def other_ping(action):
    yield Put(PING.succeed())


def test_register_and_resolve():
    registry = WatcherRegistry()
    entry = registry.register(PING.started, ping, Policy.LATEST)

    assert registry.resolve(Action(PING.started)) is entry
    assert registry.resolve(Action("UNKNOWN")) is None
    assert entry.lifecycle == PING
    assert entry.policy is Policy.LATEST
    assert PING.started in registry
    assert len(registry) == 1


def test_policy_accepts_plain_strings():
    registry = WatcherRegistry()
    entry = registry.register(PING.started, ping, "first")

    assert entry.policy is Policy.FIRST


def test_same_binding_twice_is_a_noop():
    registry = WatcherRegistry()
    first = registry.register(PING.started, ping, Policy.EVERY)

    assert registry.register(PING.started, ping, Policy.EVERY) is first
    assert len(registry) == 1


def test_conflicting_policy_raises():
    registry = WatcherRegistry()
    registry.register(PING.started, ping, Policy.EVERY)

    with pytest.raises(DuplicateWatcherError) as excinfo:
        registry.register(PING.started, ping, Policy.LATEST)

    assert excinfo.value.trigger == PING.started
    assert excinfo.value.existing.policy is Policy.EVERY


def test_conflicting_handler_raises():
    registry = WatcherRegistry()
    registry.register(PING.started, ping, Policy.EVERY)

    with pytest.raises(DuplicateWatcherError):
        registry.register(PING.started, other_ping, Policy.EVERY)


def test_handler_needs_a_lifecycle():
    async def bare(action):
        yield Put(PING.succeed())

    registry = WatcherRegistry()
    with pytest.raises(SagaConfigError):
        registry.register("BARE", bare, Policy.EVERY)

    entry = registry.register("BARE", bare, Policy.EVERY, lifecycle=PING)
    assert entry.lifecycle == PING


def test_handler_must_be_async_generator():
    async def coroutine(action):
        return None

    with pytest.raises(SagaConfigError):
        WatcherRegistry().register("X", coroutine, Policy.EVERY, lifecycle=PING)

    with pytest.raises(SagaConfigError):
        saga(PING)(coroutine)


def test_request_id_uses_key():
    registry = WatcherRegistry()
    entry = registry.register(PING.started, ping, Policy.EVERY, key=lambda a: a.payload["id"])

    assert entry.request_id(Action(PING.started, {"id": 7})) == PING.request(7)


def test_watch_decorator():
    registry = WatcherRegistry()

    @registry.watch("PONG", Policy.EVERY, lifecycle=PING)
    async def pong(action):
        yield Put(PING.succeed())

    assert registry.resolve(Action("PONG")).handler is pong


def test_unregister_and_close():
    registry = WatcherRegistry()
    registry.register(PING.started, ping, Policy.EVERY)

    assert registry.unregister(PING.started).handler is ping
    assert registry.unregister(PING.started) is None

    registry.register(PING.started, ping, Policy.EVERY)
    registry.close()
    assert registry.closed
    assert len(registry) == 0
    with pytest.raises(RegistryClosedError):
        registry.register(PING.started, ping, Policy.EVERY)
