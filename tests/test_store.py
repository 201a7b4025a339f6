import pytest

from sagaflow.actions import Action, Lifecycle
from sagaflow.cancellation import CancellationToken
from sagaflow.config import SagaConfig
from sagaflow.errors import SagaConfigError
from sagaflow.store import Store, combine_reducers


def test_store_applies_actions_in_order():
    log = []

    def reducer(state, action):
        log.append(action.type)
        if action.type == "PING":
            store.dispatch(Action("PONG"))
        return state

    store = Store(reducer)
    store.dispatch(Action("PING"))
    store.dispatch(Action("DONE"))

    # PONG is queued until PING has been applied
    assert log == ["@@INIT", "PING", "PONG", "DONE"]


def test_reducer_error_discards_queued_actions():
    log = []

    def reducer(state, action):
        log.append(action.type)
        if action.type == "BOOM":
            store.dispatch(Action("QUEUED"))
            raise ValueError("reducer failed")
        return state

    store = Store(reducer)
    with pytest.raises(ValueError):
        store.dispatch(Action("BOOM"))
    store.dispatch(Action("NEXT"))

    assert log == ["@@INIT", "BOOM", "NEXT"]


def test_combine_reducers_keeps_state_identity_when_unchanged():
    def counter(state, action):
        state = state or 0
        return state + 1 if action.type == "INC" else state

    reducer = combine_reducers({"a": counter, "b": counter})
    store = Store(reducer)
    before = store.get_state()

    store.dispatch(Action("NOOP"))
    assert store.get_state() is before

    store.dispatch(Action("INC"))
    assert store.get_state() == {"a": 1, "b": 1}


@pytest.mark.asyncio
async def test_subscription_filters_and_closes():
    store = Store()

    async with store.subscribe(lambda a: a.type.startswith("KEEP")) as actions:
        store.dispatch(Action("DROP"))
        store.dispatch(Action("KEEP_1"))
        store.dispatch(Action("KEEP_2"))
        assert await actions.receive() == Action("KEEP_1")
        assert await actions.receive() == Action("KEEP_2")

    assert store._subscriptions == []
    store.dispatch(Action("KEEP_3"))


@pytest.mark.asyncio
async def test_subscription_iteration_ends_on_close():
    store = Store()
    subscription = store.subscribe()
    store.dispatch(Action("ONE"))
    seen = []

    async for action in subscription:
        seen.append(action.type)
        subscription.close()

    assert seen == ["ONE"]


def test_lifecycle_tags_and_creators():
    auth = Lifecycle("CHECK_AUTH")

    assert auth.tags == ("CHECK_AUTH_STARTED", "CHECK_AUTH_SUCCEEDED", "CHECK_AUTH_FAILED")
    assert auth.fail(RuntimeError("x")).payload == {"error": "x"}
    assert auth.succeed({"username": "alice"}, request_id=auth.request()).request_id == auth.request()
    assert auth.is_terminal(auth.fail("x"))
    assert not auth.is_terminal(auth.start())
    assert str(auth.request(3)) == "CHECK_AUTH:3"


def test_cancellation_token():
    token = CancellationToken()
    assert not token.cancelled

    assert token.cancel("superseded")
    assert not token.cancel("again")
    assert token.cancelled
    assert token.reason == "superseded"


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("SAGAFLOW_UNEXPECTED_ERROR", "Try again later")
    monkeypatch.setenv("SAGAFLOW_LOG_CANCELLATIONS", "off")

    config = SagaConfig.from_env(join_failed_error="Nope")

    assert config.unexpected_error == "Try again later"
    assert config.log_cancellations is False
    assert config.join_failed_error == "Nope"
    assert config.missing_result_error == SagaConfig().missing_result_error


def test_config_from_env_rejects_bad_flag(monkeypatch):
    monkeypatch.setenv("SAGAFLOW_LOG_CANCELLATIONS", "sometimes")

    with pytest.raises(SagaConfigError):
        SagaConfig.from_env()

    assert SagaConfig.from_env(log_cancellations=False).log_cancellations is False
