"""Authentication effects.

The session token lives in an http-only cookie the application cannot read,
so the auth-check effect is the only way to learn who is signed in. Its
terminal actions are the sole writers of the :class:`AuthSlice`.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Optional

from .actions import Action, Lifecycle
from .decorators import saga
from .effects import Call, Put
from .errors import RequestFailed
from .registry import Policy, WatcherRegistry
from .request import RequestCapability

_logger = logging.getLogger(__name__)

CHECK_AUTH = Lifecycle("CHECK_AUTH")
LOGIN = Lifecycle("LOGIN")
REGISTER = Lifecycle("REGISTER")

NOT_AUTHENTICATED = "Not authenticated"
INVALID_CREDENTIALS = "Invalid credentials"
REGISTRATION_FAILED = "Registration failed"


@dataclass(frozen=True)
class AuthSlice:
    username: Optional[str] = None
    checked: bool = False

    @property
    def authenticated(self) -> bool:
        return self.username is not None


def auth_reducer(state: Optional[AuthSlice], action: Action) -> AuthSlice:
    """Only the auth-check terminal actions touch the slice."""
    state = state or AuthSlice()
    match action.type:
        case CHECK_AUTH.succeeded:
            return AuthSlice(username=action.payload["username"], checked=True)
        case CHECK_AUTH.failed:
            return AuthSlice(username=None, checked=True)
    return state


def _username(data) -> Optional[str]:
    if isinstance(data, Mapping):
        username = data.get("username")
        if isinstance(username, str) and username:
            return username
    return None


class AuthEffects:
    """Handlers for the check-auth, login and registration requests.

    Login and registration only set the session cookie; they never report an
    identity themselves but start a new auth check once they succeed.
    """

    def __init__(
        self,
        request: RequestCapability,
        *,
        whoami_endpoint: str = "/auth/me",
        login_endpoint: str = "/auth/login",
        register_endpoint: str = "/auth/register",
    ):
        self.request = request
        self.whoami_endpoint = whoami_endpoint
        self.login_endpoint = login_endpoint
        self.register_endpoint = register_endpoint

    def register(self, registry: WatcherRegistry) -> WatcherRegistry:
        registry.register(CHECK_AUTH.started, self.check_auth, Policy.LATEST)
        # A double-submitted form must not post twice
        registry.register(LOGIN.started, self.login, Policy.FIRST)
        registry.register(REGISTER.started, self.register_user, Policy.FIRST)
        return registry

    @saga(CHECK_AUTH)
    async def check_auth(self, action: Action):
        try:
            data = yield Call(self.request.call, self.whoami_endpoint)
        except RequestFailed as exc:
            _logger.debug("Auth check failed: %s", exc.reason)
            yield Put(CHECK_AUTH.fail(NOT_AUTHENTICATED))
            return

        username = _username(data)
        if username is None:
            yield Put(CHECK_AUTH.fail(NOT_AUTHENTICATED))
        else:
            yield Put(CHECK_AUTH.succeed({"username": username}))

    @saga(LOGIN)
    async def login(self, action: Action):
        credentials = action.payload or {}
        try:
            yield Call(
                self.request.call,
                self.login_endpoint,
                {"username": credentials.get("username"), "password": credentials.get("password")},
            )
        except RequestFailed as exc:
            _logger.debug("Login failed: %s", exc.reason)
            yield Put(LOGIN.fail(INVALID_CREDENTIALS))
            return

        yield Put(LOGIN.succeed())
        yield Put(CHECK_AUTH.start())

    @saga(REGISTER)
    async def register_user(self, action: Action):
        try:
            yield Call(self.request.call, self.register_endpoint, dict(action.payload or {}))
        except RequestFailed as exc:
            _logger.debug("Registration failed: %s", exc.reason)
            yield Put(REGISTER.fail(REGISTRATION_FAILED))
            return

        yield Put(REGISTER.succeed())
        yield Put(CHECK_AUTH.start())
