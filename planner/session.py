"""Client-side authentication state.

A SessionManager is created once at application start and handed to the
view layer. It is the only writer of the persisted tokens: login and
register store them, logout and a rejected bootstrap remove them.
Views observe changes through subscribe().
"""
import logging
from typing import Callable, Optional

from planner.domain import AuthResponse, TokenPair, User
from planner.errors import SessionError
from planner.events import (
    Event, EventBus, SESSION_EVENTS,
    SESSION_RESTORED, SESSION_REJECTED, SESSION_READY,
    LOGGED_IN, REGISTERED, LOGGED_OUT, USER_UPDATED,
)
from planner.services import AuthService
from planner.state import Authenticated, SessionState, Unauthenticated
from planner.storage import TokenStore

logger = logging.getLogger(__name__)


class SessionManager:

    def __init__(self, auth: AuthService, store: TokenStore, bus: Optional[EventBus] = None):
        self.auth = auth
        self.store = store
        self.bus = bus if bus is not None else EventBus()
        self._state: SessionState = Unauthenticated()
        # loading only while a persisted token waits to be validated
        self._is_loading = store.load_tokens() is not None
        self._bootstrapped = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def user(self) -> Optional[User]:
        return self._state.user

    @property
    def tokens(self) -> Optional[TokenPair]:
        return self._state.tokens

    @property
    def is_authenticated(self) -> bool:
        return self._state.is_authenticated

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    def subscribe(self, handler: Callable[[Event, dict], None]) -> None:
        for name in SESSION_EVENTS:
            self.bus.subscribe(name, handler)

    def unsubscribe(self, handler: Callable[[Event, dict], None]) -> None:
        for name in SESSION_EVENTS:
            self.bus.unsubscribe(name, handler)

    def _publish(self, name: str) -> None:
        self.bus.publish(name, {
            "is_loading": self._is_loading,
            "is_authenticated": self._state.is_authenticated,
            "user": self._state.user,
        })

    async def bootstrap(self) -> SessionState:
        """Restore the session from persisted tokens.

        Never raises: an expired, revoked or unreachable session just
        leaves the client logged out with the stored tokens removed.
        Only the first call does any work.
        """
        if self._bootstrapped:
            return self._state
        self._bootstrapped = True

        tokens = self.store.load_tokens()
        if tokens is None:
            self._is_loading = False
            self._publish(SESSION_READY)
            return self._state

        try:
            user = await self.auth.get_profile(tokens.access_token)
        except Exception:
            logger.debug("Stored session rejected", exc_info=True)
            # a login that finished meanwhile owns the store now
            if self.store.load_tokens() == tokens:
                self.store.clear_tokens()
            self._is_loading = False
            self._publish(SESSION_REJECTED)
        else:
            self._is_loading = False
            # a logout or login that finished meanwhile wins over this fetch
            if self.store.load_tokens() == tokens and not self._state.is_authenticated:
                self._state = Authenticated(user, tokens)
                logger.info("Session restored for %s", user.email)
                self._publish(SESSION_RESTORED)

        self._publish(SESSION_READY)
        return self._state

    def _establish(self, response: AuthResponse, event: str) -> User:
        self.store.save_tokens(response.tokens)
        self._state = Authenticated(response.user, response.tokens)
        logger.info("Signed in as %s", response.user.email)
        self._publish(event)
        return response.user

    async def login(self, email: str, password: str) -> User:
        response = await self.auth.login(email, password)
        return self._establish(response, LOGGED_IN)

    async def register(self, email: str, password: str, name: Optional[str] = None) -> User:
        response = await self.auth.register(email, password, name)
        return self._establish(response, REGISTERED)

    async def logout(self) -> None:
        """Clear the session locally, then tell the backend.

        The remote call is advisory; its failure is logged and ignored.
        """
        tokens = self.store.load_tokens()
        refresh_token = tokens.refresh_token if tokens else None

        self.store.clear_tokens()
        self._state = Unauthenticated()
        logger.info("Signed out")
        self._publish(LOGGED_OUT)

        if refresh_token:
            try:
                await self.auth.logout(refresh_token, access_token=tokens.access_token)
            except Exception as e:
                logger.warning("Remote logout failed, local session already cleared: %s", e)

    def update_user(self, user: User) -> None:
        if not isinstance(user, User):
            raise TypeError(f"Expected User, got {type(user).__name__}")
        if not isinstance(self._state, Authenticated):
            raise SessionError("Cannot update the profile of a signed-out session")
        self._state = self._state.with_user(user)
        self._publish(USER_UPDATED)

    async def save_profile(
        self,
        name: Optional[str] = None,
        language: Optional[str] = None,
        currency_code: Optional[str] = None,
    ) -> User:
        if not self.is_authenticated:
            raise SessionError("Sign in before editing the profile")
        user = await self.auth.update_profile(name=name, language=language, currency_code=currency_code)
        self.update_user(user)
        return user
