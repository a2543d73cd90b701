import asyncio

import pytest

from planner.domain import AuthResponse, TokenPair, User
from planner.errors import ApiError, SessionError, TransportError
from planner.events import LOGGED_IN, LOGGED_OUT, SESSION_READY, SESSION_REJECTED, SESSION_RESTORED, USER_UPDATED
from planner.session import SessionManager
from planner.state import Authenticated, Unauthenticated
from planner.storage import MemoryTokenStore


ALICE = User(id="u1", email="alice@example.com", name="Alice", role="USER", language="en", currency_code="USD")
TOKENS = TokenPair(access_token="acc-1", refresh_token="ref-1")


class FakeAuth:
    def __init__(self, profile=ALICE, profile_error=None, login_error=None, logout_error=None, update_error=None):
        self.profile = profile
        self.profile_error = profile_error
        self.login_error = login_error
        self.logout_error = logout_error
        self.update_error = update_error
        self.login_tokens = TOKENS
        # when set, get_profile waits on it
        self.profile_gate = None
        self.calls = []

    async def get_profile(self, access_token=None):
        self.calls.append(("get_profile", access_token))
        if self.profile_gate is not None:
            await self.profile_gate.wait()
        if self.profile_error:
            raise self.profile_error
        return self.profile

    async def login(self, email, password):
        self.calls.append(("login", email))
        if self.login_error:
            raise self.login_error
        return AuthResponse(tokens=self.login_tokens, user=ALICE)

    async def register(self, email, password, name=None):
        self.calls.append(("register", email, name))
        if self.login_error:
            raise self.login_error
        user = User(id="u2", email=email, name=name or "", role="USER", language="en", currency_code="USD")
        return AuthResponse(tokens=TokenPair("acc-2", "ref-2"), user=user)

    async def logout(self, refresh_token, access_token=None):
        self.calls.append(("logout", refresh_token, access_token))
        if self.logout_error:
            raise self.logout_error

    async def update_profile(self, name=None, language=None, currency_code=None):
        self.calls.append(("update_profile", name, language, currency_code))
        if self.update_error:
            raise self.update_error
        return User(id=ALICE.id, email=ALICE.email, name=name or ALICE.name, role=ALICE.role,
                    language=language or ALICE.language, currency_code=currency_code or ALICE.currency_code)


def stored_store():
    return MemoryTokenStore({"accessToken": "acc-1", "refreshToken": "ref-1"})


def assert_consistent(session):
    assert session.is_authenticated == (session.user is not None)


def test_is_loading_starts_false_without_token():
    session = SessionManager(FakeAuth(), MemoryTokenStore())
    assert session.is_loading is False
    assert session.state == Unauthenticated()


def test_is_loading_starts_true_with_token():
    session = SessionManager(FakeAuth(), stored_store())
    assert session.is_loading is True
    assert session.is_authenticated is False


@pytest.mark.asyncio
async def test_bootstrap_without_token_makes_no_call():
    auth = FakeAuth()
    session = SessionManager(auth, MemoryTokenStore())
    await session.bootstrap()
    assert auth.calls == []
    assert session.is_loading is False
    assert session.user is None
    assert_consistent(session)


@pytest.mark.asyncio
async def test_bootstrap_restores_user_from_stored_token():
    auth = FakeAuth()
    store = stored_store()
    session = SessionManager(auth, store)
    state = await session.bootstrap()
    assert auth.calls == [("get_profile", "acc-1")]
    assert state == Authenticated(ALICE, TOKENS)
    assert session.is_loading is False
    assert session.user == ALICE
    assert store.load_tokens() == TOKENS


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [
    ApiError(401, "Unauthorized"),
    TransportError("connection refused"),
    RuntimeError("anything else"),
])
async def test_bootstrap_rejection_clears_tokens_silently(error):
    store = stored_store()
    session = SessionManager(FakeAuth(profile_error=error), store)
    state = await session.bootstrap()
    assert state == Unauthenticated()
    assert session.is_loading is False
    assert session.user is None
    assert store.get("accessToken") is None
    assert store.get("refreshToken") is None
    assert_consistent(session)


@pytest.mark.asyncio
async def test_bootstrap_runs_once():
    auth = FakeAuth()
    session = SessionManager(auth, stored_store())
    await session.bootstrap()
    await session.bootstrap()
    assert len(auth.calls) == 1


@pytest.mark.asyncio
async def test_login_sets_user_and_tokens():
    store = MemoryTokenStore()
    session = SessionManager(FakeAuth(), store)
    user = await session.login("alice@example.com", "secret")
    assert user == ALICE
    assert session.user == ALICE
    assert session.tokens == TOKENS
    assert store.get("accessToken") == "acc-1"
    assert store.get("refreshToken") == "ref-1"
    assert_consistent(session)


@pytest.mark.asyncio
async def test_failed_login_leaves_state_untouched():
    store = MemoryTokenStore()
    session = SessionManager(FakeAuth(login_error=ApiError(401, "Invalid credentials")), store)
    with pytest.raises(ApiError) as exc:
        await session.login("alice@example.com", "wrong")
    assert exc.value.status_code == 401
    assert session.user is None
    assert store.load_tokens() is None
    assert_consistent(session)


@pytest.mark.asyncio
async def test_failed_login_keeps_existing_session():
    auth = FakeAuth()
    session = SessionManager(auth, MemoryTokenStore())
    await session.login("alice@example.com", "secret")
    auth.login_error = TransportError("network down")
    with pytest.raises(TransportError):
        await session.login("alice@example.com", "secret")
    assert session.user == ALICE
    assert session.tokens == TOKENS


@pytest.mark.asyncio
async def test_register_sets_user_and_tokens():
    auth = FakeAuth()
    store = MemoryTokenStore()
    session = SessionManager(auth, store)
    user = await session.register("bob@example.com", "secret", "Bob")
    assert auth.calls == [("register", "bob@example.com", "Bob")]
    assert user.name == "Bob"
    assert session.user == user
    assert store.load_tokens() == TokenPair("acc-2", "ref-2")


@pytest.mark.asyncio
async def test_logout_clears_everything():
    auth = FakeAuth()
    store = MemoryTokenStore()
    session = SessionManager(auth, store)
    await session.login("alice@example.com", "secret")
    await session.logout()
    assert ("logout", "ref-1", "acc-1") in auth.calls
    assert session.user is None
    assert store.load_tokens() is None
    assert_consistent(session)


@pytest.mark.asyncio
async def test_logout_clears_even_when_remote_call_fails():
    auth = FakeAuth(logout_error=TransportError("timeout"))
    store = MemoryTokenStore()
    session = SessionManager(auth, store)
    await session.login("alice@example.com", "secret")
    await session.logout()
    assert session.user is None
    assert store.get("accessToken") is None
    assert store.get("refreshToken") is None


@pytest.mark.asyncio
async def test_logout_twice_is_idempotent():
    auth = FakeAuth()
    store = MemoryTokenStore()
    session = SessionManager(auth, store)
    await session.login("alice@example.com", "secret")
    await session.logout()
    first = (session.state, store.load_tokens())
    await session.logout()
    assert (session.state, store.load_tokens()) == first
    # nothing left to revoke the second time
    assert [c for c in auth.calls if c[0] == "logout"] == [("logout", "ref-1", "acc-1")]


def test_update_user_replaces_user_but_not_tokens():
    session = SessionManager(FakeAuth(), MemoryTokenStore())
    session._state = Authenticated(ALICE, TOKENS)
    renamed = User(id="u1", email="alice@example.com", name="Alice B.", role="USER", language="pl", currency_code="PLN")
    session.update_user(renamed)
    assert session.user == renamed
    assert session.tokens == TOKENS


def test_update_user_requires_session():
    session = SessionManager(FakeAuth(), MemoryTokenStore())
    with pytest.raises(SessionError):
        session.update_user(ALICE)
    assert session.user is None


def test_update_user_rejects_non_user():
    session = SessionManager(FakeAuth(), MemoryTokenStore())
    session._state = Authenticated(ALICE, TOKENS)
    with pytest.raises(TypeError):
        session.update_user({"id": "u1"})
    assert session.user == ALICE


@pytest.mark.asyncio
async def test_save_profile_updates_user():
    auth = FakeAuth()
    session = SessionManager(auth, MemoryTokenStore())
    await session.login("alice@example.com", "secret")
    user = await session.save_profile(language="pl", currency_code="PLN")
    assert ("update_profile", None, "pl", "PLN") in auth.calls
    assert session.user == user
    assert user.language == "pl"


@pytest.mark.asyncio
async def test_failed_profile_update_changes_nothing():
    auth = FakeAuth(update_error=ApiError(400, "Invalid currency"))
    session = SessionManager(auth, MemoryTokenStore())
    await session.login("alice@example.com", "secret")
    with pytest.raises(ApiError):
        await session.save_profile(currency_code="XXX")
    assert session.user == ALICE


@pytest.mark.asyncio
async def test_subscribers_see_every_transition():
    seen = []

    def handler(event, payload):
        seen.append((event.name, payload["is_authenticated"]))

    session = SessionManager(FakeAuth(), stored_store())
    session.subscribe(handler)
    await session.bootstrap()
    session.update_user(ALICE)
    await session.logout()
    await session.login("alice@example.com", "secret")

    assert seen == [
        (SESSION_RESTORED, True),
        (SESSION_READY, True),
        (USER_UPDATED, True),
        (LOGGED_OUT, False),
        (LOGGED_IN, True),
    ]


@pytest.mark.asyncio
async def test_rejected_bootstrap_publishes_rejection_then_ready():
    seen = []
    session = SessionManager(FakeAuth(profile_error=ApiError(401, "expired")), stored_store())
    session.subscribe(lambda event, payload: seen.append((event.name, payload["is_loading"])))
    await session.bootstrap()
    assert seen == [(SESSION_REJECTED, False), (SESSION_READY, False)]


@pytest.mark.asyncio
async def test_unsubscribe_stops_notifications():
    seen = []

    def handler(event, payload):
        seen.append(event.name)

    session = SessionManager(FakeAuth(), MemoryTokenStore())
    session.subscribe(handler)
    await session.login("alice@example.com", "secret")
    session.unsubscribe(handler)
    await session.logout()
    assert seen == [LOGGED_IN]


@pytest.mark.asyncio
async def test_authenticated_matches_user_across_operations():
    auth = FakeAuth()
    session = SessionManager(auth, stored_store())
    await session.bootstrap()
    assert_consistent(session)
    await session.logout()
    assert_consistent(session)
    auth.login_error = ApiError(401, "bad")
    with pytest.raises(ApiError):
        await session.login("alice@example.com", "bad")
    assert_consistent(session)
    auth.login_error = None
    await session.register("bob@example.com", "pw")
    assert_consistent(session)
    await session.logout()
    await session.logout()
    assert_consistent(session)


def gated_auth(**kwargs):
    auth = FakeAuth(**kwargs)
    auth.profile_gate = asyncio.Event()
    return auth


@pytest.mark.asyncio
async def test_logout_while_bootstrap_waits_stays_logged_out():
    auth = gated_auth()
    store = stored_store()
    session = SessionManager(auth, store)

    pending = asyncio.create_task(session.bootstrap())
    await asyncio.sleep(0)
    assert auth.calls == [("get_profile", "acc-1")]

    await session.logout()
    auth.profile_gate.set()
    state = await pending

    assert state == Unauthenticated()
    assert session.user is None
    assert session.is_loading is False
    assert store.load_tokens() is None
    assert_consistent(session)


@pytest.mark.asyncio
async def test_login_while_failing_bootstrap_waits_keeps_new_tokens():
    auth = gated_auth(profile_error=ApiError(401, "expired"))
    auth.login_tokens = TokenPair("acc-new", "ref-new")
    store = stored_store()
    session = SessionManager(auth, store)

    pending = asyncio.create_task(session.bootstrap())
    await asyncio.sleep(0)
    await session.login("alice@example.com", "secret")
    auth.profile_gate.set()
    await pending

    assert session.user == ALICE
    assert session.tokens == TokenPair("acc-new", "ref-new")
    assert store.load_tokens() == TokenPair("acc-new", "ref-new")
    assert session.is_loading is False


@pytest.mark.asyncio
async def test_login_while_succeeding_bootstrap_waits_is_not_overwritten():
    auth = gated_auth(profile=User(id="u9", email="old@example.com", name="Old", role="USER",
                                   language="en", currency_code="USD"))
    auth.login_tokens = TokenPair("acc-new", "ref-new")
    store = stored_store()
    session = SessionManager(auth, store)

    pending = asyncio.create_task(session.bootstrap())
    await asyncio.sleep(0)
    await session.login("alice@example.com", "secret")
    auth.profile_gate.set()
    await pending

    assert session.state == Authenticated(ALICE, TokenPair("acc-new", "ref-new"))
    assert store.load_tokens() == TokenPair("acc-new", "ref-new")
