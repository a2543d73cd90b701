from typing import NamedTuple, Optional, Tuple

from planner.domain import User

__all__ = [
    'LOADING', 'ALLOW', 'REDIRECT', 'LOGIN_PATH', 'REGISTER_PATH', 'HOME_PATH',
    'PAGES', 'ADMIN_PAGE', 'PUBLIC_PATHS',
    'Decision', 'guard', 'guard_session', 'visible_pages', 'route',
]

LOADING = "LOADING"
ALLOW = "ALLOW"
REDIRECT = "REDIRECT"

LOGIN_PATH = "/login"
REGISTER_PATH = "/register"
HOME_PATH = "/"

PUBLIC_PATHS = (LOGIN_PATH, REGISTER_PATH)

# (path, label) in navigation order
PAGES: Tuple[Tuple[str, str], ...] = (
    ("/", "Dashboard"),
    ("/transactions", "Transactions"),
    ("/categories", "Categories"),
    ("/budgets", "Budgets"),
    ("/reports", "Reports"),
    ("/api-keys", "API Keys"),
    ("/settings", "Settings"),
)
ADMIN_PAGE = ("/admin", "Admin")


class Decision(NamedTuple):
    kind: str
    target: Optional[str] = None


def guard(is_loading: bool, is_authenticated: bool) -> Decision:
    # no redirect before bootstrap settles, or a reload flashes the login view
    if is_loading:
        return Decision(LOADING)
    if is_authenticated:
        return Decision(ALLOW)
    return Decision(REDIRECT, LOGIN_PATH)


def guard_session(session) -> Decision:
    return guard(session.is_loading, session.is_authenticated)


def visible_pages(user: Optional[User]) -> Tuple[Tuple[str, str], ...]:
    if user is not None and user.is_admin:
        return PAGES + (ADMIN_PAGE,)
    return PAGES


def route(path: str, session) -> Decision:
    """Resolve a requested path to what the navigation layer should do.

    Unknown paths fall back to the dashboard and the admin page is only
    reachable by admins. The requested path is not remembered across a
    redirect to login.
    """
    if path in PUBLIC_PATHS:
        return Decision(ALLOW, path)

    decision = guard_session(session)
    if decision.kind != ALLOW:
        return decision

    known = {p for p, _ in visible_pages(session.user)}
    if path not in known:
        return Decision(REDIRECT, HOME_PATH)
    return Decision(ALLOW, path)
