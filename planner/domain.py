from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from planner.errors import MalformedResponse

ROLE_USER = "USER"
ROLE_ADMIN = "ADMIN"
ROLES = (ROLE_USER, ROLE_ADMIN)


@dataclass(frozen=True)
class User:
    id: str
    email: str
    name: str
    role: str            # USER or ADMIN
    language: str        # e.g. "en", "pl"
    currency_code: str   # ISO code, e.g. "USD"

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Unknown role {self.role!r}, expected one of {ROLES}")

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: Optional[str]


@dataclass(frozen=True)
class AuthResponse:
    tokens: TokenPair
    user: User


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    type: str  # INCOME or EXPENSE
    icon: str = ""
    color: str = ""
    is_default: bool = False


# Spend against a category threshold for one month
@dataclass(frozen=True)
class BudgetStatus:
    id: str
    category: Optional[Category]
    budget_amount: Decimal
    spent_amount: Decimal
    remaining: Decimal
    percentage: int
    is_over_budget: bool


def user_from_json(data: dict) -> User:
    try:
        return User(
            id=str(data["id"]),
            email=data["email"],
            name=data.get("name") or "",
            role=data.get("role", ROLE_USER),
            language=data.get("language") or "en",
            currency_code=data.get("currencyCode") or "USD",
        )
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedResponse(f"Invalid user record: {e}") from e


def user_to_json(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "language": user.language,
        "currencyCode": user.currency_code,
    }


def auth_response_from_json(data: dict) -> AuthResponse:
    try:
        tokens = TokenPair(
            access_token=data["accessToken"],
            refresh_token=data["refreshToken"],
        )
        user = data["user"]
    except (KeyError, TypeError) as e:
        raise MalformedResponse(f"Invalid auth response: {e}") from e
    return AuthResponse(tokens=tokens, user=user_from_json(user))


def category_from_json(data: dict) -> Category:
    try:
        return Category(
            id=str(data["id"]),
            name=data["name"],
            type=data["type"],
            icon=data.get("icon") or "",
            color=data.get("color") or "",
            is_default=bool(data.get("isDefault", False)),
        )
    except (KeyError, TypeError) as e:
        raise MalformedResponse(f"Invalid category record: {e}") from e
