from abc import ABC, abstractmethod
from typing import Optional

from planner.domain import TokenPair, User

__all__ = ['SessionState', 'Unauthenticated', 'Authenticated']


class SessionState(ABC):

    @property
    @abstractmethod
    def is_authenticated(self) -> bool:
        pass

    @property
    @abstractmethod
    def user(self) -> Optional[User]:
        pass

    @property
    @abstractmethod
    def tokens(self) -> Optional[TokenPair]:
        pass


class Unauthenticated(SessionState):

    @property
    def is_authenticated(self) -> bool:
        return False

    @property
    def user(self) -> Optional[User]:
        return None

    @property
    def tokens(self) -> Optional[TokenPair]:
        return None

    def __repr__(self) -> str:
        return "Unauthenticated()"

    def __eq__(self, other) -> bool:
        return isinstance(other, Unauthenticated)


class Authenticated(SessionState):

    def __init__(self, user: User, tokens: TokenPair):
        self._user = user
        self._tokens = tokens

    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def user(self) -> Optional[User]:
        return self._user

    @property
    def tokens(self) -> Optional[TokenPair]:
        return self._tokens

    def with_user(self, user: User) -> 'Authenticated':
        return Authenticated(user, self._tokens)

    def __repr__(self) -> str:
        # tokens stay out of logs
        return f"Authenticated({self._user.email})"

    def __eq__(self, other) -> bool:
        return (
            isinstance(other, Authenticated)
            and self._user == other._user
            and self._tokens == other._tokens
        )
