from typing import Any, Optional


class PlannerError(Exception):
    """Base class for every error raised by the planner client."""


class ApiError(PlannerError):
    """The backend answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str, payload: Optional[Any] = None):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.payload = payload

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401


class TransportError(PlannerError):
    """The request never got an HTTP answer (refused, timed out, ...)."""


class MalformedResponse(PlannerError):
    pass


class SessionError(PlannerError):
    pass
