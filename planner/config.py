"""Client configuration, read from the environment."""
import os
from dataclasses import dataclass

DEFAULT_API_URL = "http://localhost:3002"
DEFAULT_TOKEN_DIR = "~/.budget_planner/sessions"
DEFAULT_TIMEOUT = 10.0


@dataclass(frozen=True)
class Settings:
    api_url: str = DEFAULT_API_URL
    token_dir: str = DEFAULT_TOKEN_DIR
    timeout: float = DEFAULT_TIMEOUT


def load_settings(environ=None) -> Settings:
    env = os.environ if environ is None else environ

    raw_timeout = env.get("BUDGET_PLANNER_TIMEOUT", str(DEFAULT_TIMEOUT))
    try:
        timeout = float(raw_timeout)
    except ValueError:
        raise ValueError(f"BUDGET_PLANNER_TIMEOUT must be a number, got {raw_timeout!r}")
    if timeout <= 0:
        raise ValueError(f"BUDGET_PLANNER_TIMEOUT must be positive, got {timeout}")

    return Settings(
        api_url=env.get("BUDGET_PLANNER_API_URL", DEFAULT_API_URL).rstrip("/"),
        token_dir=env.get("BUDGET_PLANNER_TOKEN_DIR", DEFAULT_TOKEN_DIR),
        timeout=timeout,
    )
