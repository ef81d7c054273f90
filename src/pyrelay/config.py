"""Runtime configuration.

Configuration is an explicit value passed to whoever needs it, never
module-level state. RelayConfig.from_env() reads it from the environment
for deployments where settings are injected at runtime:

    $ export PYRELAY_COUCH_URL=http://couch:5984
    $ export PYRELAY_COUCH_USER=admin
    $ export PYRELAY_COUCH_PASSWORD=secret
    $ pyrelay replicate source target
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace

DEFAULT_COUCH_URL = "http://localhost:5984"


@dataclass(frozen=True)
class RelayConfig:
    """
    Connection and timing settings.

    Usage:
        # Option 1: defaults (local server, no credentials)
        config = RelayConfig()

        # Option 2: environment
        config = RelayConfig.from_env()

        # Option 3: builder
        config = RelayConfig().with_url("http://couch:5984").with_credentials("admin", "pw")
    """

    couch_url: str = DEFAULT_COUCH_URL
    username: str | None = None
    password: str | None = None
    request_timeout: float = 10.0
    """Per-request HTTP timeout in seconds."""

    poll_interval: float = 0.5
    """Seconds between polls of an eventually-consistent condition."""

    poll_timeout: float = 30.0
    """Budget in seconds for a poll condition to hold."""

    stop_attempts: int = 3
    """Attempts for stopping a replication (its revision may go stale)."""

    def __post_init__(self) -> None:
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be > 0")
        if self.poll_interval <= 0 or self.poll_timeout <= 0:
            raise ValueError("poll_interval and poll_timeout must be > 0")
        if self.stop_attempts < 1:
            raise ValueError("stop_attempts must be >= 1")

    @classmethod
    def from_env(cls) -> RelayConfig:
        """
        Build a configuration from PYRELAY_* environment variables.

        Unset variables keep their defaults.

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        defaults = cls()
        return cls(
            couch_url=os.getenv("PYRELAY_COUCH_URL", defaults.couch_url),
            username=os.getenv("PYRELAY_COUCH_USER") or None,
            password=os.getenv("PYRELAY_COUCH_PASSWORD") or None,
            request_timeout=_env_float("PYRELAY_REQUEST_TIMEOUT", defaults.request_timeout),
            poll_interval=_env_float("PYRELAY_POLL_INTERVAL", defaults.poll_interval),
            poll_timeout=_env_float("PYRELAY_POLL_TIMEOUT", defaults.poll_timeout),
            stop_attempts=int(_env_float("PYRELAY_STOP_ATTEMPTS", defaults.stop_attempts)),
        )

    def with_url(self, url: str) -> RelayConfig:
        return replace(self, couch_url=url)

    def with_credentials(self, username: str, password: str) -> RelayConfig:
        return replace(self, username=username, password=password)

    @property
    def credentials(self) -> tuple[str, str] | None:
        if self.username is None:
            return None
        return (self.username, self.password or "")

    def __repr__(self) -> str:
        # Never print the password
        user = self.username or "-"
        return (
            f"RelayConfig(couch_url={self.couch_url!r}, user={user!r}, "
            f"request_timeout={self.request_timeout}, poll_interval={self.poll_interval}, "
            f"poll_timeout={self.poll_timeout}, stop_attempts={self.stop_attempts})"
        )


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
