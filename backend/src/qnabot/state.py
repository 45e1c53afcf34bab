"""Global application state for service readiness."""

from __future__ import annotations

from typing import Optional


class AppState:
    """Application state singleton."""

    _instance: Optional["AppState"] = None

    def __new__(cls) -> "AppState":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._upstream_ready = False
        return cls._instance

    @property
    def upstream_ready(self) -> bool:
        """Whether the search service has answered a readiness probe."""
        return self._upstream_ready

    @upstream_ready.setter
    def upstream_ready(self, value: bool) -> None:
        self._upstream_ready = value


def get_app_state() -> AppState:
    """Get the application state singleton."""
    return AppState()


def reset_app_state() -> None:
    """Reset the application state (for testing)."""
    AppState._instance = None
