"""Application state management."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from quash_service.clients.identity_client import IdentityClient
    from quash_service.services.category_manager import CategoryManager
    from quash_service.services.skill_manager import SkillManager
    from quash_service.services.task_manager import TaskManager
    from quash_service.services.token_validator import TokenValidator


@dataclass
class AppState:
    """Runtime application state."""

    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    task_manager: TaskManager | None = None
    category_manager: CategoryManager | None = None
    skill_manager: SkillManager | None = None
    identity_client: IdentityClient | None = None
    token_validator: TokenValidator | None = None

    def __setattr__(self, name: str, value: Any) -> None:
        """Keep the token validator pointed at the current identity client."""
        super().__setattr__(name, value)

        token_validator = self.__dict__.get("token_validator")
        if name == "identity_client" and value is not None and token_validator is not None:
            token_validator._identity_client = value
        elif name == "token_validator" and value is not None:
            identity_client = self.__dict__.get("identity_client")
            if identity_client is not None:
                value._identity_client = identity_client

    @property
    def uptime_seconds(self) -> float:
        """Calculate uptime in seconds."""
        return (datetime.now(UTC) - self.start_time).total_seconds()

    @property
    def started_at(self) -> str:
        """ISO format start time."""
        return self.start_time.isoformat(timespec="seconds").replace("+00:00", "Z")


# Global application state container
_state_container: dict[str, AppState | None] = {"app_state": None}


def get_app_state() -> AppState:
    """Get the current application state."""
    app_state = _state_container["app_state"]
    if app_state is None:
        msg = "Application state not initialized"
        raise RuntimeError(msg)
    return app_state


def init_app_state() -> AppState:
    """Initialize application state. Called during startup."""
    app_state = AppState()
    _state_container["app_state"] = app_state
    return app_state


def reset_app_state() -> None:
    """Reset application state. Used in testing."""
    _state_container["app_state"] = None
