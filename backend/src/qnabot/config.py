# backend/src/qnabot/config.py
"""Configuration system for the QnA bot backend.

This module handles loading settings from environment variables and INI files,
providing sensible defaults and validating the dialog thresholds that drive
the conversation state machine.
"""

from configparser import ConfigParser
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional
import os

DEFAULT_QNAMAKER_ENDPOINT = (
    "https://westus.api.cognitive.microsoft.com/qnamaker/v2.0/knowledgebases"
)


class ConfigError(Exception):
    """Raised when configuration validation fails."""

    pass


# =============================================================================
# Schema
# =============================================================================

# Schema: section -> key -> (type, default, min, max, description)
CONFIG_SCHEMA: dict[str, dict[str, tuple[type, Any, Any, Any, str]]] = {
    "dialog": {
        "qna_min_confidence": (float, 0.4, 0.0, 1.0, "Don't show answers below this confidence"),
        "qna_confidence_prompt": (
            float,
            0.6,
            0.0,
            1.0,
            "Follow-up answers at or below this enter broadened search",
        ),
        "choice_confidence_delta": (
            float,
            0.2,
            0.0,
            1.0,
            "Contexts within this delta of the best are offered as a choice",
        ),
        "answer_uncertain_warning": (
            float,
            0.85,
            0.0,
            1.0,
            "Answers below this are shown with a 'not the right answer?' option",
        ),
        "max_suggestions": (int, 3, 1, 10, "Suggestions shown after a broadened search"),
        "max_tracked_contexts": (int, 10, 1, 100, "Contexts remembered per conversation"),
        "gateway_timeout_seconds": (float, 10.0, 0.1, 120.0, "Timeout for one gateway call"),
    },
    "search": {
        "search_confidence": (float, 0.7, 0.0, None, "Minimum search score for a new context"),
        "result_limit": (int, 5, 1, 50, "Search hits requested per query"),
        "answers_per_context": (int, 3, 1, 10, "Answers requested from each knowledge base"),
        "http_retries": (int, 2, 0, 10, "Connection retries for upstream HTTP calls"),
    },
    "session": {
        "ttl_minutes": (int, 60, 1, 1440, "Idle time before a conversation is forgotten"),
        "max_conversations": (int, 10_000, 1, None, "Conversations kept in memory"),
    },
}


# =============================================================================
# Section Dataclasses
# =============================================================================


@dataclass(frozen=True)
class DialogConfig:
    """Thresholds and limits used by the conversation state machine."""

    qna_min_confidence: float
    qna_confidence_prompt: float
    choice_confidence_delta: float
    answer_uncertain_warning: float
    max_suggestions: int
    max_tracked_contexts: int
    gateway_timeout_seconds: float


@dataclass(frozen=True)
class SearchConfig:
    """Search and scoring collaborator configuration."""

    search_confidence: float
    result_limit: int
    answers_per_context: int
    http_retries: int


@dataclass(frozen=True)
class SessionConfig:
    """Conversation session store configuration."""

    ttl_minutes: int
    max_conversations: int


def _section_defaults(section: str) -> dict[str, Any]:
    return {key: default for key, (_, default, _, _, _) in CONFIG_SCHEMA[section].items()}


def default_dialog_config() -> DialogConfig:
    """Dialog configuration built from schema defaults only."""
    return DialogConfig(**_section_defaults("dialog"))


# =============================================================================
# Config Loader
# =============================================================================


def _load_section(
    parser: ConfigParser, section: str, schema: dict[str, tuple[type, Any, Any, Any, str]]
) -> dict[str, Any]:
    """Load and validate a configuration section.

    Args:
        parser: ConfigParser instance with loaded config
        section: Section name to load
        schema: Schema definition for the section

    Returns:
        Dictionary of validated configuration values

    Raises:
        ConfigError: If validation fails
    """
    result = {}

    for key, (typ, default, min_val, max_val, _) in schema.items():
        if parser.has_option(section, key):
            raw_value = parser.get(section, key)
            value: bool | int | float | str
            try:
                if typ is bool:
                    value = raw_value.lower() in ("true", "1", "yes", "on")
                elif typ is int:
                    value = int(raw_value)
                elif typ is float:
                    value = float(raw_value)
                else:
                    value = raw_value
            except ValueError as e:
                raise ConfigError(
                    f"Invalid value for [{section}].{key}: {raw_value!r} (expected {typ.__name__})"
                ) from e
        else:
            value = default

        # Validate range for numeric types
        if typ in (int, float) and value is not None:
            if min_val is not None and value < min_val:
                raise ConfigError(
                    f"Value for [{section}].{key} is {value}, but minimum is {min_val}"
                )
            if max_val is not None and value > max_val:
                raise ConfigError(
                    f"Value for [{section}].{key} is {value}, but maximum is {max_val}"
                )

        result[key] = value

    return result


def _validate_dialog(dialog: DialogConfig) -> None:
    """Cross-field checks the per-key ranges cannot express."""
    if dialog.qna_confidence_prompt < dialog.qna_min_confidence:
        raise ConfigError(
            "[dialog].qna_confidence_prompt must not be lower than [dialog].qna_min_confidence"
        )


def _load_config(config_path: Optional[Path] = None) -> "Config":
    """Load configuration from an INI file (internal use only).

    Args:
        config_path: Path to config file. If None, uses defaults from schema.

    Returns:
        Config object with all sections populated and no upstream endpoints.

    Raises:
        ConfigError: If validation fails
    """
    parser = ConfigParser()

    if config_path and config_path.exists():
        parser.read(config_path)

    dialog = DialogConfig(**_load_section(parser, "dialog", CONFIG_SCHEMA["dialog"]))
    search = SearchConfig(**_load_section(parser, "search", CONFIG_SCHEMA["search"]))
    session = SessionConfig(**_load_section(parser, "session", CONFIG_SCHEMA["session"]))
    _validate_dialog(dialog)

    return Config(dialog=dialog, search=search, session=session)


# =============================================================================
# Config Dataclass
# =============================================================================


@dataclass(frozen=True)
class Config:
    """Complete application configuration."""

    # Upstream services
    search_endpoint: Optional[str] = None
    search_key: Optional[str] = None
    search_index_name: Optional[str] = None
    qnamaker_endpoint: str = DEFAULT_QNAMAKER_ENDPOINT
    qnamaker_key: Optional[str] = None
    spellcheck_endpoint: Optional[str] = None
    spellcheck_key: Optional[str] = None
    spellcheck_mode: str = "spell"
    spellcheck_mkt: str = "en-US"

    # Section configs - defaults set in __post_init__
    dialog: DialogConfig = None  # type: ignore[assignment]
    search: SearchConfig = None  # type: ignore[assignment]
    session: SessionConfig = None  # type: ignore[assignment]

    def __post_init__(self):
        """Initialize section configs with defaults if not provided."""
        if self.dialog is None:
            object.__setattr__(self, "dialog", DialogConfig(**_section_defaults("dialog")))
        if self.search is None:
            object.__setattr__(self, "search", SearchConfig(**_section_defaults("search")))
        if self.session is None:
            object.__setattr__(self, "session", SessionConfig(**_section_defaults("session")))

    @property
    def search_url(self) -> Optional[str]:
        """Full URL of the search index query endpoint."""
        if not self.search_endpoint or not self.search_index_name:
            return None
        base = self.search_endpoint.rstrip("/")
        return f"{base}/indexes/{self.search_index_name}/docs/search"

    @property
    def spellcheck_enabled(self) -> bool:
        """Spell correction runs only when an endpoint and key are configured."""
        return bool(self.spellcheck_endpoint and self.spellcheck_key)

    def describe(self) -> dict[str, Any]:
        """Configuration summary safe to log (no secrets)."""
        return {
            "search_url": self.search_url,
            "qnamaker_endpoint": self.qnamaker_endpoint,
            "spellcheck_enabled": self.spellcheck_enabled,
            "dialog": self.dialog,
            "search": self.search,
            "session": self.session,
        }


def _search_endpoint_from_env() -> Optional[str]:
    """Resolve the search endpoint, deriving it from the service name if needed."""
    endpoint = os.getenv("SEARCH_ENDPOINT")
    if endpoint:
        return endpoint
    name = os.getenv("SEARCH_NAME")
    if name:
        return f"https://{name}.search.windows.net"
    return None


@lru_cache(maxsize=1)
def load_settings() -> Config:
    """Load settings from environment variables and config file.

    Settings are cached for the lifetime of the application.
    Use load_settings.cache_clear() to reload settings.

    Returns:
        Config object populated from environment variables and config file.

    Raises:
        ConfigError: If the config file contains invalid values.
    """
    config_path_str = os.getenv("QNABOT_CONFIG")
    config_path = Path(config_path_str) if config_path_str else None
    if config_path is not None and not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    base_config = _load_config(config_path)

    return Config(
        search_endpoint=_search_endpoint_from_env(),
        search_key=os.getenv("SEARCH_KEY"),
        search_index_name=os.getenv("SEARCH_INDEX_NAME"),
        qnamaker_endpoint=os.getenv("QNAMAKER_ENDPOINT", DEFAULT_QNAMAKER_ENDPOINT),
        qnamaker_key=os.getenv("QNAMAKER_KEY"),
        spellcheck_endpoint=os.getenv("SPELLCHECK_ENDPOINT"),
        spellcheck_key=os.getenv("SPELLCHECK_KEY"),
        spellcheck_mode=os.getenv("SPELLCHECK_MODE", "spell"),
        spellcheck_mkt=os.getenv("SPELLCHECK_MKT", "en-US"),
        dialog=base_config.dialog,
        search=base_config.search,
        session=base_config.session,
    )


# Alias matching the name used by the API dependencies
Settings = Config
