"""Runtime settings for smart-search."""

import os
from dataclasses import dataclass, field, replace
from typing import Any

ENV_PREFIX = "SMART_SEARCH_"

DEFAULT_SOLR_URL = "http://localhost:8983/solr"
DEFAULT_SOLR_CORE = "smart-search-results"
DEFAULT_FIELDS = ("content_all", "code_all")
DEFAULT_FIELD_BOOSTS = {
    "file_name": 3.0,
    "file_path": 1.5,
    "code_all": 2.0,
    "content_all": 1.0,
}


@dataclass(frozen=True)
class Settings:
    """Explicit configuration passed into every orchestrator and bridge call."""

    rg_path: str = "rg"
    solr_url: str = DEFAULT_SOLR_URL
    solr_core: str = DEFAULT_SOLR_CORE
    default_fields: tuple[str, ...] = DEFAULT_FIELDS
    field_boosts: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_FIELD_BOOSTS))
    max_parallel_roots: int = 5
    max_results: int = 100
    context_before: int = 30
    context_after: int = 30
    tool_timeout: float = 15.0
    store_timeout: float = 10.0
    glob_timeout: float = 10.0
    event_queue_size: int = 1000

    @property
    def core_url(self) -> str:
        """Base URL of the Solr core, with a trailing slash."""
        return f"{self.solr_url.rstrip('/')}/{self.solr_core}/"

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a copy with the non-None overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _env(name: str) -> str | None:
    value = os.environ.get(ENV_PREFIX + name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_number(name: str, cast: type) -> Any:
    value = _env(name)
    if value is None:
        return None
    try:
        return cast(value)
    except ValueError as e:
        raise ValueError(f"Invalid value for {ENV_PREFIX}{name}: {value!r}") from e


def parse_fields(value: str) -> tuple[str, ...]:
    """Parse a comma-separated field list, dropping blanks."""
    return tuple(f.strip() for f in value.split(",") if f.strip())


def load_settings() -> Settings:
    """Build Settings from SMART_SEARCH_* environment variables."""
    fields_value = _env("DEFAULT_FIELDS")
    return Settings().with_overrides(
        rg_path=_env("RG_PATH"),
        solr_url=_env("SOLR_URL"),
        solr_core=_env("SOLR_CORE"),
        default_fields=parse_fields(fields_value) if fields_value else None,
        max_parallel_roots=_env_number("MAX_PARALLEL_ROOTS", int),
        max_results=_env_number("MAX_RESULTS", int),
        context_before=_env_number("CONTEXT_BEFORE", int),
        context_after=_env_number("CONTEXT_AFTER", int),
        tool_timeout=_env_number("TOOL_TIMEOUT", float),
        store_timeout=_env_number("STORE_TIMEOUT", float),
        glob_timeout=_env_number("GLOB_TIMEOUT", float),
        event_queue_size=_env_number("EVENT_QUEUE_SIZE", int),
    )
