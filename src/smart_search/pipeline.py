"""Entry points for callers: fresh search, stored sessions, rendering.

The core keeps no state between calls. Each stored-results call opens its
own HTTP client, and callers own any "last used" settings.
"""

import threading
from typing import Sequence

from smart_search.config import Settings, load_settings
from smart_search.highlight import highlight
from smart_search.indexer import (
    cleanup_older_than as _cleanup_older_than,
    list_sessions as _list_sessions,
    search_stored as _search_stored,
    store_results,
)
from smart_search.models import Match, QuerySpec, RankedDocument, SessionInfo
from smart_search.searcher import search
from smart_search.storage import get_client


def fresh_search(
    spec: QuerySpec,
    roots: Sequence[str],
    settings: Settings | None = None,
    cancel: threading.Event | None = None,
) -> list[Match]:
    """Search the workspace roots with ripgrep."""
    return search(spec, roots, settings or load_settings(), cancel)


def store_and_get_session_id(
    matches: list[Match],
    query: str,
    spec: QuerySpec,
    settings: Settings | None = None,
) -> str:
    """Persist matches as a new session."""
    with get_client(settings or load_settings()) as client:
        return store_results(client, matches, query, spec)


def search_stored(
    spec: QuerySpec,
    session_id: str | None = None,
    settings: Settings | None = None,
) -> list[RankedDocument]:
    """Search stored results, optionally within one session."""
    settings = settings or load_settings()
    with get_client(settings) as client:
        return _search_stored(client, spec, settings, session_id)


def render_highlighted(text: str, query: str) -> str:
    """HTML-safe text with query terms wrapped in mark tags."""
    return highlight(text, query)


def list_sessions(settings: Settings | None = None) -> list[SessionInfo]:
    with get_client(settings or load_settings()) as client:
        return _list_sessions(client)


def cleanup_older_than(days: int, settings: Settings | None = None) -> None:
    with get_client(settings or load_settings()) as client:
        _cleanup_older_than(client, days)
