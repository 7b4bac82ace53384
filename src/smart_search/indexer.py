"""Store fresh search results as Solr sessions and query them back."""

import logging
import os
import re
import time
import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx

from smart_search.config import Settings
from smart_search.errors import FileMetadataUnavailable, StoreError
from smart_search.filetypes import file_extension
from smart_search.highlight import apply_store_highlighting
from smart_search.models import (
    Match,
    QuerySpec,
    RankedDocument,
    SessionInfo,
    StoredDocument,
    format_solr_datetime,
    parse_solr_datetime,
)
from smart_search.query import build_search_params, create_display_content, sanitize_query, session_filter
from smart_search.storage import add_documents, delete_by_query, facet_values, select, terms

logger = logging.getLogger(__name__)

SESSION_PREFIX = "session_"
MIN_SUGGESTION_CHARS = 2


def new_session_id() -> str:
    """A globally unique session id: session_<epoch-ms>_<uuid hex>."""
    return f"{SESSION_PREFIX}{int(time.time() * 1000)}_{uuid.uuid4().hex}"


def _stat(path: str) -> os.stat_result:
    try:
        return os.stat(path)
    except OSError as e:
        raise FileMetadataUnavailable(f"{path}: {e.strerror or e}") from e


def file_metadata(path: str) -> tuple[int | None, datetime | None]:
    """Best-effort (size, modified time). Unreadable files yield (None, None)."""
    try:
        stat = _stat(path)
    except FileMetadataUnavailable as e:
        logger.debug("No metadata for %s", e)
        return None, None
    return stat.st_size, datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)


def build_documents(
    matches: list[Match],
    original_query: str,
    spec: QuerySpec,
    session_id: str,
    timestamp: datetime,
) -> list[StoredDocument]:
    """Turn a batch of matches into Solr documents for one session."""
    per_file = Counter(m.path for m in matches)
    metadata: dict[str, tuple[int | None, datetime | None]] = {}

    documents: list[StoredDocument] = []
    for index, match in enumerate(matches):
        if match.path not in metadata:
            metadata[match.path] = file_metadata(match.path)
        size, modified = metadata[match.path]
        before = list(match.context_before)
        after = list(match.context_after)

        documents.append(
            StoredDocument(
                id=f"{session_id}_{index}",
                search_session_id=session_id,
                original_query=original_query,
                search_timestamp=timestamp,
                workspace_path=match.root or "",
                file_path=match.path,
                file_name=Path(match.path).name,
                file_extension=file_extension(match.path),
                line_number=match.line_number,
                column_number=match.column,
                match_text=match.text.strip(),
                match_text_raw=match.text,
                full_line=match.text,
                full_line_raw=match.text,
                context_before=before,
                context_after=after,
                context_lines_before=len(before),
                context_lines_after=len(after),
                match_type=spec.match_type,
                case_sensitive=bool(spec.case_sensitive),
                whole_word=bool(spec.whole_word),
                relevance_score=match.score,
                match_count_in_file=per_file[match.path],
                display_content=create_display_content(match.text, before, after),
                file_size=size,
                file_modified=modified,
            )
        )
    return documents


def store_results(
    client: httpx.Client,
    matches: list[Match],
    original_query: str,
    spec: QuerySpec,
) -> str:
    """Persist a search's matches as a new session and return its id."""
    session_id = new_session_id()
    timestamp = datetime.now(tz=timezone.utc)
    documents = build_documents(matches, original_query, spec, session_id, timestamp)

    if not documents:
        logger.info("No matches to store for %r; session %s is empty", original_query, session_id)
        return session_id

    add_documents(client, [doc.to_solr() for doc in documents])
    logger.info("Stored %d results as %s", len(documents), session_id)
    return session_id


def search_stored(
    client: httpx.Client,
    spec: QuerySpec,
    settings: Settings,
    session_id: str | None = None,
) -> list[RankedDocument]:
    """Query stored results, merging Solr highlighting with client-side fallback."""
    params = build_search_params(spec, session_id, settings)
    page = select(client, params)

    ranked: list[RankedDocument] = []
    for doc in page.docs:
        try:
            document = StoredDocument.from_solr(doc)
            score = float(doc.get("score") or 0.0)
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Malformed stored document %r: %s", doc.get("id"), e)
            raise StoreError(f"Malformed stored document {doc.get('id')!r}: {e!r}") from e
        ranked.append(RankedDocument(document=document, score=score))
    ranked.sort(key=lambda r: (r.score, r.document.search_timestamp), reverse=True)
    return apply_store_highlighting(ranked, page.highlighting, spec.query)


def stored_queries(client: httpx.Client, limit: int = 50) -> list[str]:
    """Distinct original queries that still have stored results."""
    facets = facet_values(client, "original_query", limit=limit)
    return [value for value, count in facets.values if count > 0]


def list_sessions(client: httpx.Client, limit: int = 100) -> list[SessionInfo]:
    """All stored sessions, newest first."""
    facets = facet_values(client, "search_session_id", limit=limit)
    sessions: list[SessionInfo] = []

    for session_id, count in facets.values:
        if count <= 0 or not session_id.startswith(SESSION_PREFIX):
            continue
        page = select(
            client,
            {
                "q": session_filter(session_id),
                "rows": 1,
                "fl": "original_query,search_timestamp",
                "sort": "search_timestamp desc",
            },
        )
        if not page.docs:
            continue
        doc = page.docs[0]
        timestamp = doc.get("search_timestamp")
        if isinstance(timestamp, list):
            timestamp = timestamp[0] if timestamp else None
        if not timestamp:
            continue
        query = doc.get("original_query") or "Unknown Query"
        if isinstance(query, list):
            query = query[0] if query else "Unknown Query"
        sessions.append(
            SessionInfo(
                session_id=session_id,
                query=str(query),
                timestamp=parse_solr_datetime(str(timestamp)),
                result_count=count,
            )
        )

    sessions.sort(key=lambda s: s.timestamp, reverse=True)
    return sessions


def most_recent_session_id(client: httpx.Client) -> str | None:
    sessions = list_sessions(client)
    return sessions[0].session_id if sessions else None


def delete_session(client: httpx.Client, session_id: str) -> None:
    """Delete every document of one session."""
    delete_by_query(client, session_filter(session_id))
    logger.info("Deleted session %s", session_id)


def cleanup_older_than(client: httpx.Client, days: int) -> None:
    """Delete all sessions stored more than ``days`` days ago."""
    cutoff = datetime.now(tz=timezone.utc) - timedelta(days=days)
    delete_by_query(client, f"search_timestamp:[* TO {format_solr_datetime(cutoff)}]")
    logger.info("Deleted sessions older than %s", cutoff.isoformat())


def _extract_suggestions(docs: list[dict], partial: str, found: set[str]) -> None:
    lowered = partial.lower()
    fragment = re.compile(rf"\b\w*{re.escape(lowered)}\w*\b", re.IGNORECASE)

    for doc in docs:
        match_text = doc.get("match_text")
        if isinstance(match_text, str):
            for word in re.findall(r"\b[\w\"']+", match_text):
                word = word.strip("\"'")
                if word.lower().startswith(lowered) and len(word) > len(partial):
                    found.add(word)
            for phrase in fragment.findall(match_text):
                if len(phrase) > len(partial):
                    found.add(phrase)

        file_name = doc.get("file_name")
        if isinstance(file_name, str) and lowered in file_name.lower():
            found.add(file_name)

        file_path = doc.get("file_path")
        if isinstance(file_path, str):
            for part in re.split(r"[/\\]", file_path):
                if part and lowered in part.lower() and len(part) > len(partial):
                    found.add(part)

        original_query = doc.get("original_query")
        if isinstance(original_query, str) and lowered in original_query.lower():
            found.add(original_query)


def _sort_suggestions(suggestions: set[str], partial: str, limit: int) -> list[str]:
    lowered = partial.lower()
    # prefix matches first, then shorter first
    return sorted(
        suggestions,
        key=lambda s: (not s.lower().startswith(lowered), len(s), s),
    )[:limit]


def suggest(
    client: httpx.Client,
    partial: str,
    session_id: str | None = None,
    limit: int = 10,
    mode: str = "live",
) -> list[str]:
    """Auto-complete suggestions drawn from stored results.

    ``live`` mode searches every stored document; ``session`` mode only the
    given session, or the most recent one when none is given.
    """
    if not partial or len(partial) < MIN_SUGGESTION_CHARS:
        return []

    if mode == "session":
        session_id = session_id or most_recent_session_id(client)
        if session_id is None:
            return []
        params = {"q": session_filter(session_id)}
    else:
        term = sanitize_query(partial.lower())
        params = {
            "q": f"match_text:{term}* OR file_name:*{term}* OR original_query:*{term}*",
            "sort": "search_timestamp desc",
        }

    params.update({"fl": "match_text,file_name,file_path,original_query", "rows": 200})
    page = select(client, params)

    found: set[str] = set()
    _extract_suggestions(page.docs, partial, found)
    suggestions = _sort_suggestions(found, partial, limit)
    if mode == "session":
        return suggestions

    # top up from the index itself when the stored lines ran short
    seen = {s.lower() for s in suggestions}
    for extra in (_term_suggestions, _field_suggestions):
        remaining = limit - len(suggestions)
        if remaining <= 0:
            break
        for candidate in extra(client, partial, remaining):
            if len(suggestions) < limit and candidate.lower() not in seen:
                seen.add(candidate.lower())
                suggestions.append(candidate)
    return suggestions


def _term_suggestions(client: httpx.Client, partial: str, limit: int) -> list[str]:
    """Indexed match_text terms starting with ``partial``."""
    lowered = partial.lower()
    try:
        listed = terms(client, "match_text", lowered, limit * 2)
    except StoreError as e:
        logger.warning("Terms lookup failed for %r: %s", partial, e)
        return []
    return [term for term, _ in listed.values if term.lower().startswith(lowered)]


def _field_suggestions(client: httpx.Client, partial: str, limit: int) -> list[str]:
    """Complete the value of a ``field:value`` partial from that field's facets."""
    field_name, sep, value = partial.partition(":")
    if not sep or not value or not re.fullmatch(r"\w+", field_name):
        return []
    try:
        facets = facet_values(client, field_name, query=f"{field_name}:{sanitize_query(value)}*", limit=limit)
    except StoreError as e:
        logger.warning("Field suggestions failed for %r: %s", partial, e)
        return []
    return [f"{field_name}:{v}" for v, _ in facets.values]
