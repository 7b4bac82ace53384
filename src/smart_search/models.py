"""Data models for smart-search."""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any

from smart_search.config import Settings


def format_solr_datetime(dt: datetime) -> str:
    """Format a datetime the way Solr date fields expect (UTC, trailing Z)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_solr_datetime(value: str) -> datetime:
    """Parse a Solr date string into a UTC-aware datetime."""
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(frozen=True)
class SubMatch:
    """A matched span within a line, as character offsets."""

    start: int
    end: int
    text: str


@dataclass(frozen=True)
class Match:
    """One ripgrep hit with its reconstructed context window."""

    path: str
    line_number: int  # 1-based
    column: int  # 0-based start of the first sub-match
    text: str
    context: tuple[str, ...]  # before + match line + after, in source order
    match_index: int  # position of the match line within context
    score: float = 0.0
    submatches: tuple[SubMatch, ...] = ()
    root: str | None = None

    @property
    def context_before(self) -> tuple[str, ...]:
        return self.context[: self.match_index]

    @property
    def context_after(self) -> tuple[str, ...]:
        return self.context[self.match_index + 1 :]


@dataclass
class QuerySpec:
    """A user's query plus options, rebuilt on every call.

    ``case_sensitive`` and ``whole_word`` are tri-state: None means the
    caller did not say, which ripgrep treats as False and the stored search
    leaves unfiltered.
    """

    query: str
    case_sensitive: bool | None = None
    whole_word: bool | None = None
    use_regex: bool = False
    include_globs: list[str] = field(default_factory=list)
    exclude_globs: list[str] = field(default_factory=list)
    max_results: int | None = None
    context_before: int | None = None
    context_after: int | None = None
    context: int | None = None  # legacy single count

    def limit(self, settings: Settings) -> int:
        return self.max_results if self.max_results is not None else settings.max_results

    def context_counts(self, settings: Settings) -> tuple[int, int]:
        """Resolve (before, after) context counts.

        The legacy ``context`` count only applies when neither before nor
        after is set.
        """
        if self.context_before is None and self.context_after is None:
            if self.context is not None:
                return self.context, self.context
            return settings.context_before, settings.context_after
        before = self.context_before if self.context_before is not None else settings.context_before
        after = self.context_after if self.context_after is not None else settings.context_after
        return before, after

    @property
    def match_type(self) -> str:
        return "regex" if self.use_regex else "literal"


def _scalar(value: Any) -> Any:
    # Solr returns single values as one-element lists when the field is multiValued
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v) for v in value]
    return [str(value)]


@dataclass(frozen=True)
class StoredDocument:
    """The Solr representation of one Match."""

    id: str
    search_session_id: str
    original_query: str
    search_timestamp: datetime
    workspace_path: str
    file_path: str
    file_name: str
    file_extension: str
    line_number: int
    column_number: int
    match_text: str
    match_text_raw: str
    full_line: str
    full_line_raw: str
    context_before: list[str] = field(default_factory=list)
    context_after: list[str] = field(default_factory=list)
    context_lines_before: int = 0
    context_lines_after: int = 0
    match_type: str = "literal"
    case_sensitive: bool = False
    whole_word: bool = False
    relevance_score: float = 0.0
    match_count_in_file: int = 1
    display_content: str = ""
    file_size: int | None = None
    file_modified: datetime | None = None

    def to_solr(self) -> dict[str, Any]:
        """Serialize for the JSON docs ingest endpoint; absent metadata is omitted."""
        doc: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, datetime):
                value = format_solr_datetime(value)
            doc[f.name] = value
        return doc

    @classmethod
    def from_solr(cls, doc: dict[str, Any]) -> "StoredDocument":
        """Decode a Solr document, ignoring copy fields and ``score``."""
        modified = _scalar(doc.get("file_modified"))
        size = _scalar(doc.get("file_size"))
        return cls(
            id=str(_scalar(doc["id"])),
            search_session_id=str(_scalar(doc.get("search_session_id", ""))),
            original_query=str(_scalar(doc.get("original_query", ""))),
            search_timestamp=parse_solr_datetime(str(_scalar(doc["search_timestamp"]))),
            workspace_path=str(_scalar(doc.get("workspace_path", ""))),
            file_path=str(_scalar(doc.get("file_path", ""))),
            file_name=str(_scalar(doc.get("file_name", ""))),
            file_extension=str(_scalar(doc.get("file_extension", "")) or ""),
            line_number=int(_scalar(doc.get("line_number", 0))),
            column_number=int(_scalar(doc.get("column_number", 0))),
            match_text=str(_scalar(doc.get("match_text", "")) or ""),
            match_text_raw=str(_scalar(doc.get("match_text_raw", "")) or ""),
            full_line=str(_scalar(doc.get("full_line", "")) or ""),
            full_line_raw=str(_scalar(doc.get("full_line_raw", "")) or ""),
            context_before=_as_list(doc.get("context_before")),
            context_after=_as_list(doc.get("context_after")),
            context_lines_before=int(_scalar(doc.get("context_lines_before", 0))),
            context_lines_after=int(_scalar(doc.get("context_lines_after", 0))),
            match_type=str(_scalar(doc.get("match_type", "literal"))),
            case_sensitive=bool(_scalar(doc.get("case_sensitive", False))),
            whole_word=bool(_scalar(doc.get("whole_word", False))),
            relevance_score=float(_scalar(doc.get("relevance_score", 0.0))),
            match_count_in_file=int(_scalar(doc.get("match_count_in_file", 1))),
            display_content=str(_scalar(doc.get("display_content", "")) or ""),
            file_size=int(size) if size is not None else None,
            file_modified=parse_solr_datetime(str(modified)) if modified else None,
        )


@dataclass
class SessionInfo:
    """Summary of one stored search session."""

    session_id: str
    query: str
    timestamp: datetime
    result_count: int


@dataclass
class RankedDocument:
    """A stored document returned by a stored search, with rendered HTML fields."""

    document: StoredDocument
    score: float
    match_text_html: str = ""
    full_line_html: str = ""
    context_before_html: list[str] = field(default_factory=list)
    context_after_html: list[str] = field(default_factory=list)
    snippets: list[str] = field(default_factory=list)
