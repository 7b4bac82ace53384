"""Exception hierarchy for smart-search.

"Zero matches" is always an empty list; every failure is one of these.
"""


class SmartSearchError(Exception):
    """Base class for all smart-search errors."""


class SearchError(SmartSearchError):
    """Failure while running ripgrep."""


class NoWorkspaceError(SearchError):
    """No workspace roots were given."""

    def __init__(self, message: str = "no workspace available") -> None:
        super().__init__(message)


class ToolUnavailable(SearchError):
    """The ripgrep binary is missing or cannot be spawned."""


class ToolOutputMalformed(SearchError):
    """A single line of ripgrep output could not be decoded."""

    def __init__(self, line: str, reason: str) -> None:
        super().__init__(f"Malformed ripgrep output ({reason}): {line[:200]!r}")
        self.line = line
        self.reason = reason


class ToolFailed(SearchError):
    """ripgrep failed for one root (bad exit code, timeout or I/O error)."""

    def __init__(self, root: str, message: str) -> None:
        super().__init__(f"{root}: {message}")
        self.root = root


class SearchFailed(SearchError):
    """Every root failed, so there is no result to report."""

    def __init__(self, failures: list[ToolFailed]) -> None:
        summary = "; ".join(str(f) for f in failures)
        super().__init__(f"Search failed in all {len(failures)} root(s): {summary}")
        self.failures = failures


class SearchCancelled(SearchError):
    """The search was cancelled; partial results were discarded."""


class StoreError(SmartSearchError):
    """Failure talking to the Solr store."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StoreUnreachable(StoreError):
    """Connection or timeout failure reaching Solr."""


class StoreQueryRejected(StoreError):
    """Solr rejected the request, usually a malformed query."""

    def __init__(self, query: str | None, detail: str, status_code: int | None = 400) -> None:
        super().__init__(f"Solr rejected query {query!r}: {detail}", status_code)
        self.query = query
        self.detail = detail


class FileMetadataUnavailable(SmartSearchError):
    """File size/mtime could not be read. Never escapes the indexer."""
