"""Fresh searches: ripgrep across workspace roots, scored and ranked."""

import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Sequence

from smart_search.config import Settings
from smart_search.context import ContextWindow, attribute_context, group_by_file
from smart_search.errors import NoWorkspaceError, SearchCancelled, SearchFailed, ToolFailed
from smart_search.models import Match, QuerySpec
from smart_search.ripgrep import ensure_ripgrep, stream_ripgrep
from smart_search.scoring import apply_file_frequency_bonus, rank_matches, score_match

logger = logging.getLogger(__name__)

SYMBOL_RESULT_LIMIT = 50

# declaration shapes across the common languages; {name} is already escaped
_SYMBOL_PATTERNS = (
    r"function\s+{name}",
    r"class\s+{name}",
    r"interface\s+{name}",
    r"type\s+{name}",
    r"const\s+{name}",
    r"let\s+{name}",
    r"var\s+{name}",
    r"def\s+{name}",
    r"public\s+.*{name}",
    r"private\s+.*{name}",
    r"protected\s+.*{name}",
)

# characters with meaning in ripgrep's regex syntax
_RG_META = re.compile(r"([\\.+*?()|\[\]{}^$#&~-])")


def window_to_match(window: ContextWindow, spec: QuerySpec, root: str | None = None) -> Match:
    """Build a scored Match from an attributed context window."""
    event = window.match
    submatches = event.submatches
    return Match(
        path=event.path,
        line_number=event.line_number,
        column=submatches[0].start if submatches else 0,
        text=event.text,
        context=window.lines,
        match_index=len(window.before),
        score=score_match(event.text, event.path, submatches, spec),
        submatches=submatches,
        root=root,
    )


def search_root(
    spec: QuerySpec,
    root: str,
    settings: Settings,
    cancel: threading.Event | None = None,
) -> list[Match]:
    """Search a single workspace root. Failures raise; callers isolate them."""
    matches: list[Match] = []
    for _path, events in group_by_file(stream_ripgrep(spec, root, settings, cancel)):
        for window in attribute_context(events):
            matches.append(window_to_match(window, spec, root))
    logger.debug("%d matches in %s", len(matches), root)
    return matches


def _search_root_isolated(
    spec: QuerySpec,
    root: str,
    settings: Settings,
    cancel: threading.Event | None,
) -> tuple[list[Match], ToolFailed | None]:
    try:
        return search_root(spec, root, settings, cancel), None
    except ToolFailed as e:
        logger.warning("Search failed in %s: %s", root, e)
        return [], e


def search(
    spec: QuerySpec,
    roots: Sequence[str],
    settings: Settings,
    cancel: threading.Event | None = None,
) -> list[Match]:
    """Run a fresh search over every root and return the top-scoring matches.

    Roots run concurrently when there are more than one and no more than
    ``settings.max_parallel_roots``; otherwise one at a time. A failing root
    contributes nothing, but if every root fails SearchFailed is raised.
    """
    if not roots:
        raise NoWorkspaceError()
    ensure_ripgrep(settings)

    resolved = [str(Path(root).resolve()) for root in roots]

    if 1 < len(resolved) <= settings.max_parallel_roots:
        with ThreadPoolExecutor(max_workers=len(resolved), thread_name_prefix="rg") as executor:
            outcomes = list(
                executor.map(lambda r: _search_root_isolated(spec, r, settings, cancel), resolved)
            )
    else:
        outcomes = []
        for root in resolved:
            if cancel is not None and cancel.is_set():
                break
            outcomes.append(_search_root_isolated(spec, root, settings, cancel))

    if cancel is not None and cancel.is_set():
        raise SearchCancelled("Search cancelled")

    failures = [failure for _, failure in outcomes if failure is not None]
    if failures and len(failures) == len(resolved):
        raise SearchFailed(failures)

    matches = [m for root_matches, _ in outcomes for m in root_matches]
    matches = apply_file_frequency_bonus(matches)
    return rank_matches(matches, spec.limit(settings))


def symbol_pattern(name: str) -> str:
    """Regex alternation matching declarations of ``name``."""
    escaped = _RG_META.sub(r"\\\1", name.strip())
    return "|".join(p.format(name=escaped) for p in _SYMBOL_PATTERNS)


def search_symbols(
    name: str,
    roots: Sequence[str],
    settings: Settings,
    cancel: threading.Event | None = None,
    include_globs: Sequence[str] = (),
    exclude_globs: Sequence[str] = (),
) -> list[Match]:
    """Find likely declarations of ``name`` (functions, classes, variables)."""
    if not name.strip():
        raise ValueError("symbol name required")
    spec = QuerySpec(
        query=symbol_pattern(name),
        case_sensitive=False,
        use_regex=True,
        include_globs=list(include_globs),
        exclude_globs=list(exclude_globs),
        max_results=SYMBOL_RESULT_LIMIT,
    )
    return search(spec, roots, settings, cancel)
