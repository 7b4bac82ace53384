"""Context-window attribution for interleaved ripgrep context/match events.

ripgrep emits a single stream of context and match records per file. When
two matches sit closer together than the requested context, the lines
between them are emitted once; this module decides which match owns each.
A context line belongs to whichever neighbouring match is nearer. Ties go
to the later match.
"""

from dataclasses import dataclass
from itertools import groupby
from typing import Iterable, Iterator, Sequence

from smart_search.ripgrep import ContextEvent, Event, MatchEvent


@dataclass(frozen=True)
class ContextWindow:
    """A match event and the context events attributed to it."""

    match: MatchEvent
    before: tuple[ContextEvent, ...]
    after: tuple[ContextEvent, ...]

    @property
    def lines(self) -> tuple[str, ...]:
        return (
            tuple(e.text for e in self.before)
            + (self.match.text,)
            + tuple(e.text for e in self.after)
        )


def attribute_context(events: Sequence[Event]) -> list[ContextWindow]:
    """Split one file's events into per-match context windows.

    The result partitions the context events: no line is attributed to two
    matches. Context events not adjacent to any match are dropped.
    """
    positions = [i for i, e in enumerate(events) if isinstance(e, MatchEvent)]
    windows: list[ContextWindow] = []

    for n, idx in enumerate(positions):
        match = events[idx]
        assert isinstance(match, MatchEvent)
        prev_line = events[positions[n - 1]].line_number if n > 0 else None
        next_line = events[positions[n + 1]].line_number if n + 1 < len(positions) else None

        before: list[ContextEvent] = []
        for j in range(idx - 1, -1, -1):
            event = events[j]
            if not isinstance(event, ContextEvent):
                break
            to_current = match.line_number - event.line_number
            if prev_line is not None and to_current > event.line_number - prev_line:
                break
            before.append(event)
        before.reverse()

        after: list[ContextEvent] = []
        for j in range(idx + 1, len(events)):
            event = events[j]
            if not isinstance(event, ContextEvent):
                break
            to_current = event.line_number - match.line_number
            if next_line is not None and to_current >= next_line - event.line_number:
                break
            after.append(event)

        windows.append(ContextWindow(match, tuple(before), tuple(after)))

    return windows


def group_by_file(events: Iterable[Event]) -> Iterator[tuple[str, list[Event]]]:
    """Group a ripgrep event stream into consecutive per-file runs."""
    for path, run in groupby(events, key=lambda e: e.path):
        yield path, list(run)
