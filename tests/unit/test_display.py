"""Tests for terminal rendering."""

import json
from datetime import datetime, timezone

from rich.console import Console

from smart_search import display
from smart_search.highlight import highlight
from smart_search.models import Match, RankedDocument, SessionInfo


def capture(monkeypatch):
    console = Console(record=True, width=200, color_system=None)
    monkeypatch.setattr(display, "console", console)
    return console


def test_html_to_text_unescapes_and_styles():
    text = display.html_to_text(highlight("a < render", "render"))

    assert text.plain == "a < render"
    [span] = text.spans
    assert (span.start, span.end, span.style) == (4, 10, display.MARK_STYLE)


def test_format_matches(monkeypatch):
    console = capture(monkeypatch)
    match = Match(
        path="src/app.py",
        line_number=12,
        column=4,
        text="def render():",
        context=("# before", "def render():"),
        match_index=1,
        score=0.5,
    )

    display.format_matches([match], "render", 5)

    output = console.export_text()
    assert "src/app.py:12" in output
    assert "50%" in output
    assert "# before" in output
    assert "Found 1 matches in 5ms" in output


def test_format_matches_empty(monkeypatch):
    console = capture(monkeypatch)
    display.format_matches([], "render", 1)
    assert "No matches found" in console.export_text()


def test_format_matches_json(monkeypatch):
    console = capture(monkeypatch)
    match = Match(path="a.py", line_number=1, column=0, text="x", context=("x",), match_index=0, score=0.5)

    display.format_matches_json([match], "x", 3, "session_1_a")

    data = json.loads(console.export_text())
    assert data["session_id"] == "session_1_a"
    assert data["results"][0]["file"] == "a.py"
    assert data["total_results"] == 1


def test_format_documents(monkeypatch, make_document):
    console = capture(monkeypatch)
    doc = make_document(match_count_in_file=3)
    ranked = RankedDocument(doc, 1.25, match_text_html=highlight(doc.match_text, "render"))

    display.format_documents([ranked], 9)

    output = console.export_text()
    assert "/work/src/app.py:12" in output
    assert "3 in file" in output
    assert "def render(self):" in output


def test_format_paths_unique(monkeypatch):
    console = capture(monkeypatch)
    matches = [
        Match(path=p, line_number=1, column=0, text="x", context=("x",), match_index=0)
        for p in ("b.py", "a.py", "b.py")
    ]

    display.format_paths(matches)

    assert console.export_text().split() == ["a.py", "b.py"]


def test_format_sessions(monkeypatch):
    console = capture(monkeypatch)
    session = SessionInfo("session_1_a", "render", datetime.now(tz=timezone.utc), 4)

    display.format_sessions([session])

    output = console.export_text()
    assert "session_1_a" in output
    assert "render" in output
