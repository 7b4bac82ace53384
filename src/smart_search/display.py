"""Terminal output for search results."""

import html
from datetime import datetime, timezone

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from smart_search.highlight import highlight, parse_highlighted
from smart_search.models import Match, RankedDocument, SessionInfo

console = Console()

MARK_STYLE = "bold yellow"
MAX_CONTEXT_LINES = 3


def html_to_text(marked: str, style: str = "") -> Text:
    """Convert mark-tagged HTML into Rich text with highlighted spans."""
    text = Text(style=style)
    for segment in parse_highlighted(marked):
        text.append(html.unescape(segment.text), style=MARK_STYLE if segment.highlighted else None)
    return text


def _age(timestamp: datetime) -> str:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    age = datetime.now(tz=timezone.utc) - timestamp
    if age.days > 0:
        return f"{age.days} days ago"
    if age.seconds > 3600:
        return f"{age.seconds // 3600} hours ago"
    return f"{age.seconds // 60} minutes ago"


def format_matches(matches: list[Match], query: str, search_time_ms: int) -> None:
    """Human-readable output for a fresh search."""
    if not matches:
        console.print("[yellow]No matches found. Try a different query.[/yellow]")
        return

    for i, match in enumerate(matches, 1):
        before = match.context_before[-MAX_CONTEXT_LINES:]
        after = match.context_after[:MAX_CONTEXT_LINES]
        body = Text()
        for line in before:
            body.append(line + "\n", style="dim")
        body.append_text(html_to_text(highlight(match.text, query)))
        for line in after:
            body.append("\n" + line, style="dim")

        header = Text()
        header.append(f"[{i}] ", style="bold cyan")
        header.append(f"{match.path}:{match.line_number}", style="green")
        header.append(f" | {int(match.score * 100)}%", style="dim")

        console.print(Panel(body, title=header, title_align="left"))

    console.print("─" * 50)
    console.print(f"Found {len(matches)} matches in {search_time_ms}ms")


def format_documents(documents: list[RankedDocument], search_time_ms: int) -> None:
    """Human-readable output for a stored-results search."""
    if not documents:
        console.print("[yellow]No stored results matched.[/yellow]")
        return

    for i, ranked in enumerate(documents, 1):
        doc = ranked.document
        parts: list[Text] = [html_to_text(line, "dim") for line in ranked.context_before_html[-MAX_CONTEXT_LINES:]]
        parts.append(html_to_text(ranked.full_line_html or ranked.match_text_html))
        parts.extend(html_to_text(line, "dim") for line in ranked.context_after_html[:MAX_CONTEXT_LINES])

        header = Text()
        header.append(f"[{i}] ", style="bold cyan")
        header.append(f"{doc.file_path}:{doc.line_number}", style="green")
        header.append(f" | score {ranked.score:.3f}", style="dim")
        header.append(f" | {doc.match_count_in_file} in file", style="dim")

        console.print(
            Panel(
                Group(*parts),
                title=header,
                title_align="left",
                subtitle=f"→ {doc.search_session_id} | {_age(doc.search_timestamp)}",
                subtitle_align="left",
            )
        )

    console.print("─" * 50)
    console.print(f"Found {len(documents)} stored results in {search_time_ms}ms")


def format_matches_json(matches: list[Match], query: str, search_time_ms: int, session_id: str | None = None) -> None:
    output = {
        "results": [
            {
                "rank": i + 1,
                "score": round(m.score, 4),
                "file": m.path,
                "line": m.line_number,
                "column": m.column,
                "content": m.text,
                "context": list(m.context),
                "submatches": [{"start": s.start, "end": s.end, "text": s.text} for s in m.submatches],
            }
            for i, m in enumerate(matches)
        ],
        "query": query,
        "session_id": session_id,
        "total_results": len(matches),
        "search_time_ms": search_time_ms,
    }
    console.print_json(data=output)


def format_documents_json(documents: list[RankedDocument], query: str, search_time_ms: int) -> None:
    output = {
        "results": [
            {
                "rank": i + 1,
                "score": round(r.score, 4),
                "session_id": r.document.search_session_id,
                "file": r.document.file_path,
                "line": r.document.line_number,
                "match_count_in_file": r.document.match_count_in_file,
                "match_text_html": r.match_text_html,
                "snippets": r.snippets,
            }
            for i, r in enumerate(documents)
        ],
        "query": query,
        "total_results": len(documents),
        "search_time_ms": search_time_ms,
    }
    console.print_json(data=output)


def format_paths(matches: list[Match]) -> None:
    """Print only unique file paths."""
    for path in sorted({m.path for m in matches}):
        console.print(path, highlight=False)


def format_sessions(sessions: list[SessionInfo]) -> None:
    if not sessions:
        console.print("[yellow]No stored sessions.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Session", style="cyan")
    table.add_column("Query", style="green")
    table.add_column("Results", justify="right")
    table.add_column("Stored")
    for session in sessions:
        table.add_row(session.session_id, session.query, str(session.result_count), _age(session.timestamp))
    console.print(table)
