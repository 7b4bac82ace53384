"""CLI for smart-search."""

import logging
import time
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from smart_search import __version__
from smart_search.config import Settings, load_settings
from smart_search.errors import SmartSearchError, StoreUnreachable

app = typer.Typer(
    name="smart-search",
    help="Search workspace files with ripgrep and re-query stored results in Solr.",
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"smart-search {__version__}")
        raise typer.Exit()


def setup_logging(verbose: bool) -> None:
    logger = logging.getLogger("smart_search")
    logger.handlers.clear()
    logger.addHandler(RichHandler(console=Console(stderr=True), show_path=False))
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False


def fail(error: Exception) -> None:
    console.print(f"[red]Error: {escape(str(error))}[/red]")
    raise typer.Exit(1)


def _settings(solr_url: str | None = None) -> Settings:
    try:
        settings = load_settings()
    except ValueError as e:
        fail(e)
    return settings.with_overrides(solr_url=solr_url)


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", help="Show debug logging")] = False,
) -> None:
    """Search workspace files and stored search sessions."""
    setup_logging(verbose)


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search query")],
    roots: Annotated[
        list[str] | None, typer.Option("--root", "-r", help="Workspace root (can repeat, default: .)")
    ] = None,
    case_sensitive: Annotated[
        bool | None, typer.Option("--case-sensitive/--ignore-case", "-i/-I", help="Match case")
    ] = None,
    whole_word: Annotated[bool, typer.Option("--word", "-w", help="Match whole words only")] = False,
    use_regex: Annotated[bool, typer.Option("--regex", "-e", help="Treat query as a regex")] = False,
    include: Annotated[
        list[str] | None, typer.Option("--include", "-g", help="Include glob (can repeat)")
    ] = None,
    exclude: Annotated[
        list[str] | None, typer.Option("--exclude", "-x", help="Exclude glob (can repeat)")
    ] = None,
    limit: Annotated[int | None, typer.Option("--limit", "-n", help="Maximum results")] = None,
    before: Annotated[int | None, typer.Option("--before", "-B", help="Context lines before")] = None,
    after: Annotated[int | None, typer.Option("--after", "-A", help="Context lines after")] = None,
    context: Annotated[
        int | None, typer.Option("--context", "-C", help="Context lines before and after")
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
    paths_only: Annotated[bool, typer.Option("--paths", help="Only output file paths")] = False,
    store: Annotated[bool, typer.Option("--store", help="Store results as a new session")] = False,
) -> None:
    """Run a fresh search across workspace roots."""
    if not query.strip():
        console.print("[red]Error: Query required[/red]")
        raise typer.Exit(1)

    from smart_search.display import format_matches, format_matches_json, format_paths
    from smart_search.models import QuerySpec
    from smart_search.pipeline import fresh_search, store_and_get_session_id

    settings = _settings()
    spec = QuerySpec(
        query=query,
        case_sensitive=case_sensitive,
        whole_word=whole_word or None,
        use_regex=use_regex,
        include_globs=include or [],
        exclude_globs=exclude or [],
        max_results=limit,
        context_before=before,
        context_after=after,
        context=context,
    )

    start = time.time()
    try:
        matches = fresh_search(spec, roots or ["."], settings)
        session_id = store_and_get_session_id(matches, query, spec, settings) if store else None
    except SmartSearchError as e:
        fail(e)
    elapsed_ms = int((time.time() - start) * 1000)

    if json_output:
        format_matches_json(matches, query, elapsed_ms, session_id)
        return
    if paths_only:
        format_paths(matches)
        return
    format_matches(matches, query, elapsed_ms)
    if session_id:
        console.print(f"Stored as [cyan]{session_id}[/cyan]")


@app.command()
def symbols(
    name: Annotated[str, typer.Argument(help="Symbol name")],
    roots: Annotated[
        list[str] | None, typer.Option("--root", "-r", help="Workspace root (can repeat, default: .)")
    ] = None,
    include: Annotated[
        list[str] | None, typer.Option("--include", "-g", help="Include glob (can repeat)")
    ] = None,
    exclude: Annotated[
        list[str] | None, typer.Option("--exclude", "-x", help="Exclude glob (can repeat)")
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Find declarations of a function, class or variable."""
    if not name.strip():
        console.print("[red]Error: Symbol name required[/red]")
        raise typer.Exit(1)

    from smart_search.display import format_matches, format_matches_json
    from smart_search.searcher import search_symbols

    start = time.time()
    try:
        matches = search_symbols(
            name, roots or ["."], _settings(), include_globs=include or [], exclude_globs=exclude or []
        )
    except SmartSearchError as e:
        fail(e)
    elapsed_ms = int((time.time() - start) * 1000)

    if json_output:
        format_matches_json(matches, name, elapsed_ms)
    else:
        format_matches(matches, name, elapsed_ms)


@app.command()
def stored(
    query: Annotated[str, typer.Argument(help="Query over stored results")],
    session: Annotated[str | None, typer.Option("--session", "-s", help="Restrict to one session")] = None,
    latest: Annotated[bool, typer.Option("--latest", help="Restrict to the most recent session")] = False,
    limit: Annotated[int | None, typer.Option("--limit", "-n", help="Maximum results")] = None,
    solr_url: Annotated[str | None, typer.Option("--solr-url", help="Solr base URL")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Search previously stored results."""
    from smart_search.display import format_documents, format_documents_json
    from smart_search.indexer import most_recent_session_id, search_stored
    from smart_search.models import QuerySpec
    from smart_search.storage import get_client

    settings = _settings(solr_url)
    spec = QuerySpec(query=query, max_results=limit)

    start = time.time()
    try:
        with get_client(settings) as client:
            if latest and session is None:
                session = most_recent_session_id(client)
                if session is None:
                    console.print("[yellow]No stored sessions.[/yellow]")
                    return
            documents = search_stored(client, spec, settings, session)
    except StoreUnreachable as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        console.print("[yellow]Solr is unavailable; run 'smart-search search' for a fresh search.[/yellow]")
        raise typer.Exit(1)
    except SmartSearchError as e:
        fail(e)
    elapsed_ms = int((time.time() - start) * 1000)

    if json_output:
        format_documents_json(documents, query, elapsed_ms)
    else:
        format_documents(documents, elapsed_ms)


@app.command()
def sessions(
    solr_url: Annotated[str | None, typer.Option("--solr-url", help="Solr base URL")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """List stored sessions, newest first."""
    from smart_search.display import format_sessions
    from smart_search.pipeline import list_sessions

    try:
        session_list = list_sessions(_settings(solr_url))
    except SmartSearchError as e:
        fail(e)

    if json_output:
        console.print_json(
            data={
                "sessions": [
                    {
                        "session_id": s.session_id,
                        "query": s.query,
                        "timestamp": s.timestamp.isoformat(),
                        "result_count": s.result_count,
                    }
                    for s in session_list
                ]
            }
        )
    else:
        format_sessions(session_list)


@app.command()
def queries(
    solr_url: Annotated[str | None, typer.Option("--solr-url", help="Solr base URL")] = None,
) -> None:
    """List distinct stored queries."""
    from smart_search.indexer import stored_queries
    from smart_search.storage import get_client

    try:
        with get_client(_settings(solr_url)) as client:
            query_list = stored_queries(client)
    except SmartSearchError as e:
        fail(e)

    if not query_list:
        console.print("[yellow]No stored queries.[/yellow]")
        return
    for q in query_list:
        console.print(f"[cyan]{q}[/cyan]")


@app.command()
def suggest(
    partial: Annotated[str, typer.Argument(help="Partial query")],
    session: Annotated[
        bool, typer.Option("--session", help="Suggest from the most recent session only")
    ] = False,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of suggestions")] = 10,
    solr_url: Annotated[str | None, typer.Option("--solr-url", help="Solr base URL")] = None,
) -> None:
    """Auto-complete a query from stored results."""
    from smart_search.indexer import suggest as suggest_terms
    from smart_search.storage import get_client

    try:
        with get_client(_settings(solr_url)) as client:
            suggestions = suggest_terms(client, partial, limit=limit, mode="session" if session else "live")
    except SmartSearchError as e:
        fail(e)

    for suggestion in suggestions:
        console.print(suggestion, highlight=False)


@app.command()
def cleanup(
    days: Annotated[int, typer.Option("--days", "-d", help="Delete sessions older than N days")] = 30,
    solr_url: Annotated[str | None, typer.Option("--solr-url", help="Solr base URL")] = None,
) -> None:
    """Delete old stored sessions."""
    from smart_search.pipeline import cleanup_older_than

    try:
        cleanup_older_than(days, _settings(solr_url))
    except SmartSearchError as e:
        fail(e)
    console.print(f"Deleted sessions older than {days} days")


@app.command()
def delete(
    session_id: Annotated[str, typer.Argument(help="Session ID")],
    solr_url: Annotated[str | None, typer.Option("--solr-url", help="Solr base URL")] = None,
) -> None:
    """Delete one stored session."""
    from smart_search.indexer import delete_session
    from smart_search.storage import get_client

    try:
        with get_client(_settings(solr_url)) as client:
            delete_session(client, session_id)
    except SmartSearchError as e:
        fail(e)
    console.print(f"Deleted [cyan]{session_id}[/cyan]")


@app.command()
def files(
    roots: Annotated[
        list[str] | None, typer.Option("--root", "-r", help="Workspace root (can repeat, default: .)")
    ] = None,
    include: Annotated[
        list[str] | None, typer.Option("--include", "-g", help="Include glob (can repeat)")
    ] = None,
    exclude: Annotated[
        list[str] | None, typer.Option("--exclude", "-x", help="Exclude glob (can repeat)")
    ] = None,
) -> None:
    """Preview the files a set of globs selects."""
    from smart_search.globs import SearchGlobs, preview_globs, resolve_globs
    from smart_search.ripgrep import ensure_ripgrep

    settings = _settings()
    include_globs, exclude_globs = resolve_globs(
        SearchGlobs(include_globs=include or [], exclude_globs=exclude or [])
    )
    try:
        ensure_ripgrep(settings)
        preview = preview_globs(roots or ["."], include_globs, exclude_globs, settings)
    except SmartSearchError as e:
        fail(e)

    for root, paths in preview.items():
        console.print(f"[bold]{root}[/bold] ({len(paths)} files)")
        for path in paths:
            console.print(f"  {path}", highlight=False)


@app.command()
def status(
    solr_url: Annotated[str | None, typer.Option("--solr-url", help="Solr base URL")] = None,
) -> None:
    """Show whether ripgrep and the Solr core are available."""
    from smart_search.indexer import list_sessions
    from smart_search.ripgrep import ensure_ripgrep
    from smart_search.storage import get_client, ping

    settings = _settings(solr_url)
    try:
        console.print(f"ripgrep: {ensure_ripgrep(settings)}", highlight=False)
    except SmartSearchError as e:
        console.print(f"ripgrep: [red]unavailable[/red] ({escape(str(e))})")

    console.print(f"Solr core: {settings.core_url}", highlight=False)
    with get_client(settings) as client:
        if not ping(client):
            console.print("Solr: [red]unreachable[/red]")
            console.print("[yellow]Stored searches are unavailable; fresh searches still work.[/yellow]")
            return
        console.print("Solr: [green]reachable[/green]")
        try:
            console.print(f"Sessions stored: {len(list_sessions(client))}")
        except SmartSearchError as e:
            fail(e)


@app.command()
def highlight(
    text: Annotated[str, typer.Argument(help="Text to highlight")],
    query: Annotated[str, typer.Argument(help="Query whose terms are marked")],
) -> None:
    """Print HTML-safe text with query terms marked."""
    from smart_search.pipeline import render_highlighted

    console.print(render_highlighted(text, query), highlight=False, markup=False, soft_wrap=True)


if __name__ == "__main__":
    app()
