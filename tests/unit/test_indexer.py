"""Tests for storing and re-querying search sessions."""

import re
from datetime import datetime, timezone

import pytest

from smart_search.config import Settings
from smart_search.errors import StoreError
from smart_search.indexer import (
    SESSION_PREFIX,
    build_documents,
    cleanup_older_than,
    delete_session,
    file_metadata,
    list_sessions,
    most_recent_session_id,
    new_session_id,
    search_stored,
    store_results,
    stored_queries,
    suggest,
)
from smart_search.models import Match, QuerySpec, StoredDocument, format_solr_datetime


def make_match(path, line, text="    render(frame)", before=("a",), after=("b", "c"), score=0.7):
    context = (*before, text, *after)
    return Match(
        path=path,
        line_number=line,
        column=4,
        text=text,
        context=context,
        match_index=len(before),
        score=score,
        root="/work",
    )


def seed(fake_solr, session_id, query, timestamp, count=1):
    for i in range(count):
        fake_solr.docs.append(
            {
                "id": f"{session_id}_{i}",
                "search_session_id": session_id,
                "original_query": query,
                "search_timestamp": timestamp,
                "file_path": "/work/a.py",
                "file_name": "a.py",
                "match_text": f"{query} here",
            }
        )


def test_new_session_id_format():
    first, second = new_session_id(), new_session_id()

    assert re.fullmatch(rf"{SESSION_PREFIX}\d+_[0-9a-f]{{32}}", first)
    assert first != second


def test_file_metadata(temp_dir):
    path = temp_dir / "a.txt"
    path.write_text("hello")

    size, modified = file_metadata(str(path))
    assert size == 5
    assert modified.tzinfo is not None


def test_file_metadata_missing_file(temp_dir):
    assert file_metadata(str(temp_dir / "gone.txt")) == (None, None)


def test_build_documents(temp_dir):
    path = temp_dir / "app.py"
    path.write_text("x\n")
    matches = [make_match(str(path), 3), make_match(str(path), 9), make_match("/missing/b.md", 1)]
    timestamp = datetime(2024, 1, 15, tzinfo=timezone.utc)

    docs = build_documents(matches, "render", QuerySpec(query="render"), "session_1_x", timestamp)

    assert [d.id for d in docs] == ["session_1_x_0", "session_1_x_1", "session_1_x_2"]
    assert [d.match_count_in_file for d in docs] == [2, 2, 1]
    first = docs[0]
    assert first.file_name == "app.py"
    assert first.file_extension == "py"
    assert first.match_text == "render(frame)"
    assert first.full_line == "    render(frame)"
    assert first.context_before == ["a"]
    assert first.context_after == ["b", "c"]
    assert (first.context_lines_before, first.context_lines_after) == (1, 2)
    assert first.match_type == "literal"
    assert first.display_content == "a\n>>>     render(frame) <<<\nb\nc"
    assert first.file_size == 2
    assert docs[2].file_size is None
    assert "file_size" not in docs[2].to_solr()


def test_store_and_requery_match_count(fake_solr, solr_client):
    """Three matches in one file come back with a per-file count of three."""
    matches = [make_match("/work/a.py", n) for n in (1, 5, 9)]
    spec = QuerySpec(query="render")

    session_id = store_results(solr_client, matches, "render", spec)
    results = search_stored(solr_client, spec, Settings(), session_id)

    assert session_id.startswith(SESSION_PREFIX)
    assert len(results) == 3
    assert all(r.document.match_count_in_file == 3 for r in results)
    assert all(r.document.search_session_id == session_id for r in results)
    assert "<mark" in results[0].match_text_html


def test_store_empty_skips_request(fake_solr, solr_client):
    session_id = store_results(solr_client, [], "nothing", QuerySpec(query="nothing"))

    assert session_id.startswith(SESSION_PREFIX)
    assert fake_solr.requests == []


def test_search_stored_filters_by_session(fake_solr, solr_client):
    seed(fake_solr, "session_1_a", "render", "2024-01-01T00:00:00.000Z")
    seed(fake_solr, "session_2_b", "render", "2024-01-02T00:00:00.000Z")

    results = search_stored(solr_client, QuerySpec(query="render"), Settings(), "session_1_a")

    assert [r.document.search_session_id for r in results] == ["session_1_a"]
    assert fake_solr.requests[0].url.params.get_list("fq") == ['search_session_id:"session_1_a"']


def test_search_stored_orders_ties_by_timestamp(fake_solr, solr_client):
    seed(fake_solr, "session_1_a", "render", "2024-01-01T00:00:00.000Z")
    seed(fake_solr, "session_2_b", "render", "2024-01-02T00:00:00.000Z")

    results = search_stored(solr_client, QuerySpec(query="render"), Settings())

    assert [r.document.search_session_id for r in results] == ["session_2_b", "session_1_a"]


def test_list_sessions_newest_first(fake_solr, solr_client):
    seed(fake_solr, "session_1_a", "older", "2024-01-01T00:00:00.000Z", count=2)
    seed(fake_solr, "session_3_c", "newest", "2024-03-01T00:00:00.000Z")
    seed(fake_solr, "session_2_b", "middle", "2024-02-01T00:00:00.000Z")

    sessions = list_sessions(solr_client)

    assert [s.session_id for s in sessions] == ["session_3_c", "session_2_b", "session_1_a"]
    assert sessions[2].query == "older"
    assert sessions[2].result_count == 2
    assert most_recent_session_id(solr_client) == "session_3_c"


def test_most_recent_session_id_when_empty(solr_client):
    assert most_recent_session_id(solr_client) is None


def test_stored_queries(fake_solr, solr_client):
    seed(fake_solr, "session_1_a", "render", "2024-01-01T00:00:00.000Z", count=2)
    seed(fake_solr, "session_2_b", "widget", "2024-01-02T00:00:00.000Z")

    assert stored_queries(solr_client) == ["render", "widget"]


def test_delete_session(fake_solr, solr_client):
    seed(fake_solr, "session_1_a", "render", "2024-01-01T00:00:00.000Z")
    seed(fake_solr, "session_2_b", "widget", "2024-01-02T00:00:00.000Z")

    delete_session(solr_client, "session_1_a")

    assert {d["search_session_id"] for d in fake_solr.docs} == {"session_2_b"}


def test_cleanup_older_than(fake_solr, solr_client):
    cleanup_older_than(solr_client, 7)

    [query] = fake_solr.deleted
    match = re.fullmatch(r"search_timestamp:\[\* TO (.+)\]", query)
    assert match
    cutoff = datetime.fromisoformat(match.group(1).replace("Z", "+00:00"))
    age = datetime.now(tz=timezone.utc) - cutoff
    assert 6.9 < age.total_seconds() / 86400 < 7.1


def test_suggest_live(fake_solr, solr_client):
    seed(fake_solr, "session_1_a", "renderWidget", "2024-01-01T00:00:00.000Z")

    suggestions = suggest(solr_client, "ren")

    assert "renderWidget" in suggestions
    assert suggestions == sorted(suggestions, key=lambda s: (not s.lower().startswith("ren"), len(s), s))


def test_suggest_session_mode_uses_latest(fake_solr, solr_client):
    seed(fake_solr, "session_1_a", "alphabet", "2024-01-01T00:00:00.000Z")
    seed(fake_solr, "session_2_b", "alpine", "2024-01-02T00:00:00.000Z")

    suggestions = suggest(solr_client, "alp", mode="session")

    assert "alpine" in suggestions
    assert "alphabet" not in suggestions


def test_suggest_tops_up_from_indexed_terms(fake_solr, solr_client):
    seed(fake_solr, "session_1_a", "renderWidget", "2024-01-01T00:00:00.000Z")
    fake_solr.terms = {"match_text": ["rendering", 4, "renderwidget", 2, "rendered", 1]}

    suggestions = suggest(solr_client, "rend", limit=5)

    assert suggestions[0] == "renderWidget"
    assert "rendering" in suggestions
    assert "rendered" in suggestions
    # already present under another case
    assert "renderwidget" not in suggestions
    [terms_request] = [r for r in fake_solr.requests if r.url.path.endswith("/terms")]
    assert terms_request.url.params["terms.fl"] == "match_text"
    assert terms_request.url.params["terms.prefix"] == "rend"


def test_suggest_skips_terms_when_full(fake_solr, solr_client):
    seed(fake_solr, "session_1_a", "renderWidget", "2024-01-01T00:00:00.000Z")
    fake_solr.terms = {"match_text": ["rendering", 4]}

    assert suggest(solr_client, "rend", limit=1) == ["renderWidget"]
    assert not any(r.url.path.endswith("/terms") for r in fake_solr.requests)


def test_suggest_without_terms_handler(fake_solr, solr_client, caplog):
    """A core without /terms still returns what the stored lines offer."""
    seed(fake_solr, "session_1_a", "renderWidget", "2024-01-01T00:00:00.000Z")

    with caplog.at_level("WARNING", logger="smart_search.indexer"):
        suggestions = suggest(solr_client, "ren")

    assert "renderWidget" in suggestions
    assert "Terms lookup failed" in caplog.text


def test_suggest_field_values(fake_solr, solr_client):
    for i, ext in enumerate(["ts", "tsx", "ts", "py"]):
        fake_solr.docs.append(
            {
                "id": f"session_1_a_{i}",
                "search_session_id": "session_1_a",
                "search_timestamp": "2024-01-01T00:00:00.000Z",
                "file_extension": ext,
            }
        )

    suggestions = suggest(solr_client, "file_extension:t")

    assert suggestions == ["file_extension:ts", "file_extension:tsx"]
    facet_request = fake_solr.requests[-1]
    assert facet_request.url.params["facet.field"] == "file_extension"
    assert facet_request.url.params["q"] == "file_extension:t*"


@pytest.mark.parametrize("partial", [":ts", "no colon", "bad field:ts", "file_extension:"])
def test_suggest_field_values_need_field_and_value(fake_solr, solr_client, partial):
    suggest(solr_client, partial)
    assert not any(r.url.params.get("facet") == "true" for r in fake_solr.requests)


def test_search_stored_rejects_malformed_document(fake_solr, solr_client):
    fake_solr.docs.append({"id": "session_1_a_0", "search_session_id": "session_1_a", "match_text": "render"})

    with pytest.raises(StoreError, match="Malformed stored document 'session_1_a_0'"):
        search_stored(solr_client, QuerySpec(query="render"), Settings())

@pytest.mark.parametrize("partial", ["", "r"])
def test_suggest_needs_two_characters(solr_client, fake_solr, partial):
    assert suggest(solr_client, partial) == []
    assert fake_solr.requests == []


def test_stored_document_round_trip_tolerates_lists(make_document):
    doc = make_document(file_size=10)
    raw = doc.to_solr()
    raw["match_text"] = [raw["match_text"]]
    raw["search_timestamp"] = [format_solr_datetime(doc.search_timestamp)]

    decoded = StoredDocument.from_solr(raw)

    assert decoded.match_text == doc.match_text
    assert decoded.search_timestamp == doc.search_timestamp
    assert decoded.file_size == 10
    assert decoded.file_modified is None
