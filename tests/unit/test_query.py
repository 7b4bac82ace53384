"""Tests for query translation."""

import pytest

from smart_search.config import DEFAULT_FIELD_BOOSTS, DEFAULT_FIELDS, Settings
from smart_search.models import QuerySpec
from smart_search.query import (
    MATCH_ALL,
    build_search_params,
    create_display_content,
    has_field_spec,
    is_code_like,
    is_filename_like,
    sanitize_field_query,
    sanitize_query,
    session_filter,
    translate,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("", "*"),
        ("render", "render"),
        ("a+b", "a\\+b"),
        ("foo:bar", "foo\\:bar"),
        ("path/to", "path\\/to"),
        ("(x)", "\\(x\\)"),
        ('say "hi"', 'say \\"hi\\"'),
    ],
)
def test_sanitize_query(raw, expected):
    assert sanitize_query(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_empty_query_matches_all(raw):
    assert translate(raw, DEFAULT_FIELDS) == MATCH_ALL


def test_plain_query_uses_default_fields():
    assert translate("render", DEFAULT_FIELDS) == "content_all:(render) OR code_all:(render)"


def test_filename_query_routes_to_name_fields():
    assert translate("utils.py", DEFAULT_FIELDS, DEFAULT_FIELD_BOOSTS) == (
        "file_name:(utils.py)^3 OR file_path:(utils.py)^1.5"
    )


def test_code_query_boosts_code_field():
    assert translate("foo()", DEFAULT_FIELDS, DEFAULT_FIELD_BOOSTS) == (
        "code_all:(foo\\(\\))^2 OR content_all:(foo\\(\\))"
    )


def test_quoted_phrase_is_preserved():
    assert translate('"a:b"', DEFAULT_FIELDS) == 'content_all:("a:b") OR code_all:("a:b")'


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("file_extension:ts match_text:render", "file_extension:ts match_text:render"),
        ("file_name:*.js", "file_name:*.js"),
        ('match_text:"hello world"', 'match_text:"hello world"'),
        ("file_path:src/app", "file_path:src\\/app"),
        ("file_extension:ts render", "file_extension:ts render"),
    ],
)
def test_field_qualified_queries(raw, expected):
    assert has_field_spec(raw)
    assert translate(raw, DEFAULT_FIELDS) == expected
    assert sanitize_field_query(raw) == expected


def test_field_spec_detection():
    assert has_field_spec("file_name:app")
    assert not has_field_spec("plain words")
    assert not has_field_spec('"quoted: phrase"')


def test_shape_detection():
    assert is_filename_like("index.tsx")
    assert not is_filename_like("index tsx")
    assert not is_filename_like("render")
    assert is_code_like("x => x + 1")
    assert is_code_like("import os")
    assert not is_code_like("hello world")


def test_session_filter():
    assert session_filter("session_1_abc") == 'search_session_id:"session_1_abc"'


def test_build_search_params():
    settings = Settings(max_results=25)
    spec = QuerySpec(query="render", case_sensitive=True)
    params = build_search_params(spec, "session_1_abc", settings)

    assert params["q"] == "content_all:(render) OR code_all:(render)"
    assert params["rows"] == 25
    assert params["sort"] == "score desc, search_timestamp desc"
    assert params["fl"] == "*,score"
    assert params["fq"] == ['search_session_id:"session_1_abc"', "case_sensitive:true"]
    assert params["hl"] == "true"
    assert params["hl.simple.pre"] == '<mark class="highlight">'


def test_build_search_params_without_filters():
    params = build_search_params(QuerySpec(query=""), None, Settings())

    assert params["q"] == MATCH_ALL
    assert "fq" not in params
    assert params["rows"] == 100


def test_create_display_content():
    content = create_display_content("match", ["a", "b"], ["c"])
    assert content == "a\nb\n>>> match <<<\nc"


def test_mixed_phrase_query_keeps_phrase():
    assert translate('a "b c"', DEFAULT_FIELDS) == 'content_all:(a "b c") OR code_all:(a "b c")'


def test_minimal_field_query():
    assert translate("a:b", DEFAULT_FIELDS) == "a:b"
