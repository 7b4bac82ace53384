"""Pytest fixtures for smart-search tests."""

import json
import re
import tempfile
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path

import httpx
import pytest

SOLR_BASE = "http://solr.test/solr/smart-search-results/"
ACK = {"responseHeader": {"status": 0, "QTime": 1}}
_SESSION_CLAUSE = re.compile(r'search_session_id:"([^"]+)"')
_PREFIX_QUERY = re.compile(r"(\w+):(\S+)\*")


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def rg_record():
    """Build one line of ``rg --json`` output."""

    def _record(kind, path="src/app.py", line_number=1, text="", submatches=()):
        if kind not in ("match", "context"):
            return json.dumps({"type": kind, "data": {"path": {"text": path}}})
        data = {
            "path": {"text": path},
            "lines": {"text": text + "\n"},
            "line_number": line_number,
            "absolute_offset": 0,
            "submatches": [
                {"match": {"text": text.encode()[s:e].decode()}, "start": s, "end": e}
                for s, e in submatches
            ],
        }
        return json.dumps({"type": kind, "data": data})

    return _record


class FakeSolr:
    """In-memory stand-in for the Solr core, served through httpx.MockTransport."""

    def __init__(self):
        self.docs: list[dict] = []
        self.highlighting: dict = {}
        self.requests: list[httpx.Request] = []
        self.deleted: list[str] = []
        # terms component output per field; None means the core has no /terms handler
        self.terms: dict[str, list] | None = None

    def _filter(self, params) -> list[dict]:
        clauses = [params.get("q", "")] + params.get_list("fq")
        sessions = {m for c in clauses for m in _SESSION_CLAUSE.findall(c)}
        docs = [d for d in self.docs if not sessions or d["search_session_id"] in sessions]
        prefix = _PREFIX_QUERY.fullmatch(params.get("q", ""))
        if prefix:
            field, value = prefix.group(1), prefix.group(2).replace("\\", "").lower()
            docs = [d for d in docs if str(d.get(field, "")).lower().startswith(value)]
        return docs

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        params = request.url.params

        if path.endswith("/update/json/docs"):
            self.docs.extend(json.loads(request.content))
            return httpx.Response(200, json=ACK)

        if path.endswith("/update"):
            query = json.loads(request.content)["delete"]["query"]
            self.deleted.append(query)
            doomed = set(_SESSION_CLAUSE.findall(query))
            self.docs = [d for d in self.docs if d["search_session_id"] not in doomed]
            return httpx.Response(200, json=ACK)

        if path.endswith("/select"):
            docs = self._filter(params)
            if params.get("facet") == "true":
                field = params["facet.field"]
                flat = []
                for value, count in Counter(d[field] for d in docs if field in d).most_common():
                    flat += [value, count]
                return httpx.Response(
                    200,
                    json={
                        **ACK,
                        "response": {"numFound": len(docs), "docs": []},
                        "facet_counts": {"facet_fields": {field: flat}},
                    },
                )
            if params.get("sort", "").startswith("search_timestamp desc"):
                docs.sort(key=lambda d: d["search_timestamp"], reverse=True)
            rows = int(params.get("rows", 10))
            return httpx.Response(
                200,
                json={
                    **ACK,
                    "response": {
                        "numFound": len(docs),
                        "docs": [dict(d, score=1.0) for d in docs[:rows]],
                    },
                    "highlighting": self.highlighting,
                },
            )

        if path.endswith("/terms") and self.terms is not None:
            return httpx.Response(200, json={**ACK, "terms": self.terms})

        return httpx.Response(404, json={"error": {"msg": f"no handler for {path}"}})


@pytest.fixture
def fake_solr():
    return FakeSolr()


@pytest.fixture
def solr_client(fake_solr):
    """An httpx client whose requests are answered by ``fake_solr``."""
    with httpx.Client(base_url=SOLR_BASE, transport=httpx.MockTransport(fake_solr.handler)) as client:
        yield client


@pytest.fixture
def make_document():
    """Factory for StoredDocument objects with sensible defaults."""
    from smart_search.models import StoredDocument

    def _make(**overrides):
        values = {
            "id": "session_1_abc_0",
            "search_session_id": "session_1_abc",
            "original_query": "render",
            "search_timestamp": datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc),
            "workspace_path": "/work",
            "file_path": "/work/src/app.py",
            "file_name": "app.py",
            "file_extension": "py",
            "line_number": 12,
            "column_number": 4,
            "match_text": "def render(self):",
            "match_text_raw": "    def render(self):",
            "full_line": "    def render(self):",
            "full_line_raw": "    def render(self):",
        }
        values.update(overrides)
        return StoredDocument(**values)

    return _make
