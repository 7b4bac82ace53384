"""HTTP access to the Solr core that holds stored search results.

Responses are decoded once here into small typed models; nothing above
this module looks at raw Solr JSON.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from smart_search.config import Settings
from smart_search.errors import StoreError, StoreQueryRejected, StoreUnreachable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestAck:
    """Acknowledgement of an update request."""

    status: int
    qtime: int


@dataclass(frozen=True)
class SearchPage:
    """One page of ``select`` results."""

    num_found: int
    docs: list[dict[str, Any]]
    highlighting: dict[str, dict[str, list[str]]] = field(default_factory=dict)

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> "SearchPage":
        response = payload.get("response") or {}
        return cls(
            num_found=int(response.get("numFound", 0)),
            docs=list(response.get("docs") or []),
            highlighting=dict(payload.get("highlighting") or {}),
        )


@dataclass(frozen=True)
class FacetList:
    """Facet values for one field, in Solr's order."""

    field: str
    values: list[tuple[str, int]]

    @classmethod
    def from_json(cls, payload: dict[str, Any], field_name: str) -> "FacetList":
        flat = ((payload.get("facet_counts") or {}).get("facet_fields") or {}).get(field_name) or []
        return cls(field=field_name, values=_pairs(flat))


@dataclass(frozen=True)
class TermList:
    """Indexed terms for one field from the terms component."""

    field: str
    values: list[tuple[str, int]]

    @classmethod
    def from_json(cls, payload: dict[str, Any], field_name: str) -> "TermList":
        flat = (payload.get("terms") or {}).get(field_name) or []
        return cls(field=field_name, values=_pairs(flat))


def _pairs(flat: list[Any]) -> list[tuple[str, int]]:
    # Solr returns facets and terms as [value, count, value, count, ...]
    return [(str(flat[i]), int(flat[i + 1])) for i in range(0, len(flat) - 1, 2)]


def get_client(settings: Settings) -> httpx.Client:
    """Create a client bound to the configured Solr core."""
    return httpx.Client(
        base_url=settings.core_url,
        timeout=settings.store_timeout,
        headers={"Accept": "application/json"},
    )


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:500] or response.reason_phrase
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("msg"):
        return str(error["msg"])
    return response.reason_phrase


def _request(
    client: httpx.Client,
    method: str,
    path: str,
    *,
    params: dict[str, Any] | None = None,
    json: Any = None,
    query: str | None = None,
) -> dict[str, Any]:
    if query is None and params:
        query = params.get("q")
    try:
        response = client.request(method, path, params=params, json=json)
    except httpx.TimeoutException as e:
        logger.error("Solr request timed out: %s %s", method, path)
        raise StoreUnreachable(f"Solr request timed out ({method} {path})") from e
    except httpx.TransportError as e:
        logger.error("Cannot reach Solr at %s: %s", client.base_url, e)
        raise StoreUnreachable(f"Cannot reach Solr at {client.base_url}: {e}") from e

    if response.status_code == 400:
        detail = _error_message(response)
        logger.error("Solr rejected query %r: %s", query, detail)
        raise StoreQueryRejected(query, detail)
    if response.is_error:
        detail = _error_message(response)
        logger.error("Solr error %s for %s: %s", response.status_code, response.url, detail)
        raise StoreError(f"Solr returned HTTP {response.status_code}: {detail}", response.status_code)

    try:
        payload = response.json()
    except ValueError as e:
        raise StoreError(f"Solr returned a non-JSON response for {path}") from e
    if not isinstance(payload, dict):
        raise StoreError(f"Unexpected Solr response shape for {path}")
    return payload


def _ack(payload: dict[str, Any]) -> IngestAck:
    header = payload.get("responseHeader") or {}
    return IngestAck(status=int(header.get("status", 0)), qtime=int(header.get("QTime", 0)))


def add_documents(client: httpx.Client, docs: list[dict[str, Any]]) -> IngestAck:
    """Index a batch of documents and commit."""
    payload = _request(client, "POST", "update/json/docs", params={"commit": "true"}, json=docs)
    return _ack(payload)


def select(client: httpx.Client, params: dict[str, Any]) -> SearchPage:
    """Run a ``select`` query."""
    payload = _request(client, "GET", "select", params={"wt": "json", **params})
    return SearchPage.from_json(payload)


def facet_values(
    client: httpx.Client,
    field_name: str,
    *,
    query: str = "*:*",
    limit: int = 100,
    mincount: int = 1,
) -> FacetList:
    """Facet counts for one field."""
    params = {
        "q": query,
        "rows": 0,
        "wt": "json",
        "facet": "true",
        "facet.field": field_name,
        "facet.limit": limit,
        "facet.mincount": mincount,
    }
    payload = _request(client, "GET", "select", params=params)
    return FacetList.from_json(payload, field_name)


def terms(client: httpx.Client, field_name: str, prefix: str, limit: int = 10) -> TermList:
    """Indexed terms of ``field_name`` starting with ``prefix``."""
    params = {
        "terms.fl": field_name,
        "terms.prefix": prefix,
        "terms.limit": limit,
        "terms.raw": "true",
        "wt": "json",
    }
    payload = _request(client, "GET", "terms", params=params, query=prefix)
    return TermList.from_json(payload, field_name)


def delete_by_query(client: httpx.Client, query: str) -> IngestAck:
    """Delete every document matching ``query`` and commit."""
    payload = _request(
        client,
        "POST",
        "update",
        params={"commit": "true"},
        json={"delete": {"query": query}},
        query=query,
    )
    return _ack(payload)


def ping(client: httpx.Client) -> bool:
    """True when the core answers its ping handler."""
    try:
        payload = _request(client, "GET", "admin/ping")
    except StoreError:
        return False
    return payload.get("status") == "OK"
