"""Translate user queries into Solr query syntax.

Two modes:

- Field-qualified: the user wrote ``field:value`` themselves, e.g.
  ``file_extension:ts match_text:render``. Tokens are kept, and only bare
  values that are neither quoted nor wildcarded are escaped.
- Smart routing: plain text is routed by its shape. Filenames go to the
  name/path fields, code-looking text goes to ``code_all`` with a higher
  boost, and anything else goes to the default fields, OR-ed together.

    translate("render")
      -> "content_all:(render) OR code_all:(render)"
    translate("utils.py")
      -> "file_name:(utils.py)^3 OR file_path:(utils.py)^1.5"
    translate("file_name:*.js")
      -> "file_name:*.js"
"""

import re
from typing import Any, Mapping, Sequence

from smart_search.config import Settings
from smart_search.filetypes import KNOWN_EXTENSIONS
from smart_search.highlight import build_highlight_params
from smart_search.models import QuerySpec

MATCH_ALL = "*:*"

# + - & | ! ( ) { } [ ] ^ " ~ * ? : \ /
_RESERVED = re.compile(r'([+\-&|!(){}\[\]^"~*?:\\/])')
_FIELD_SPEC = re.compile(r"\w+:")
_FIELD_TOKENS = re.compile(r"""[^\s"']+:"[^"]*"|[^\s"']+:'[^']*'|\S+""")
_PHRASE = re.compile(r'"[^"]*"')

_FILENAME = re.compile(
    r"^[\w\-./\\*]*\.(" + "|".join(sorted(KNOWN_EXTENSIONS)) + r")$",
    re.IGNORECASE,
)
_CODE_KEYWORDS = re.compile(
    r"\b(function|class|import|from|def|return|const|let|var|interface|struct|enum|"
    r"public|private|protected|static|async|await|lambda)\b"
)
_CODE_SYMBOLS = re.compile(r"[(){}\[\];<>=]|->|=>|::|&&|\|\||!=")

FILENAME_FIELDS = ("file_name", "file_path")
CODE_FIELDS = ("code_all", "content_all")


def sanitize_query(text: str) -> str:
    """Escape Solr's reserved characters. Never returns an empty string."""
    if not text:
        return "*"
    escaped = _RESERVED.sub(r"\\\1", text).strip()
    return escaped or "*"


def _sanitize_preserving_phrases(text: str) -> str:
    # Balanced "quoted phrases" pass through untouched; everything else is escaped
    parts: list[str] = []
    last = 0
    for m in _PHRASE.finditer(text):
        outside = text[last : m.start()].strip()
        if outside:
            parts.append(sanitize_query(outside))
        parts.append(m.group(0))
        last = m.end()
    tail = text[last:].strip()
    if tail:
        parts.append(sanitize_query(tail))
    return " ".join(parts) or "*"


def has_field_spec(query: str) -> bool:
    """True when the query already uses ``field:value`` syntax."""
    return _FIELD_SPEC.search(query) is not None and not query.startswith('"')


def sanitize_field_query(query: str) -> str:
    """Sanitize a field-qualified query while keeping its field structure."""
    parts: list[str] = []
    for token in _FIELD_TOKENS.findall(query):
        if ":" not in token:
            parts.append(sanitize_query(token))
            continue
        field, value = token.split(":", 1)
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            parts.append(token)
        elif "*" in value or "?" in value:
            parts.append(token)
        else:
            parts.append(f"{field}:{sanitize_query(value)}")
    return " ".join(parts)


def _clause(field: str, value: str, boost: float | None = None) -> str:
    clause = f"{field}:({value})"
    if boost is not None and boost != 1.0:
        clause += f"^{boost:g}"
    return clause


def is_filename_like(query: str) -> bool:
    return " " not in query and _FILENAME.match(query) is not None


def is_code_like(query: str) -> bool:
    return _CODE_SYMBOLS.search(query) is not None or _CODE_KEYWORDS.search(query) is not None


def route_fields(
    query: str,
    default_fields: Sequence[str],
    field_boosts: Mapping[str, float],
) -> str:
    """Pick target fields for a plain query and build the OR-ed clauses."""
    value = _sanitize_preserving_phrases(query)

    if is_filename_like(query):
        return " OR ".join(_clause(f, value, field_boosts.get(f)) for f in FILENAME_FIELDS)

    if is_code_like(query):
        return " OR ".join(_clause(f, value, field_boosts.get(f)) for f in CODE_FIELDS)

    fields = [f for f in default_fields if f] or ["content_all", "code_all"]
    return " OR ".join(_clause(f, value) for f in fields)


def translate(
    raw_query: str | None,
    default_fields: Sequence[str],
    field_boosts: Mapping[str, float] | None = None,
) -> str:
    """Translate a user query into a Solr query string."""
    if not raw_query or not raw_query.strip():
        return MATCH_ALL

    query = raw_query.strip()
    if has_field_spec(query):
        return sanitize_field_query(query)
    return route_fields(query, default_fields, field_boosts or {})


def _quote_term(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def session_filter(session_id: str) -> str:
    return f"search_session_id:{_quote_term(session_id)}"


def build_search_params(
    spec: QuerySpec,
    session_id: str | None,
    settings: Settings,
) -> dict[str, Any]:
    """Build the full ``select`` parameter set for a stored-results search."""
    filters: list[str] = []
    if session_id:
        filters.append(session_filter(session_id))
    if spec.case_sensitive is not None:
        filters.append(f"case_sensitive:{str(spec.case_sensitive).lower()}")
    if spec.whole_word is not None:
        filters.append(f"whole_word:{str(spec.whole_word).lower()}")

    params: dict[str, Any] = {
        "q": translate(spec.query, settings.default_fields, settings.field_boosts),
        "rows": spec.limit(settings),
        "wt": "json",
        "sort": "score desc, search_timestamp desc",
        "fl": "*,score",
    }
    if filters:
        params["fq"] = filters
    params.update(build_highlight_params())
    return params


def create_display_content(line: str, before: Sequence[str], after: Sequence[str]) -> str:
    """Combine a match and its context into one highlight-friendly field."""
    return "\n".join([*before, f">>> {line} <<<", *after])
