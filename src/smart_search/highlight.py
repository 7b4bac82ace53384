"""HTML-safe highlighting and snippet extraction.

Source text is always HTML-escaped before any ``<mark>`` tag is inserted,
and fragments coming back from Solr are re-sanitized so that the only
markup that survives is the mark tags themselves.
"""

import html
import re
from dataclasses import dataclass, replace
from functools import lru_cache
from typing import Any, Mapping, Sequence

from smart_search.models import RankedDocument, StoredDocument

PRE_TAG = '<mark class="highlight">'
POST_TAG = "</mark>"

FRAGMENT_SIZE = 150
MAX_SNIPPETS = 3

HIGHLIGHT_FIELDS = (
    "match_text",
    "full_line",
    "context_before",
    "context_after",
    "content_all",
    "code_all",
    "display_content",
)
SNIPPET_FIELDS = ("content_all", "code_all", "display_content")

HighlightMap = Mapping[str, Mapping[str, Sequence[str]]]

_OPERATORS = re.compile(r"\b(?:AND|OR|NOT)\b")
_FIELD_PREFIX = re.compile(r"\w+:")
_LEADING_SIGN = re.compile(r"(?<!\S)[+\-]+")
_PARENS = re.compile(r"[()]")
_PHRASE = re.compile(r'"([^"]+)"')
_WORD = re.compile(r"\w+")
_ENTITY = r"&(?:amp|lt|gt|quot|#x27|#039);"
_MARK_TAG = re.compile(r"</?mark\b[^>]*>", re.IGNORECASE)
_MARKED = re.compile(r"<mark\b[^>]*>(.*?)</mark>", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class HighlightSegment:
    text: str
    highlighted: bool


@dataclass(frozen=True)
class HighlightStats:
    total_highlights: int
    total_length: int
    highlighted_length: int


def build_highlight_params(
    fragment_size: int = FRAGMENT_SIZE,
    max_fragments: int = MAX_SNIPPETS,
) -> dict[str, Any]:
    """Solr highlighting request parameters."""
    return {
        "hl": "true",
        "hl.fl": ",".join(HIGHLIGHT_FIELDS),
        "hl.simple.pre": PRE_TAG,
        "hl.simple.post": POST_TAG,
        "hl.fragsize": fragment_size,
        "hl.snippets": max_fragments,
        "hl.maxAnalyzedChars": 500000,
        "hl.highlightMultiTerm": "true",
        "hl.mergeContiguous": "true",
        "hl.requireFieldMatch": "false",
        "hl.usePhraseHighlighter": "true",
    }


def escape_html(text: str) -> str:
    return html.escape(text, quote=True)


def extract_terms(query: str) -> list[str]:
    """Pull highlightable terms out of a query.

    Boolean operators, ``field:`` prefixes, leading +/- and parentheses are
    dropped. Quoted phrases come first, then bare words of 2+ characters
    (single-character words only when nothing longer is left).
    """
    if not query:
        return []
    clean = _OPERATORS.sub(" ", query)
    clean = _FIELD_PREFIX.sub(" ", clean)
    clean = _LEADING_SIGN.sub(" ", clean)
    clean = _PARENS.sub(" ", clean)

    terms = [p.strip() for p in _PHRASE.findall(clean) if p.strip()]
    clean = _PHRASE.sub(" ", clean)
    words = _WORD.findall(clean)
    long_words = [w for w in words if len(w) > 1]
    # A query made only of single characters still highlights them
    terms.extend(long_words if long_words or terms else words)

    # dedupe, keep first occurrence
    return list(dict.fromkeys(terms))


@lru_cache(maxsize=256)
def _term_pattern(terms: tuple[str, ...]) -> re.Pattern[str]:
    escaped = sorted({re.escape(escape_html(t)) for t in terms}, key=len, reverse=True)
    # Entities are matched first so that a term never splits "&amp;" and friends
    return re.compile(rf"(?P<entity>{_ENTITY})|(?:{'|'.join(escaped)})", re.IGNORECASE)


def highlight(text: str, query: str) -> str:
    """Escape ``text`` and wrap every occurrence of a query term in a mark tag."""
    if not text:
        return ""
    escaped = escape_html(text)
    terms = extract_terms(query)
    if not terms:
        return escaped

    def _mark(m: re.Match[str]) -> str:
        if m.group("entity"):
            return m.group(0)
        return f"{PRE_TAG}{m.group(0)}{POST_TAG}"

    return _term_pattern(tuple(terms)).sub(_mark, escaped)


def contains_terms(text: str, query: str) -> bool:
    lowered = text.lower()
    return any(term.lower() in lowered for term in extract_terms(query))


def parse_highlighted(text: str) -> list[HighlightSegment]:
    """Split marked-up text into ordered plain/highlighted segments."""
    segments: list[HighlightSegment] = []
    last = 0
    for m in _MARKED.finditer(text):
        if m.start() > last:
            segments.append(HighlightSegment(text[last : m.start()], False))
        segments.append(HighlightSegment(m.group(1), True))
        last = m.end()
    if last < len(text):
        segments.append(HighlightSegment(text[last:], False))
    return segments


def strip_highlighting(text: str) -> str:
    """Remove mark tags, leaving everything else untouched."""
    return _MARK_TAG.sub("", text)


def highlight_stats(text: str) -> HighlightStats:
    segments = parse_highlighted(text)
    marked = [s for s in segments if s.highlighted]
    return HighlightStats(
        total_highlights=len(marked),
        total_length=sum(len(s.text) for s in segments),
        highlighted_length=sum(len(s.text) for s in marked),
    )


def sanitize_fragment(fragment: str) -> str:
    """Re-escape a store fragment so only its mark tags remain as markup."""
    parts = []
    for segment in parse_highlighted(fragment):
        body = escape_html(strip_highlighting(segment.text))
        parts.append(f"{PRE_TAG}{body}{POST_TAG}" if segment.highlighted else body)
    return "".join(parts)


def extract_snippet(text: str, query: str, max_length: int = FRAGMENT_SIZE) -> str:
    """Cut a window of about ``max_length`` characters around the first term."""
    terms = extract_terms(query)
    lowered = text.lower()

    first_index = len(text)
    found = ""
    for term in terms:
        index = lowered.find(term.lower())
        if index != -1 and index < first_index:
            first_index, found = index, term

    if not found:
        return text[:max_length]

    half = max_length // 2
    start = max(0, first_index - half)
    end = min(len(text), first_index + len(found) + half)

    # Snap to word boundaries when one is close by
    if start > 0:
        space = text.find(" ", start)
        if space != -1 and space < start + 20 and space < first_index:
            start = space + 1
    if end < len(text):
        space = text.rfind(" ", 0, end)
        if space != -1 and space > end - 20 and space >= first_index + len(found):
            end = space

    snippet = text[start:end]
    if start > 0:
        snippet = "..." + snippet
    if end < len(text):
        snippet += "..."
    return snippet


def _store_fragments(doc_highlights: Mapping[str, Sequence[str]], field: str) -> list[str]:
    return [sanitize_fragment(f) for f in doc_highlights.get(field) or []]


def snippets(
    document: StoredDocument,
    highlighting: HighlightMap,
    query: str,
    max_snippets: int = MAX_SNIPPETS,
) -> list[str]:
    """Highlighted snippets for a document, preferring the store's fragments."""
    doc_highlights = highlighting.get(document.id, {})
    for field in SNIPPET_FIELDS:
        fragments = _store_fragments(doc_highlights, field)
        if fragments:
            return fragments[:max_snippets]

    result: list[str] = []
    content = document.full_line or document.match_text
    if content:
        snippet = extract_snippet(content, query)
        if snippet:
            result.append(highlight(snippet, query))

    if document.context_before:
        line = document.context_before[-1]
        if line and contains_terms(line, query):
            result.append(highlight(line, query))

    if document.context_after:
        line = document.context_after[0]
        if line and contains_terms(line, query):
            result.append(highlight(line, query))

    return result[:max_snippets]


def apply_store_highlighting(
    documents: Sequence[RankedDocument],
    highlighting: HighlightMap,
    query: str,
) -> list[RankedDocument]:
    """Render each document's fields, field by field.

    A field uses the store's fragments when there are any and falls back to
    client-side highlighting otherwise.
    """
    rendered: list[RankedDocument] = []
    for ranked in documents:
        doc = ranked.document
        doc_highlights = highlighting.get(doc.id, {})

        match_frags = _store_fragments(doc_highlights, "match_text")
        line_frags = _store_fragments(doc_highlights, "full_line")
        before_frags = _store_fragments(doc_highlights, "context_before")
        after_frags = _store_fragments(doc_highlights, "context_after")

        if match_frags:
            match_html = match_frags[0]
        elif line_frags:
            match_html = line_frags[0]
        else:
            match_html = highlight(doc.match_text, query)

        rendered.append(
            replace(
                ranked,
                match_text_html=match_html,
                full_line_html=line_frags[0] if line_frags else highlight(doc.full_line, query),
                context_before_html=before_frags
                or [highlight(line, query) for line in doc.context_before],
                context_after_html=after_frags
                or [highlight(line, query) for line in doc.context_after],
                snippets=snippets(doc, highlighting, query),
            )
        )
    return rendered
