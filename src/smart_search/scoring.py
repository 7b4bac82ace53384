"""Heuristic relevance scoring for ripgrep matches."""

import re
from collections import Counter
from dataclasses import replace

from smart_search.filetypes import file_category
from smart_search.models import Match, QuerySpec, SubMatch

BASE_SCORE = 0.5
SUBSTRING_BONUS = 0.3
WHOLE_WORD_BONUS = 0.2
CATEGORY_BONUS = {"source": 0.2, "config": 0.1, "doc": 0.05}
EXTRA_SUBMATCH_BONUS = 0.05
EXTRA_SUBMATCH_CAP = 0.15
EARLY_COLUMN_BONUS = 0.05
EARLY_COLUMN_LIMIT = 20
EXACT_CASE_BONUS = 0.1

# File-frequency bonus
FREQUENCY_WEIGHT = 0.2
FREQUENCY_STEP_BONUS = 0.05


def clamp(score: float) -> float:
    return max(0.0, min(1.0, score))


def _is_whole_word(text: str, query: str, flags: int) -> bool:
    # Checked against the line itself rather than trusting --word-regexp
    pattern = re.compile(rf"(?<!\w){re.escape(query)}(?!\w)", flags)
    return pattern.search(text) is not None


def score_match(text: str, path: str, submatches: tuple[SubMatch, ...], spec: QuerySpec) -> float:
    """Score a single match line in [0.0, 1.0]."""
    score = BASE_SCORE
    query = spec.query
    case_sensitive = bool(spec.case_sensitive)

    if query:
        if case_sensitive:
            contains = query in text
        else:
            contains = query.casefold() in text.casefold()
        if contains:
            score += SUBSTRING_BONUS
            flags = 0 if case_sensitive else re.IGNORECASE
            if _is_whole_word(text, query, flags):
                score += WHOLE_WORD_BONUS

    category = file_category(path)
    if category is not None:
        score += CATEGORY_BONUS[category]

    if len(submatches) > 1:
        score += min((len(submatches) - 1) * EXTRA_SUBMATCH_BONUS, EXTRA_SUBMATCH_CAP)

    if submatches and submatches[0].start < EARLY_COLUMN_LIMIT:
        score += EARLY_COLUMN_BONUS

    if case_sensitive and query and query in text:
        score += EXACT_CASE_BONUS

    return clamp(score)


def frequency_bonus(match_count: int) -> float:
    """Bonus for every match in a file that was matched ``match_count`` times."""
    if match_count < 2:
        return 0.0
    bonus = min(match_count / 10, 1.0) * FREQUENCY_WEIGHT
    if match_count >= 5:
        bonus += FREQUENCY_STEP_BONUS
    if match_count >= 10:
        bonus += FREQUENCY_STEP_BONUS
    return bonus


def apply_file_frequency_bonus(matches: list[Match]) -> list[Match]:
    """Return copies of the matches with the per-file frequency bonus added."""
    counts = Counter(m.path for m in matches)
    return [
        replace(m, score=clamp(m.score + frequency_bonus(counts[m.path])))
        if counts[m.path] >= 2
        else m
        for m in matches
    ]


def rank_matches(matches: list[Match], limit: int) -> list[Match]:
    """Sort by score descending (stable) and keep the top ``limit``."""
    ranked = sorted(matches, key=lambda m: m.score, reverse=True)
    return ranked[: max(limit, 0)]
