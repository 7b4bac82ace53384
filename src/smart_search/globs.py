"""Resolve the include/exclude globs for a search."""

from dataclasses import dataclass, field
from typing import Iterable

from smart_search.config import Settings
from smart_search.ripgrep import list_files


@dataclass
class FilterPreset:
    """A named glob filter, as loaded by whatever stores presets."""

    name: str
    include_globs: list[str] = field(default_factory=list)
    exclude_globs: list[str] = field(default_factory=list)
    custom_include_globs: list[str] = field(default_factory=list)
    custom_exclude_globs: list[str] = field(default_factory=list)
    description: str = ""


@dataclass
class SearchGlobs:
    """The globs currently selected for a search."""

    include_globs: list[str] = field(default_factory=list)
    exclude_globs: list[str] = field(default_factory=list)
    custom_include_globs: list[str] = field(default_factory=list)
    custom_exclude_globs: list[str] = field(default_factory=list)


def dedupe(items: Iterable[str]) -> list[str]:
    """Drop later duplicates, keeping first-occurrence order."""
    return list(dict.fromkeys(items))


def resolve_globs(
    current: SearchGlobs,
    preset: FilterPreset | None = None,
) -> tuple[list[str], list[str]]:
    """Effective (include, exclude) globs.

    An active preset's globs come first, followed by the current and custom
    globs; each list is deduplicated.
    """
    include: list[str] = []
    exclude: list[str] = []
    if preset is not None:
        include += preset.include_globs + preset.custom_include_globs
        exclude += preset.exclude_globs + preset.custom_exclude_globs
    include += current.include_globs + current.custom_include_globs
    exclude += current.exclude_globs + current.custom_exclude_globs
    return dedupe(include), dedupe(exclude)


def preview_globs(
    roots: Iterable[str],
    include: list[str],
    exclude: list[str],
    settings: Settings,
) -> dict[str, list[str]]:
    """Files each root would contribute under the given globs."""
    return {root: list_files(root, include, exclude, settings) for root in roots}
