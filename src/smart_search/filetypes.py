"""File-type classification by extension."""

from pathlib import PurePath

SOURCE_EXTENSIONS = frozenset({
    "py", "pyi", "js", "jsx", "mjs", "cjs", "ts", "tsx", "java", "kt", "kts", "scala",
    "go", "rs", "c", "h", "cc", "cpp", "cxx", "hpp", "hh", "cs", "fs", "swift", "m", "mm",
    "rb", "php", "pl", "pm", "lua", "r", "jl", "dart", "ex", "exs", "erl", "hs", "clj",
    "sh", "bash", "zsh", "ps1", "sql", "vue", "svelte",
})

CONFIG_EXTENSIONS = frozenset({
    "json", "jsonc", "yaml", "yml", "toml", "ini", "cfg", "conf", "xml", "properties",
    "env", "lock", "gradle", "plist",
})

DOC_EXTENSIONS = frozenset({
    "md", "markdown", "rst", "txt", "adoc", "org", "tex", "html", "htm",
})

KNOWN_EXTENSIONS = SOURCE_EXTENSIONS | CONFIG_EXTENSIONS | DOC_EXTENSIONS


def file_extension(path: str) -> str:
    """Lower-cased extension without the dot ("" when there is none)."""
    return PurePath(path).suffix.lstrip(".").lower()


def file_category(path: str) -> str | None:
    """Classify a path as "source", "config", "doc", or None."""
    ext = file_extension(path)
    if ext in SOURCE_EXTENSIONS:
        return "source"
    if ext in CONFIG_EXTENSIONS:
        return "config"
    if ext in DOC_EXTENSIONS:
        return "doc"
    return None
