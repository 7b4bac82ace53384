"""ripgrep process management and JSON event decoding.

A reader thread decodes ripgrep's ``--json`` output into typed events and
feeds them through a bounded queue; ``stream_ripgrep`` is the consuming
side and yields events in stream order.
"""

import base64
import json
import logging
import queue
import shutil
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import IO, Any, Iterable, Iterator

from smart_search.config import Settings
from smart_search.errors import SearchCancelled, ToolFailed, ToolOutputMalformed, ToolUnavailable
from smart_search.models import QuerySpec, SubMatch

logger = logging.getLogger(__name__)

# 0 = matches found, 1 = no matches
SUCCESS_EXIT_CODES = (0, 1)

_POLL_INTERVAL = 0.1
_DONE = object()


@dataclass(frozen=True)
class ContextEvent:
    path: str
    line_number: int
    text: str


@dataclass(frozen=True)
class MatchEvent:
    path: str
    line_number: int
    text: str
    submatches: tuple[SubMatch, ...] = ()


Event = ContextEvent | MatchEvent


def ensure_ripgrep(settings: Settings) -> str:
    """Return the resolved ripgrep executable or raise ToolUnavailable."""
    resolved = shutil.which(settings.rg_path)
    if resolved is None:
        raise ToolUnavailable(
            f"ripgrep ({settings.rg_path}) not found. Install it or set SMART_SEARCH_RG_PATH."
        )
    return resolved


def _glob_args(include: Iterable[str], exclude: Iterable[str]) -> list[str]:
    args: list[str] = []
    for pattern in include:
        args.extend(["--glob", pattern])
    for pattern in exclude:
        args.extend(["--glob", f"!{pattern}"])
    return args


def build_command(spec: QuerySpec, root: str, settings: Settings) -> list[str]:
    """Build the ripgrep argument list for one workspace root."""
    before, after = spec.context_counts(settings)
    args = [
        settings.rg_path,
        "--json",
        "--line-number",
        "--column",
        "--with-filename",
        "--before-context",
        str(before),
        "--after-context",
        str(after),
    ]

    if not spec.case_sensitive:
        args.append("--ignore-case")
    else:
        args.append("--case-sensitive")

    if spec.whole_word:
        args.append("--word-regexp")

    if not spec.use_regex:
        args.append("--fixed-strings")

    args.extend(_glob_args(spec.include_globs, spec.exclude_globs))

    # -e keeps patterns that start with "-" from being read as flags
    args.extend(["-e", spec.query, root])
    return args


def _decode_data(obj: dict[str, Any] | None) -> tuple[str, bytes]:
    """Decode ripgrep's {"text": ...} / {"bytes": base64} union."""
    if not obj:
        return "", b""
    if "text" in obj:
        text = obj["text"]
        return text, text.encode("utf-8")
    raw = base64.b64decode(obj["bytes"])
    return raw.decode("utf-8", errors="replace"), raw


def _strip_newline(text: str) -> str:
    return text.rstrip("\r\n")


def parse_line(line: str) -> Event | None:
    """Decode one line of ``rg --json`` output.

    Returns None for record types that carry no line (begin, end, summary).
    Raises ToolOutputMalformed when the line is not a valid record.
    """
    try:
        record = json.loads(line)
    except json.JSONDecodeError as e:
        raise ToolOutputMalformed(line, f"invalid JSON: {e.msg}") from e

    if not isinstance(record, dict):
        raise ToolOutputMalformed(line, "record is not an object")

    record_type = record.get("type")
    if record_type not in ("match", "context"):
        return None

    data = record.get("data")
    try:
        path, _ = _decode_data(data["path"])
        text, raw = _decode_data(data["lines"])
        line_number = int(data["line_number"])
    except (KeyError, TypeError, ValueError) as e:
        raise ToolOutputMalformed(line, f"missing field: {e}") from e

    if record_type == "context":
        return ContextEvent(path=path, line_number=line_number, text=_strip_newline(text))

    submatches: list[SubMatch] = []
    try:
        for sm in data.get("submatches") or []:
            # ripgrep reports byte offsets; convert to character offsets
            start = len(raw[: int(sm["start"])].decode("utf-8", errors="replace"))
            end = len(raw[: int(sm["end"])].decode("utf-8", errors="replace"))
            sm_text, _ = _decode_data(sm.get("match"))
            submatches.append(SubMatch(start=start, end=end, text=sm_text or text[start:end]))
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise ToolOutputMalformed(line, f"bad submatch: {e!r}") from e

    return MatchEvent(
        path=path,
        line_number=line_number,
        text=_strip_newline(text),
        submatches=tuple(submatches),
    )


def iter_events(lines: Iterable[str]) -> Iterator[Event]:
    """Decode ripgrep output lines, skipping malformed ones with a warning."""
    for line in lines:
        line = line.strip()
        if not line:
            continue
        try:
            event = parse_line(line)
        except ToolOutputMalformed as e:
            logger.warning("%s", e)
            continue
        if event is not None:
            yield event


def _offer(sink: queue.Queue, item: object, stop: threading.Event) -> bool:
    while True:
        try:
            sink.put(item, timeout=_POLL_INTERVAL)
            return True
        except queue.Full:
            if stop.is_set():
                return False


def _pump(
    stream: IO[str],
    sink: queue.Queue,
    stop: threading.Event,
    errors: list[Exception],
) -> None:
    """Producer: decode stdout into events until EOF or stop.

    A reader failure is recorded in ``errors`` for the consumer to raise;
    after a kill the stream closes underneath us and that is not a failure.
    """
    try:
        for event in iter_events(stream):
            if stop.is_set() or not _offer(sink, event, stop):
                return
    except Exception as e:
        if not stop.is_set():
            errors.append(e)
    finally:
        _offer(sink, _DONE, stop)


def _drain(stream: IO[str], lines: list[str]) -> None:
    try:
        for line in stream:
            lines.append(line.rstrip())
    except (OSError, ValueError):
        pass


def _kill(proc: subprocess.Popen) -> None:
    if proc.poll() is None:
        proc.kill()
    try:
        proc.wait(timeout=5)
    except subprocess.TimeoutExpired:
        logger.error("ripgrep (pid %s) did not exit after kill", proc.pid)


def stream_ripgrep(
    spec: QuerySpec,
    root: str,
    settings: Settings,
    cancel: threading.Event | None = None,
) -> Iterator[Event]:
    """Run ripgrep in ``root`` and yield decoded events in stream order.

    Raises ToolFailed on a bad exit code, spawn error or timeout, and
    SearchCancelled when ``cancel`` is set. The process is killed whenever
    the generator stops early.
    """
    cmd = build_command(spec, root, settings)
    logger.debug("Running %s", cmd)
    try:
        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except FileNotFoundError as e:
        raise ToolUnavailable(f"Failed to start ripgrep: {e}") from e
    except OSError as e:
        raise ToolFailed(root, f"failed to start ripgrep: {e}") from e

    sink: queue.Queue = queue.Queue(maxsize=settings.event_queue_size)
    stop = threading.Event()
    stderr_lines: list[str] = []
    read_errors: list[Exception] = []
    reader = threading.Thread(target=_pump, args=(proc.stdout, sink, stop, read_errors), daemon=True)
    err_reader = threading.Thread(target=_drain, args=(proc.stderr, stderr_lines), daemon=True)
    reader.start()
    err_reader.start()

    deadline = time.monotonic() + settings.tool_timeout
    try:
        while True:
            if cancel is not None and cancel.is_set():
                raise SearchCancelled(f"Search cancelled in {root}")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ToolFailed(root, f"timed out after {settings.tool_timeout:g}s")
            try:
                item = sink.get(timeout=min(_POLL_INTERVAL, remaining))
            except queue.Empty:
                continue
            if item is _DONE:
                break
            yield item

        if read_errors:
            error = read_errors[0]
            raise ToolFailed(root, f"error reading ripgrep output: {error}") from error

        try:
            code = proc.wait(timeout=max(deadline - time.monotonic(), 0.1))
        except subprocess.TimeoutExpired as e:
            raise ToolFailed(root, f"timed out after {settings.tool_timeout:g}s") from e
        err_reader.join(timeout=1)
        for line in stderr_lines:
            logger.debug("rg stderr (%s): %s", root, line)
        if code not in SUCCESS_EXIT_CODES:
            detail = stderr_lines[-1] if stderr_lines else "no error output"
            raise ToolFailed(root, f"ripgrep exited with code {code}: {detail}")
    finally:
        stop.set()
        _kill(proc)
        reader.join(timeout=1)


def list_files(
    root: str,
    include: Iterable[str],
    exclude: Iterable[str],
    settings: Settings,
) -> list[str]:
    """List the files ripgrep would search in ``root`` under the given globs."""
    cmd = [settings.rg_path, "--files", *_glob_args(include, exclude), root]
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=settings.glob_timeout,
        )
    except FileNotFoundError as e:
        raise ToolUnavailable(f"Failed to start ripgrep: {e}") from e
    except subprocess.TimeoutExpired as e:
        raise ToolFailed(root, f"glob preview timed out after {settings.glob_timeout:g}s") from e

    if result.returncode not in SUCCESS_EXIT_CODES:
        raise ToolFailed(root, f"ripgrep exited with code {result.returncode}: {result.stderr.strip()}")
    return [line for line in result.stdout.splitlines() if line]
