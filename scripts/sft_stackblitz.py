#!/usr/bin/env -S uv run --script
# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "httpx>=0.25.0",
#     "fastmcp",
#     "pyuca",
# ]
# ///
"""Browse and search StackBlitz projects: resolve, tree, read, search.

Fetches a project snapshot (all files) from the StackBlitz API, keeps it in a
small in-memory cache for a few minutes, and answers tree / read / search
requests from that snapshot.

Usage:
    sft_stackblitz.py resolve REF
    sft_stackblitz.py tree REF [--path src]
    sft_stackblitz.py read REF PATH
    sft_stackblitz.py search REF "query" [--regex] [--case] [--max 50]
    sft_stackblitz.py mcp-stdio

REF is a project ID (stackblitz-starters-rf7brvcm) or a stackblitz.com URL
(https://stackblitz.com/edit/stackblitz-starters-rf7brvcm).
"""

import argparse
import asyncio
import json
import os
import re
import sys
import threading
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import quote, urlparse

import httpx
from pyuca import Collator


# =============================================================================
# LOGGING
# =============================================================================
_LEVELS = {"TRACE": 5, "DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40, "FATAL": 50}
_THRESHOLD = _LEVELS.get(os.environ.get("SFB_LOG_LEVEL", "INFO"), 20)
_LOG_DIR = os.environ.get("SFB_LOG_DIR", "")
_SCRIPT = Path(__file__).stem
_LOG = (
    Path(_LOG_DIR) / f"{_SCRIPT}_log.tsv"
    if _LOG_DIR
    else Path(__file__).parent / f"{_SCRIPT}_log.tsv"
)
_HEADER = "#timestamp\tscript\tlevel\tevent\tmessage\tdetail\tmetrics\ttrace\n"


def _log(
    level: str,
    event: str,
    msg: str,
    *,
    detail: str = "",
    metrics: str = "",
    trace: str = "",
):
    """Append TSV log line. Logging never crashes the main flow."""
    if _LEVELS.get(level, 20) < _THRESHOLD:
        return
    try:
        ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
        write_header = not _LOG.exists()
        with open(_LOG, "a") as f:
            if write_header:
                f.write(_HEADER)
            f.write(f"{ts}\t{_SCRIPT}\t{level}\t{event}\t{msg}\t{detail}\t{metrics}\t{trace}\n")
    except Exception:
        pass


# =============================================================================
# CONFIGURATION
# =============================================================================
EXPOSED = ["resolve", "tree", "read", "search"]  # CLI + MCP — both interfaces

CONFIG = {
    "version": "1.0.0",
    "host": "stackblitz.com",
    "api_url": "https://stackblitz.com/api/projects/{project_id}",
    "timeout_seconds": 30.0,
    "cache_ttl_seconds": 5 * 60,
    "cache_max_entries": 50,
    "default_max_results": 50,
    "suggestion_limit": 5,
}

FETCH_TIMEOUT = httpx.Timeout(
    connect=5.0, read=CONFIG["timeout_seconds"], write=5.0, pool=5.0
)

# Single-segment URL paths that are site pages, not projects
RESERVED_SEGMENTS = frozenset({"edit", "fork", "github", "~"})

# URL scheme as browsers recognize it: letter, then letters, digits, "+", "-", "."
_SCHEME = re.compile(r"^([A-Za-z][A-Za-z0-9+.-]*):")

MIME_TYPES = {
    "ts": "text/typescript",
    "tsx": "text/typescript",
    "js": "text/javascript",
    "jsx": "text/javascript",
    "json": "application/json",
    "md": "text/markdown",
    "html": "text/html",
    "css": "text/css",
    "scss": "text/scss",
    "less": "text/less",
    "svg": "image/svg+xml",
    "yaml": "text/yaml",
    "yml": "text/yaml",
    "xml": "text/xml",
    "txt": "text/plain",
    "vue": "text/x-vue",
    "svelte": "text/x-svelte",
}


# =============================================================================
# ERRORS
# =============================================================================
class InvalidReference(ValueError):
    """Project reference could not be turned into a project ID."""


class UnsupportedHost(InvalidReference):
    """URL points somewhere other than stackblitz.com."""


class UnresolvableReference(InvalidReference):
    """stackblitz.com URL without a recognizable project ID."""


class FetchFailed(RuntimeError):
    """StackBlitz answered with a non-success status."""

    def __init__(self, project_id: str, status: int, reason: str = ""):
        self.project_id = project_id
        self.status = status
        self.reason = reason
        super().__init__(f"Failed to fetch project {project_id}: {status} {reason}".rstrip())


class InvalidPattern(ValueError):
    """Search query does not compile as a regular expression."""


class MalformedTree(ValueError):
    """A path uses a file as a directory, or a directory as a file."""


# =============================================================================
# DATA
# =============================================================================
@dataclass(frozen=True)
class ProjectFile:
    name: str
    type: str
    contents: str
    full_path: str
    last_modified: int = 0


@dataclass(frozen=True)
class ProjectSnapshot:
    """One fetched project. ``files`` is keyed by the store's own file key."""

    id: int | str
    title: str
    description: str
    slug: str
    preset: str
    visibility: str
    files: dict[str, ProjectFile] = field(default_factory=dict)


@dataclass
class FileNode:
    path: str
    name: str


@dataclass
class DirNode:
    path: str
    name: str
    children: list["TreeNode"] = field(default_factory=list)


TreeNode = FileNode | DirNode


@dataclass(frozen=True)
class SearchMatch:
    file: str
    line: int
    text: str


# =============================================================================
# CORE FUNCTIONS — assert invariants, let exceptions propagate
# =============================================================================
def resolve_project_id(ref: str) -> str:
    """Turn a project ID or stackblitz.com URL into a project ID.

    Anything with a URL scheme is parsed as a URL and must be on
    stackblitz.com, shaped like /edit/<id> or /<id>. Everything else is
    taken to be an ID already.
    """
    ref = ref.strip()
    assert ref, "project reference is non-empty"
    scheme = _SCHEME.match(ref)
    if scheme is None:
        return ref

    name = scheme.group(1).lower()
    rest = ref[scheme.end():]
    if name in ("http", "https"):
        # Browsers accept https:stackblitz.com/... and https:/stackblitz.com/...
        rest = "//" + rest.lstrip("/\\")
    try:
        parsed = urlparse(f"{name}:{rest}")
        hostname = parsed.hostname or ""
    except ValueError:
        return ref

    if hostname != CONFIG["host"]:
        raise UnsupportedHost(
            f"Unsupported URL: only {CONFIG['host']} URLs are supported, got {hostname or '(none)'}"
        )

    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) >= 2 and parts[0] == "edit":
        return parts[1]
    if len(parts) == 1 and parts[0] not in RESERVED_SEGMENTS:
        return parts[0]

    raise UnresolvableReference(f"Could not extract project ID from URL: {ref}")


def _parse_snapshot(data: dict) -> ProjectSnapshot:
    """Decode the /api/projects payload. Asserts the StackBlitz response contract."""
    assert "project" in data, (
        f"StackBlitz payload has a 'project' key, got: {list(data.keys())}"
    )
    project = data["project"]
    app_files = project.get("appFiles") or {}

    files = {
        key: ProjectFile(
            name=f.get("name", ""),
            type=f.get("type", "file"),
            contents=f.get("contents") or "",
            full_path=f["fullPath"],  # StackBlitz guarantees
            last_modified=f.get("lastModified", 0),
        )
        for key, f in app_files.items()
    }
    return ProjectSnapshot(
        id=project["id"],  # StackBlitz guarantees
        title=project.get("title", ""),
        description=project.get("description") or "",
        slug=project.get("slug", ""),
        preset=project.get("preset", ""),
        visibility=project.get("visibility", ""),
        files=files,
    )


async def fetch_snapshot(
    project_id: str, client: httpx.AsyncClient | None = None
) -> ProjectSnapshot:
    """Fetch a project with all file contents from the StackBlitz API.

    Raises FetchFailed on a non-2xx answer. httpx transport errors
    (timeouts, refused connections) propagate unchanged.
    """
    url = CONFIG["api_url"].format(project_id=quote(project_id, safe=""))
    _log("INFO", "fetch_start", f"project={project_id}")
    start = time.monotonic()

    owned = client is None
    if owned:
        client = httpx.AsyncClient(timeout=FETCH_TIMEOUT, follow_redirects=True)
    try:
        resp = await client.get(url, params={"include_files": "true"})
    except httpx.TransportError as e:
        _log("ERROR", "fetch_error", f"project={project_id}", detail=repr(e))
        raise
    finally:
        if owned:
            await client.aclose()

    latency_ms = round((time.monotonic() - start) * 1000, 2)
    if not resp.is_success:
        _log(
            "WARN",
            "fetch_error",
            f"project={project_id} status={resp.status_code}",
            metrics=f"latency_ms={latency_ms}",
        )
        raise FetchFailed(project_id, resp.status_code, resp.reason_phrase)

    snapshot = _parse_snapshot(resp.json())
    _log(
        "INFO",
        "fetch_complete",
        f"project={project_id} files={len(snapshot.files)}",
        metrics=f"latency_ms={latency_ms}",
    )
    return snapshot


class ProjectCache:
    """Snapshot cache with a freshness window and a hard size limit.

    Freshness is checked lazily on read. When full, the entry that has been
    in the table longest is evicted (FIFO), no matter how recently it was
    read. Concurrent misses for the same ID share one fetch.

    The table is guarded by a lock, so lookups, evictions and inserts are
    atomic across threads. In-flight fetches are asyncio tasks and belong to
    the event loop that started them: drive one cache from one loop.
    """

    def __init__(
        self,
        fetch: Callable[[str], Awaitable[ProjectSnapshot]] | None = None,
        ttl_seconds: float = CONFIG["cache_ttl_seconds"],
        max_entries: int = CONFIG["cache_max_entries"],
        clock: Callable[[], float] = time.monotonic,
    ):
        assert ttl_seconds > 0, f"ttl_seconds is positive (got {ttl_seconds})"
        assert max_entries > 0, f"max_entries is positive (got {max_entries})"
        self._fetch = fetch or fetch_snapshot
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, tuple[ProjectSnapshot, float]] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, project_id: str) -> bool:
        return self._lookup(project_id) is not None

    def _lookup(self, project_id: str) -> ProjectSnapshot | None:
        with self._lock:
            entry = self._entries.get(project_id)
            if entry is None:
                return None
            snapshot, expiry = entry
            return snapshot if self._clock() < expiry else None

    def _store(self, project_id: str, snapshot: ProjectSnapshot) -> None:
        with self._lock:
            # A stale entry for the same ID is replaced, not counted against capacity
            self._entries.pop(project_id, None)
            if len(self._entries) >= self._max_entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
                _log("DEBUG", "cache_evict", oldest)
            self._entries[project_id] = (snapshot, self._clock() + self._ttl)

    async def _load(self, project_id: str) -> ProjectSnapshot:
        try:
            snapshot = await self._fetch(project_id)
            self._store(project_id, snapshot)
            return snapshot
        finally:
            with self._lock:
                self._inflight.pop(project_id, None)

    @staticmethod
    def _retrieve_failure(task: asyncio.Task) -> None:
        # Every waiter may have been cancelled; mark the error as seen anyway
        if not task.cancelled() and task.exception() is not None:
            _log("WARN", "fetch_error", f"in-flight fetch failed: {task.exception()!r}")

    async def get(self, project_id: str) -> ProjectSnapshot:
        with self._lock:
            entry = self._entries.get(project_id)
            if entry is not None and self._clock() < entry[1]:
                snapshot = entry[0]
            else:
                snapshot = None
                task = self._inflight.get(project_id)
                if task is None:
                    task = asyncio.create_task(self._load(project_id))
                    task.add_done_callback(self._retrieve_failure)
                    self._inflight[project_id] = task

        if snapshot is not None:
            _log("DEBUG", "cache_hit", project_id)
            return snapshot
        _log("DEBUG", "cache_miss", project_id)
        # One cancelled caller must not cancel the fetch other callers wait on
        return await asyncio.shield(task)

    def invalidate(self, project_id: str) -> None:
        """Drop the entry for ``project_id`` so the next get fetches again."""
        with self._lock:
            self._entries.pop(project_id, None)


def list_paths(snapshot: ProjectSnapshot) -> list[str]:
    return sorted(f.full_path for f in snapshot.files.values())


def get_file(snapshot: ProjectSnapshot, path: str) -> ProjectFile | None:
    """Return the file stored at ``path``, or None when the project has no such file."""
    return next((f for f in snapshot.files.values() if f.full_path == path), None)


def filter_paths(paths: Iterable[str], prefix: str) -> list[str]:
    """Keep paths equal to ``prefix`` or inside the ``prefix`` folder."""
    if not prefix:
        return list(paths)
    folder = prefix if prefix.endswith("/") else f"{prefix}/"
    return [p for p in paths if p.startswith(folder) or p == prefix]


def suggest_paths(
    paths: Iterable[str], path: str, limit: int = CONFIG["suggestion_limit"]
) -> list[str]:
    """Paths containing the basename of ``path``, for "did you mean" hints."""
    basename = path.split("/")[-1]
    if not basename:
        return []
    return [p for p in paths if basename in p][:limit]


def guess_mime_type(path: str) -> str:
    ext = path.rsplit(".", 1)[-1].lower()
    return MIME_TYPES.get(ext, "text/plain")


def project_summary(project_id: str, snapshot: ProjectSnapshot) -> dict:
    return {
        "project_id": project_id,
        "title": snapshot.title,
        "description": snapshot.description,
        "preset": snapshot.preset,
        "visibility": snapshot.visibility,
        "file_count": len(snapshot.files),
    }


def _find_child(node: DirNode, name: str) -> TreeNode | None:
    return next((c for c in node.children if c.name == name), None)


def build_tree(paths: Iterable[str]) -> DirNode:
    """Fold flat slash-separated paths into a directory tree.

    Directories are shared between paths by name. Raises MalformedTree when
    one path uses as a directory a name that another path has as a file.
    """
    root = DirNode(path="", name="")

    for file_path in sorted(set(paths)):
        if not file_path:
            continue
        parts = file_path.split("/")
        current = root

        for i, part in enumerate(parts[:-1]):
            child = _find_child(current, part)
            if child is None:
                child = DirNode(path="/".join(parts[: i + 1]), name=part)
                current.children.append(child)
            elif not isinstance(child, DirNode):
                raise MalformedTree(
                    f"{file_path}: '{child.path}' is a file, not a directory"
                )
            current = child

        name = parts[-1]
        if _find_child(current, name) is not None:
            raise MalformedTree(f"{file_path}: already exists as a directory")
        current.children.append(FileNode(path=file_path, name=name))

    return root


# Lazy-initialized: loading the Unicode collation table takes a moment
_collator: Collator | None = None


def _get_collator() -> Collator:
    global _collator
    if _collator is None:
        _collator = Collator()
    return _collator


def _tree_sort_key(node: TreeNode) -> tuple:
    # Directories first, then names in Unicode collation order
    return (not isinstance(node, DirNode), _get_collator().sort_key(node.name))


def _format_children(node: DirNode, prefix: str, lines: list[str]) -> None:
    children = sorted(node.children, key=_tree_sort_key)
    for i, child in enumerate(children):
        is_last = i == len(children) - 1
        connector = "└── " if is_last else "├── "
        if isinstance(child, DirNode):
            lines.append(f"{prefix}{connector}{child.name}/")
            _format_children(child, prefix + ("    " if is_last else "│   "), lines)
        else:
            lines.append(f"{prefix}{connector}{child.name}")


def format_tree(root: DirNode) -> str:
    """Render a tree as ├──/└── lines. An empty root renders as ""."""
    lines: list[str] = []
    _format_children(root, "", lines)
    return "\n".join(lines)


def compile_query(query: str, regex: bool, case_sensitive: bool) -> re.Pattern | None:
    """Compile ``query`` for regex mode; literal mode needs no pattern."""
    if not regex:
        return None
    try:
        return re.compile(query, 0 if case_sensitive else re.IGNORECASE)
    except re.error as e:
        raise InvalidPattern(f"Invalid regex: {e}") from e


def search(
    snapshot: ProjectSnapshot,
    query: str,
    regex: bool = False,
    case_sensitive: bool = False,
    max_results: int = CONFIG["default_max_results"],
) -> list[SearchMatch]:
    """Scan every file line by line and return up to ``max_results`` matches.

    Files are visited in the snapshot's stored order and scanning stops as
    soon as the limit is reached, so later files may never be looked at.
    """
    pattern = compile_query(query, regex, case_sensitive)
    needle = query if case_sensitive else query.lower()
    matches: list[SearchMatch] = []

    for f in snapshot.files.values():
        if len(matches) >= max_results:
            break
        for number, line in enumerate(f.contents.split("\n"), 1):
            if len(matches) >= max_results:
                break
            if pattern is not None:
                found = pattern.search(line) is not None
            else:
                found = needle in (line if case_sensitive else line.lower())
            if found:
                matches.append(SearchMatch(file=f.full_path, line=number, text=line.rstrip()))

    return matches


def format_search_results(matches: list[SearchMatch], query: str) -> str:
    """Group matches by file (first-seen order) under a count header."""
    if not matches:
        return f'No matches found for "{query}"'

    grouped: dict[str, list[SearchMatch]] = {}
    for m in matches:
        grouped.setdefault(m.file, []).append(m)

    n_matches, n_files = len(matches), len(grouped)
    lines = [
        f"Found {n_matches} match{'' if n_matches == 1 else 'es'} "
        f"in {n_files} file{'' if n_files == 1 else 's'}:",
        "",
    ]
    for path, group in grouped.items():
        lines.append(f"## {path}")
        lines.extend(f"  L{m.line}: {m.text}" for m in group)
        lines.append("")
    return "\n".join(lines).rstrip()


def _not_found_message(path: str, suggestions: list[str]) -> str:
    text = f"File not found: {path}"
    if suggestions:
        text += "\n\nDid you mean:\n" + "\n".join(f"  - {s}" for s in suggestions)
    return text


# Lazy-initialized shared cache, one per process
_cache: ProjectCache | None = None


def _get_cache() -> ProjectCache:
    global _cache
    if _cache is None:
        _cache = ProjectCache(
            fetch_snapshot,
            ttl_seconds=CONFIG["cache_ttl_seconds"],
            max_entries=CONFIG["cache_max_entries"],
        )
    return _cache


async def _load_project(
    project_ref: str, refresh: bool = False
) -> tuple[str, ProjectSnapshot]:
    project_id = resolve_project_id(project_ref)
    cache = _get_cache()
    if refresh:
        cache.invalidate(project_id)
    return project_id, await cache.get(project_id)


async def _resolve_impl(project_ref: str, refresh: bool = False) -> tuple[dict, dict]:
    """Resolve a reference and summarize the project. ``refresh`` skips the cache.

    CLI: resolve
    MCP: resolve_project
    """
    start = time.monotonic()
    project_id, snapshot = await _load_project(project_ref, refresh)
    summary = project_summary(project_id, snapshot)
    latency_ms = round((time.monotonic() - start) * 1000, 2)
    _log("INFO", "resolve", f"ref={project_ref} id={project_id}")
    return summary, {
        "project_id": project_id,
        "file_count": summary["file_count"],
        "latency_ms": latency_ms,
        "status": "success",
    }


async def _tree_impl(project_ref: str, path: str = "") -> tuple[dict, dict]:
    """File tree, optionally limited to one folder.

    CLI: tree
    MCP: list_files, stackblitz://{project_id}/tree
    """
    start = time.monotonic()
    project_id, snapshot = await _load_project(project_ref)
    paths = filter_paths(list_paths(snapshot), path)
    tree = format_tree(build_tree(paths))
    latency_ms = round((time.monotonic() - start) * 1000, 2)
    _log("INFO", "tree", f"id={project_id} path={path or '/'} files={len(paths)}")
    return {"project_id": project_id, "tree": tree, "paths": paths}, {
        "project_id": project_id,
        "file_count": len(paths),
        "latency_ms": latency_ms,
        "status": "success",
    }


async def _read_impl(project_ref: str, path: str) -> tuple[dict, dict]:
    """Read one file. A missing file is a result with suggestions, not an exception.

    CLI: read
    MCP: read_file, stackblitz://{project_id}/files/{path}
    """
    assert path, "file path is non-empty"
    start = time.monotonic()
    project_id, snapshot = await _load_project(project_ref)
    file = get_file(snapshot, path)
    latency_ms = round((time.monotonic() - start) * 1000, 2)

    if file is None:
        suggestions = suggest_paths(list_paths(snapshot), path)
        _log("WARN", "read", f"id={project_id} path={path} not found")
        return {
            "project_id": project_id,
            "path": path,
            "error": "not_found",
            "suggestions": suggestions,
        }, {"project_id": project_id, "latency_ms": latency_ms, "status": "not_found"}

    _log("INFO", "read", f"id={project_id} path={path} chars={len(file.contents)}")
    return {
        "project_id": project_id,
        "path": file.full_path,
        "mime_type": guess_mime_type(file.full_path),
        "contents": file.contents,
    }, {
        "project_id": project_id,
        "chars": len(file.contents),
        "latency_ms": latency_ms,
        "status": "success",
    }


async def _search_impl(
    project_ref: str,
    query: str,
    regex: bool = False,
    case_sensitive: bool = False,
    max_results: int = CONFIG["default_max_results"],
) -> tuple[dict, dict]:
    """Line search across all project files.

    CLI: search
    MCP: search_files
    """
    assert query, "search query is non-empty"
    # Bad references and bad patterns fail before anything is fetched
    project_id = resolve_project_id(project_ref)
    compile_query(query, regex, case_sensitive)

    start = time.monotonic()
    snapshot = await _get_cache().get(project_id)
    matches = search(snapshot, query, regex, case_sensitive, max_results)
    latency_ms = round((time.monotonic() - start) * 1000, 2)
    _log(
        "INFO",
        "search",
        f"id={project_id} query='{query}' matches={len(matches)}",
        detail=f"regex={regex} case_sensitive={case_sensitive} max_results={max_results}",
    )
    return {
        "project_id": project_id,
        "matches": [asdict(m) for m in matches],
        "report": format_search_results(matches, query),
    }, {
        "project_id": project_id,
        "query": query,
        "match_count": len(matches),
        "latency_ms": latency_ms,
        "status": "success",
    }


# =============================================================================
# CLI INTERFACE
# =============================================================================
def _emit(text: str, output: str | None, quiet: bool) -> None:
    if output:
        Path(output).parent.mkdir(parents=True, exist_ok=True)
        Path(output).write_text(text)
        if not quiet:
            print(f"Output written to {output}", file=sys.stderr)
    else:
        print(text)


def main():
    parser = argparse.ArgumentParser(
        description="Browse and search StackBlitz projects",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  sft_stackblitz.py resolve https://stackblitz.com/edit/stackblitz-starters-rf7brvcm
  sft_stackblitz.py tree stackblitz-starters-rf7brvcm --path src
  sft_stackblitz.py read stackblitz-starters-rf7brvcm src/main.ts
  sft_stackblitz.py search stackblitz-starters-rf7brvcm "useState" --max 20
  sft_stackblitz.py search stackblitz-starters-rf7brvcm "import .* from" --regex
        """,
    )

    parser.add_argument(
        "-V", "--version",
        action="version",
        version=f"%(prog)s {CONFIG['version']}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-o", "--output", help="Output file (default: stdout)")
    common.add_argument("-q", "--quiet", action="store_true", help="Suppress metrics output")

    p_resolve = subparsers.add_parser(
        "resolve", parents=[common], help="Resolve a project ID/URL and show metadata"
    )
    p_resolve.add_argument("project_ref", help="Project ID or stackblitz.com URL")

    p_tree = subparsers.add_parser("tree", parents=[common], help="Show the project file tree")
    p_tree.add_argument("project_ref", help="Project ID or stackblitz.com URL")
    p_tree.add_argument("-p", "--path", default="", help="Only show files under this folder")
    p_tree.add_argument("-j", "--json", action="store_true", help="Output path list as JSON")

    p_read = subparsers.add_parser("read", parents=[common], help="Print one file")
    p_read.add_argument("project_ref", help="Project ID or stackblitz.com URL")
    p_read.add_argument("path", help="File path within the project")
    p_read.add_argument("-j", "--json", action="store_true", help="Output as JSON")

    p_search = subparsers.add_parser("search", parents=[common], help="Search file contents")
    p_search.add_argument("project_ref", help="Project ID or stackblitz.com URL")
    p_search.add_argument("query", nargs="?", help="Search text or pattern (or pipe via stdin)")
    p_search.add_argument("-r", "--regex", action="store_true", help="Treat query as regex")
    p_search.add_argument("-c", "--case", action="store_true", help="Case sensitive search")
    p_search.add_argument(
        "-n", "--max",
        type=int,
        default=CONFIG["default_max_results"],
        help=f"Maximum number of matches (default: {CONFIG['default_max_results']})",
    )
    p_search.add_argument("-j", "--json", action="store_true", help="Output as JSON")

    subparsers.add_parser("mcp-stdio", help="Run as MCP server")

    args = parser.parse_args()

    try:
        if args.command == "mcp-stdio":
            _run_mcp()
        elif args.command == "resolve":
            result, metrics = asyncio.run(_resolve_impl(args.project_ref))
            if not args.quiet:
                print(
                    f"[{_SCRIPT}] {metrics['latency_ms']:.0f}ms, {metrics['file_count']} files",
                    file=sys.stderr,
                )
            _emit(json.dumps(result, indent=2), args.output, args.quiet)
        elif args.command == "tree":
            result, metrics = asyncio.run(_tree_impl(args.project_ref, args.path))
            if not args.quiet:
                print(
                    f"[{_SCRIPT}] {metrics['latency_ms']:.0f}ms, {metrics['file_count']} files",
                    file=sys.stderr,
                )
            text = json.dumps(result["paths"], indent=2) if args.json else result["tree"]
            _emit(text, args.output, args.quiet)
        elif args.command == "read":
            result, metrics = asyncio.run(_read_impl(args.project_ref, args.path))
            if "error" in result:
                print(_not_found_message(result["path"], result["suggestions"]), file=sys.stderr)
                sys.exit(1)
            if not args.quiet:
                print(
                    f"[{_SCRIPT}] {metrics['latency_ms']:.0f}ms, {metrics['chars']} chars",
                    file=sys.stderr,
                )
            text = json.dumps(result, indent=2) if args.json else result["contents"]
            _emit(text, args.output, args.quiet)
        elif args.command == "search":
            query = args.query
            if not query and not sys.stdin.isatty():
                query = sys.stdin.read().strip()
            assert query, "query required (positional argument or stdin)"

            result, metrics = asyncio.run(
                _search_impl(args.project_ref, query, args.regex, args.case, args.max)
            )
            if not args.quiet:
                print(
                    f"[{_SCRIPT}] {metrics['latency_ms']:.0f}ms, {metrics['match_count']} matches",
                    file=sys.stderr,
                )
            if args.json:
                text = json.dumps({"matches": result["matches"], "metrics": metrics}, indent=2)
            else:
                text = result["report"]
            _emit(text, args.output, args.quiet)
        else:
            parser.print_help()
    except AssertionError as e:
        _log("ERROR", "contract_violation", str(e))
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        _log("ERROR", "runtime_error", str(e), detail=type(e).__name__)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


# =============================================================================
# FASTMCP SERVER — exceptions propagate, FastMCP handles them
# =============================================================================
def _run_mcp():
    from fastmcp import FastMCP
    from fastmcp.exceptions import ResourceError, ToolError

    mcp = FastMCP("stackblitz")

    @mcp.resource(
        "stackblitz://{project_id}/tree",
        description="File tree of a StackBlitz project",
        mime_type="text/plain",
    )
    async def project_tree(project_id: str) -> str:
        result, _ = await _tree_impl(project_id)
        return result["tree"]

    @mcp.resource(
        "stackblitz://{project_id}/files/{path*}",
        description="Contents of a file in a StackBlitz project",
    )
    async def project_file(project_id: str, path: str) -> str:
        result, _ = await _read_impl(project_id, path)
        if "error" in result:
            raise ResourceError(f"File not found: {path}")
        return result["contents"]

    @mcp.tool()
    async def resolve_project(project_ref: str, refresh: bool = False) -> str:
        """Resolve a StackBlitz project URL or ID and return project metadata.

        Args:
            project_ref: StackBlitz project ID or URL
            refresh: Re-fetch even if the project was fetched in the last 5 minutes

        Returns:
            JSON with project_id, title, description, preset, visibility, file_count
            and the URI of the tree resource
        """
        result, _ = await _resolve_impl(project_ref, refresh)
        result["tree_uri"] = f"stackblitz://{result['project_id']}/tree"
        return json.dumps(result, indent=2)

    @mcp.tool()
    async def list_files(project_ref: str, path: str = "") -> str:
        """List files in a StackBlitz project as a tree, optionally filtered by path prefix.

        Args:
            project_ref: StackBlitz project ID or URL
            path: Only include files under this folder (default: whole project)
        """
        result, _ = await _tree_impl(project_ref, path)
        return result["tree"]

    @mcp.tool()
    async def read_file(project_ref: str, path: str) -> str:
        """Read the contents of a file from a StackBlitz project.

        Args:
            project_ref: StackBlitz project ID or URL
            path: File path within the project (e.g. "src/main.ts")
        """
        result, _ = await _read_impl(project_ref, path)
        if "error" in result:
            raise ToolError(_not_found_message(path, result["suggestions"]))
        return result["contents"]

    @mcp.tool()
    async def search_files(
        project_ref: str,
        query: str,
        regex: bool = False,
        case_sensitive: bool = False,
        max_results: int = CONFIG["default_max_results"],
    ) -> str:
        """Search for content within files of a StackBlitz project.

        Args:
            project_ref: StackBlitz project ID or URL
            query: Text to look for, or a regex when regex=True
            regex: Treat query as a regular expression (default: False)
            case_sensitive: Case-sensitive matching (default: False)
            max_results: Maximum number of matching lines (default: 50)

        Returns:
            Matches grouped by file, one "L<line>: <text>" entry per match
        """
        try:
            result, _ = await _search_impl(
                project_ref, query, regex, case_sensitive, max_results
            )
        except InvalidPattern as e:
            raise ToolError(str(e)) from e
        return result["report"]

    print("StackBlitz MCP server starting...", file=sys.stderr)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
