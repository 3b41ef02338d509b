"""Directory traversal tools: find by extension or name, file trees.

All of them honour the file-root sandbox and, unless told otherwise, skip
what the directory's .gitignore (plus a few well-known build folders)
excludes.
"""
from __future__ import annotations

import fnmatch
import os
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Optional

from langchain_core.tools import tool

from agentforce_adk.tools.sandbox import file_root, resolve_path_in_root


DEFAULT_EXCLUDES = ("node_modules", ".git", "dist", "build", "coverage", ".idea", ".vscode")
TREE_FORMATS = ("array", "json", "yaml")


def gitignore_excludes(directory: Path) -> List[str]:
    """Exclusion patterns for ``directory``: defaults plus its .gitignore.

    Patterns are reduced to path-segment globs: a trailing ``/`` and a
    leading ``/`` or ``**/`` are dropped and nested paths keep only their
    first segment. Negations are ignored.
    """
    excludes = list(DEFAULT_EXCLUDES)
    gitignore = directory / ".gitignore"
    try:
        lines = gitignore.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError):
        lines = []

    for raw in lines:
        line = raw.strip()
        if not line or line.startswith(("#", "!")):
            continue
        line = line.rstrip("/")
        if line.startswith("**/"):
            line = line[3:]
        line = line.lstrip("/")
        if "/" in line:
            line = line.split("/", 1)[0]
        if line and line not in excludes:
            excludes.append(line)
    return excludes


def should_exclude(relative_path: str, excludes: Iterable[str]) -> bool:
    """True when any segment of ``relative_path`` matches an exclude glob."""
    parts = PurePosixPath(relative_path).parts
    return any(fnmatch.fnmatchcase(part, pattern) for part in parts for pattern in excludes)


def _excludes_for(directory: Path, use_gitignore: bool, additional: Optional[List[str]]) -> List[str]:
    excludes = gitignore_excludes(directory) if use_gitignore else []
    for extra in additional or []:
        if extra not in excludes:
            excludes.append(extra)
    return excludes


def _sorted_entries(directory: Path) -> List[Path]:
    """Directories first, then files, each alphabetically."""
    try:
        entries = list(directory.iterdir())
    except OSError:
        return []
    return sorted(entries, key=lambda p: (not p.is_dir(), p.name))


def _display(path: Path) -> str:
    root = file_root()
    relative = path.relative_to(root).as_posix()
    return relative if relative != "." else "."


# =============================================================================
# Finding files and directories
# =============================================================================

@tool
def fs_find_files(
    extensions: List[str],
    path: str = ".",
    use_gitignore: bool = True,
    additional_excludes: Optional[List[str]] = None,
    max_depth: int = 10,
) -> Dict:
    """Recursively find files by extension, skipping .gitignore'd paths.

    Args:
        extensions: Extensions to look for, e.g. [".md", "ts"]
        path: Directory to search, relative to the working directory
        use_gitignore: Skip paths excluded by .gitignore and common build folders
        additional_excludes: More directory or file name globs to skip
        max_depth: Maximum directory depth to descend
    """
    try:
        base = resolve_path_in_root(path)
    except PermissionError as e:
        return {"success": False, "error": str(e), "path": path}
    if not base.is_dir():
        return {"success": False, "error": f"Not a directory: {path}", "path": path}

    suffixes = tuple(e if e.startswith(".") else f".{e}" for e in extensions)
    excludes = _excludes_for(base, use_gitignore, additional_excludes)
    found = []

    for dirpath, dirnames, filenames in os.walk(base):
        current = Path(dirpath)
        depth = len(current.relative_to(base).parts)
        if depth >= max_depth:
            dirnames[:] = []
        else:
            dirnames[:] = [d for d in dirnames if not should_exclude(d, excludes)]
        for filename in filenames:
            if should_exclude(filename, excludes) or not filename.endswith(suffixes):
                continue
            file_path = current / filename
            try:
                stats = file_path.stat()
            except OSError:
                continue
            found.append({
                "name": filename,
                "path": file_path.relative_to(base).as_posix(),
                "size": stats.st_size,
                "modified": datetime.fromtimestamp(stats.st_mtime, timezone.utc).isoformat(),
            })

    found.sort(key=lambda f: f["path"])
    return {
        "success": True,
        "path": path,
        "extensions": list(extensions),
        "excludes": excludes,
        "count": len(found),
        "files": found,
    }


@tool
def fs_find_dirs_and_files(
    pattern: str,
    path: str = ".",
    use_gitignore: bool = True,
    additional_excludes: Optional[List[str]] = None,
    max_depth: int = 10,
    max_results: int = 100,
    case_sensitive: bool = False,
) -> Dict:
    """Find files and directories whose name contains a pattern.

    Args:
        pattern: Substring to look for in names
        path: Directory to search, relative to the working directory
        use_gitignore: Skip paths excluded by .gitignore and common build folders
        additional_excludes: More directory or file name globs to skip
        max_depth: Maximum directory depth to descend (max 20)
        max_results: Stop after this many matches (max 500)
        case_sensitive: Match case
    """
    try:
        base = resolve_path_in_root(path)
    except PermissionError as e:
        return {"success": False, "error": str(e), "path": path}
    if not base.exists():
        return {"success": False, "error": f"Search path does not exist: {path}", "path": path}

    depth_limit = max(0, min(max_depth, 20))
    limit = max(1, min(max_results, 500))
    excludes = _excludes_for(file_root(), use_gitignore, additional_excludes)
    needle = pattern if case_sensitive else pattern.lower()
    dirs: List[str] = []
    files: List[str] = []

    def matches(name: str) -> bool:
        return needle in (name if case_sensitive else name.lower())

    stack = [(base, 0)]
    while stack and len(dirs) + len(files) < limit:
        current, depth = stack.pop()
        if matches(current.name):
            dirs.append(_display(current))
        if depth >= depth_limit:
            continue
        for entry in reversed(_sorted_entries(current)):
            if should_exclude(entry.name, excludes):
                continue
            if entry.is_dir():
                stack.append((entry, depth + 1))
            elif matches(entry.name) and len(dirs) + len(files) < limit:
                files.append(_display(entry))

    total = len(dirs) + len(files)
    truncated = total >= limit
    return {
        "success": True,
        "pattern": pattern,
        "path": path,
        "case_sensitive": case_sensitive,
        "dirs": {"count": len(dirs), "items": dirs},
        "files": {"count": len(files), "items": files},
        "total_found": total,
        "truncated": truncated,
        "message": (
            f"Found {total} results (truncated at {limit} limit). Use max_results to increase the limit."
            if truncated
            else f"Found {total} results ({len(dirs)} directories, {len(files)} files)"
        ),
    }


# =============================================================================
# Trees
# =============================================================================

def _walk_array(path: Path, excludes: List[str], out: List[str]) -> None:
    if path.is_dir():
        if path.name in excludes:
            return
        out.append(str(path))
        for entry in _sorted_entries(path):
            _walk_array(entry, excludes, out)
    elif path.is_file():
        out.append(str(path))


def _walk_json(path: Path, excludes: List[str]) -> Optional[Dict]:
    if path.is_dir():
        if path.name in excludes:
            return None
        children = [c for c in (_walk_json(e, excludes) for e in _sorted_entries(path)) if c]
        return {"name": path.name, "path": str(path), "type": "directory", "children": children}
    if path.is_file():
        return {"name": path.name, "path": str(path), "type": "file"}
    return None


def _walk_yaml(path: Path, excludes: List[str], indent: int, out: List[str]) -> None:
    prefix = "  " * indent
    if path.is_dir():
        if path.name in excludes:
            return
        out.append(f"{prefix}{path.name}/")
        for entry in _sorted_entries(path):
            _walk_yaml(entry, excludes, indent + 1, out)
    elif path.is_file():
        out.append(f"{prefix}{path.name}")


@tool
def fs_get_file_tree(path: str, output_format: str = "array", excludes: Optional[List[str]] = None) -> Dict:
    """Build a file tree under a directory as a flat list, nested JSON or an indented outline.

    Args:
        path: Root directory of the tree
        output_format: array (list of paths), json (nested nodes) or yaml (indented outline)
        excludes: Directory names to leave out, e.g. ["node_modules", ".git"]
    """
    if output_format not in TREE_FORMATS:
        return {
            "success": False,
            "error": "Invalid output_format. Use 'array', 'json', or 'yaml'.",
            "output_format": output_format,
        }
    try:
        root = resolve_path_in_root(path)
    except PermissionError as e:
        return {"success": False, "error": str(e), "path": path}
    if not root.exists():
        return {"success": False, "error": f"Path not found: {path}", "path": path}

    skip = list(excludes or [])
    if output_format == "array":
        result: object = []
        _walk_array(root, skip, result)
        count = len(result)
    elif output_format == "json":
        result = _walk_json(root, skip)
        count = 1
    else:
        lines: List[str] = []
        _walk_yaml(root, skip, 0, lines)
        result = "\n".join(lines)
        count = len(lines)

    return {
        "success": True,
        "path": path,
        "output_format": output_format,
        "excludes": skip,
        "result": result,
        "count": count,
    }


def _tree_nodes(directory: Path, base: Path, excludes: List[str], max_depth: int, depth: int = 0) -> List[Dict]:
    if depth >= max_depth:
        return []
    nodes = []
    for entry in _sorted_entries(directory):
        is_dir = entry.is_dir()
        ignored = should_exclude(entry.relative_to(base).as_posix(), excludes)
        node = {"name": entry.name, "is_dir": is_dir, "ignored": ignored, "children": []}
        if is_dir and not ignored:
            node["children"] = _tree_nodes(entry, base, excludes, max_depth, depth + 1)
        nodes.append(node)
    return nodes


def _without_files(nodes: List[Dict]) -> List[Dict]:
    return [dict(n, children=_without_files(n["children"])) for n in nodes if n["is_dir"]]


def render_ascii_tree(nodes: List[Dict], prefix: str = "") -> List[str]:
    lines = []
    for index, node in enumerate(nodes):
        last = index == len(nodes) - 1
        label = node["name"] + ("/" if node["is_dir"] else "") + (" (ignored)" if node["ignored"] else "")
        lines.append(f"{prefix}{'└── ' if last else '├── '}{label}")
        if node["children"]:
            lines.extend(render_ascii_tree(node["children"], prefix + ("    " if last else "│   ")))
    return lines


def _tree_statistics(nodes: List[Dict], stats: Dict[str, int]) -> Dict[str, int]:
    for node in nodes:
        if node["is_dir"]:
            stats["directories"] += 1
            if node["ignored"]:
                stats["ignored_directories"] += 1
            _tree_statistics(node["children"], stats)
        else:
            stats["files"] += 1
    return stats


@tool
def md_create_ascii_tree(
    path: str = ".",
    use_gitignore: bool = True,
    additional_excludes: Optional[List[str]] = None,
    max_depth: int = 5,
    include_files: bool = True,
    markdown_format: bool = True,
) -> Dict:
    """Draw an ASCII tree of a directory. Ignored directories are shown but not expanded.

    Args:
        path: Directory to draw, relative to the working directory
        use_gitignore: Mark paths excluded by .gitignore and common build folders as ignored
        additional_excludes: More directory or file name globs to mark as ignored
        max_depth: Maximum depth to draw
        include_files: Include files, not only directories
        markdown_format: Wrap the tree in a markdown code block
    """
    try:
        base = resolve_path_in_root(path)
    except PermissionError as e:
        return {"success": False, "error": str(e), "path": path}
    if not base.is_dir():
        return {"success": False, "error": f"Not a directory: {path}", "path": path}

    excludes = _excludes_for(base, use_gitignore, additional_excludes)
    nodes = _tree_nodes(base, base, excludes, max_depth)
    shown = nodes if include_files else _without_files(nodes)

    root_name = "." if base == file_root() else base.name
    tree = "\n".join([f"{root_name}/"] + render_ascii_tree(shown)) + "\n"
    if markdown_format:
        tree = f"```\n{tree}```"

    return {
        "success": True,
        "path": path,
        "tree": tree,
        "statistics": _tree_statistics(nodes, {"directories": 0, "files": 0, "ignored_directories": 0}),
        "excludes": excludes,
    }
