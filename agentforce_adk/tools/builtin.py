"""Built-in tools available to every registry created with builtin tools.

Each tool returns a dict with a ``success`` flag. Failures are reported as
``{"success": False, "error": ...}`` and never raised, so the model can
read them and recover.

Available tools:
- fs_read_file, fs_write_file, fs_move_file, fs_list_dir: Basic file operations
- fs_search_content: Search file contents for a pattern
- fs_find_files, fs_find_dirs_and_files: Find paths by extension or name
- fs_get_file_tree, md_create_ascii_tree: Directory trees
- os_exec: Run an allowlisted command without a shell
- api_fetch: Make an HTTP request
- web_fetch: Render a page in a headless browser
- browser_use: Drive a persistent browser session
- filter_content: Pull JSON, YAML, markdown or HTML out of text
- gh_list_repos: List GitHub repositories with the gh CLI
"""
from __future__ import annotations

import asyncio
import json
import os
import re
from pathlib import Path
from typing import Dict, List, Optional

import httpx
from langchain_core.tools import tool

from agentforce_adk.tools.browser import browser_use, web_fetch
from agentforce_adk.tools.content import filter_content
from agentforce_adk.tools.github import gh_list_repos
from agentforce_adk.tools.sandbox import resolve_path_in_root
from agentforce_adk.tools.search import (
    fs_find_dirs_and_files,
    fs_find_files,
    fs_get_file_tree,
    md_create_ascii_tree,
)


MAX_READ_BYTES = 1024 * 1024
EXEC_TIMEOUT_MS_DEFAULT = 15_000
EXEC_MAX_OUTPUT_BYTES_DEFAULT = 1_000_000
FETCH_TIMEOUT_MS_DEFAULT = 30_000
FETCH_MAX_RESPONSE_BYTES_DEFAULT = 5_000_000
FETCH_MAX_REDIRECTS = 5
FETCH_METHODS = {"GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"}

EXEC_ALLOWLIST = frozenset({
    "python", "python3", "pip", "uv", "node", "npm", "git",
    "ls", "cat", "grep", "sed", "awk", "echo", "which", "whoami", "pwd", "date",
    "curl", "wget", "tar", "zip", "unzip", "mkdir", "rm", "cp", "mv", "find",
    "sort", "uniq", "head", "tail", "wc", "diff", "patch",
})

_SKIP_DIRS = {".git", "node_modules", "__pycache__", ".venv", "venv", "dist", "build"}


# =============================================================================
# File Operations
# =============================================================================

@tool
def fs_read_file(path: str, max_length: Optional[int] = None) -> Dict:
    """Read the contents of a text file.

    Args:
        path: File path, relative to the working directory
        max_length: Maximum number of characters to return
    """
    try:
        resolved = resolve_path_in_root(path)
        if not resolved.exists():
            return {"success": False, "error": f"File not found: {path}", "path": path}
        if not resolved.is_file():
            return {"success": False, "error": f"Not a file: {path}", "path": path}
        if resolved.stat().st_size > MAX_READ_BYTES:
            return {"success": False, "error": f"File too large (max 1MB): {path}", "path": path}

        content = resolved.read_text(encoding="utf-8")
        if max_length and len(content) > max_length:
            content = content[:max_length] + "... [truncated]"
        return {"success": True, "path": path, "content": content, "size": len(content)}
    except (OSError, UnicodeDecodeError) as e:
        return {"success": False, "error": str(e), "path": path}


@tool
def fs_write_file(path: str, content: str, append: bool = False) -> Dict:
    """Write text to a file, creating parent directories as needed.

    Args:
        path: File path, relative to the working directory
        content: Text to write
        append: Append instead of overwriting
    """
    try:
        resolved = resolve_path_in_root(path)
        resolved.parent.mkdir(parents=True, exist_ok=True)
        mode = "a" if append else "w"
        with resolved.open(mode, encoding="utf-8") as fh:
            fh.write(content)
        return {"success": True, "path": path, "bytes_written": len(content.encode("utf-8"))}
    except OSError as e:
        return {"success": False, "error": str(e), "path": path}


@tool
def fs_move_file(source: str, destination: str, create_dirs: bool = True, overwrite: bool = False) -> Dict:
    """Move or rename a file or directory.

    Args:
        source: Path to move, relative to the working directory
        destination: New path, relative to the working directory
        create_dirs: Create missing parent directories of the destination
        overwrite: Replace an existing destination file
    """
    try:
        src = resolve_path_in_root(source)
        dst = resolve_path_in_root(destination)
    except PermissionError as e:
        return {"success": False, "error": str(e), "source": source, "destination": destination}

    if not src.exists():
        return {"success": False, "error": f"Source not found: {source}", "source": source, "destination": destination}
    if dst.exists() and not overwrite:
        return {
            "success": False,
            "error": f"Destination already exists: {destination}. Use overwrite: true to replace.",
            "source": source,
            "destination": destination,
        }

    try:
        if create_dirs:
            dst.parent.mkdir(parents=True, exist_ok=True)
        src.replace(dst)
    except OSError as e:
        return {"success": False, "error": str(e), "source": source, "destination": destination}
    return {
        "success": True,
        "source": source,
        "destination": destination,
        "message": f"Moved {source} to {destination}",
    }


@tool
def fs_list_dir(path: str = ".", include_hidden: bool = False) -> Dict:
    """List the entries of a directory.

    Args:
        path: Directory path, relative to the working directory
        include_hidden: Include entries starting with a dot
    """
    try:
        resolved = resolve_path_in_root(path)
        if not resolved.is_dir():
            return {"success": False, "error": f"Not a directory: {path}", "path": path}

        entries = []
        for child in sorted(resolved.iterdir(), key=lambda p: p.name):
            if not include_hidden and child.name.startswith("."):
                continue
            entry = {"name": child.name, "type": "directory" if child.is_dir() else "file"}
            if child.is_file():
                entry["size"] = child.stat().st_size
            entries.append(entry)
        return {"success": True, "path": path, "entries": entries, "count": len(entries)}
    except OSError as e:
        return {"success": False, "error": str(e), "path": path}


@tool
def fs_search_content(
    pattern: str,
    path: str = ".",
    file_extensions: Optional[List[str]] = None,
    use_regex: bool = False,
    case_sensitive: bool = True,
    max_total_matches: int = 100,
) -> Dict:
    """Search file contents under a directory and return matching lines.

    Args:
        pattern: Text (or regular expression if use_regex) to look for
        path: Directory to search, relative to the working directory
        file_extensions: Only search files with these extensions, e.g. [".py"]
        use_regex: Treat pattern as a regular expression
        case_sensitive: Match case
        max_total_matches: Stop after this many matches (max 500)
    """
    try:
        root = resolve_path_in_root(path)
    except PermissionError as e:
        return {"success": False, "error": str(e)}
    if not root.is_dir():
        return {"success": False, "error": f"Not a directory: {path}"}

    flags = 0 if case_sensitive else re.IGNORECASE
    try:
        regex = re.compile(pattern if use_regex else re.escape(pattern), flags)
    except re.error as e:
        return {"success": False, "error": f"Invalid regular expression: {e}"}

    limit = max(1, min(max_total_matches, 500))
    extensions = {e if e.startswith(".") else f".{e}" for e in (file_extensions or [])}
    matches = []
    files_searched = 0

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in _SKIP_DIRS and not d.startswith("."))
        for filename in sorted(filenames):
            file_path = Path(dirpath) / filename
            if extensions and file_path.suffix not in extensions:
                continue
            try:
                if file_path.stat().st_size > MAX_READ_BYTES:
                    continue
                lines = file_path.read_text(encoding="utf-8").splitlines()
            except (OSError, UnicodeDecodeError):
                continue
            files_searched += 1
            for lineno, line in enumerate(lines, start=1):
                if regex.search(line):
                    matches.append({
                        "file": str(file_path.relative_to(root)),
                        "line": lineno,
                        "text": line.strip()[:500],
                    })
                    if len(matches) >= limit:
                        return {
                            "success": True,
                            "matches": matches,
                            "files_searched": files_searched,
                            "truncated": True,
                        }

    return {"success": True, "matches": matches, "files_searched": files_searched, "truncated": False}


# =============================================================================
# Process execution
# =============================================================================

async def _read_capped(stream: asyncio.StreamReader, limit: int, sink: bytearray, on_overflow) -> None:
    while True:
        chunk = await stream.read(65536)
        if not chunk:
            return
        room = limit - len(sink)
        if room > 0:
            sink.extend(chunk[:room])
        if len(chunk) > room:
            on_overflow()
            return


@tool
async def os_exec(
    command: str,
    arguments: Optional[List[str]] = None,
    cwd: Optional[str] = None,
    timeout_ms: int = EXEC_TIMEOUT_MS_DEFAULT,
    max_output_bytes: int = EXEC_MAX_OUTPUT_BYTES_DEFAULT,
) -> Dict:
    """Run an allowlisted executable without a shell and capture its output.

    Args:
        command: Executable name (git, ls, grep, python, ...)
        arguments: Argument list passed to the executable
        cwd: Working directory, relative to the project root
        timeout_ms: Kill the process after this many milliseconds
        max_output_bytes: Kill the process once stdout+stderr exceed this size
    """
    command = (command or "").strip()
    if not command:
        return {"success": False, "error": "command is required and cannot be empty"}
    if command not in EXEC_ALLOWLIST:
        return {
            "success": False,
            "error": f"Command '{command}' is not allowed. Allowed commands: {', '.join(sorted(EXEC_ALLOWLIST))}",
        }

    try:
        workdir = resolve_path_in_root(cwd or ".")
    except PermissionError as e:
        return {"success": False, "error": str(e)}

    argv = [str(a) for a in (arguments or [])]
    try:
        proc = await asyncio.create_subprocess_exec(
            command,
            *argv,
            cwd=str(workdir),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        return {"success": False, "error": str(e), "spawn_error": True, "command": command, "arguments": argv}

    stdout = bytearray()
    stderr = bytearray()
    flags = {"output_limit_exceeded": False, "timed_out": False}
    half = max(1, max_output_bytes // 2)

    def overflow() -> None:
        flags["output_limit_exceeded"] = True
        if proc.returncode is None:
            proc.kill()

    readers = asyncio.gather(
        _read_capped(proc.stdout, half, stdout, overflow),
        _read_capped(proc.stderr, half, stderr, overflow),
        proc.wait(),
    )
    try:
        await asyncio.wait_for(readers, timeout=timeout_ms / 1000)
    except asyncio.TimeoutError:
        flags["timed_out"] = True
        if proc.returncode is None:
            proc.kill()
        await proc.wait()

    exit_code = proc.returncode
    ok = exit_code == 0 and not flags["timed_out"] and not flags["output_limit_exceeded"]
    result = {
        "success": ok,
        "command": command,
        "arguments": argv,
        "exit_code": exit_code,
        "stdout": stdout.decode("utf-8", errors="replace"),
        "stderr": stderr.decode("utf-8", errors="replace"),
        "timed_out": flags["timed_out"],
        "output_limit_exceeded": flags["output_limit_exceeded"],
    }
    if flags["timed_out"]:
        result["error"] = f"Command timed out after {timeout_ms}ms"
    elif flags["output_limit_exceeded"]:
        result["error"] = f"Output exceeded {max_output_bytes} bytes"
    elif exit_code != 0:
        result["error"] = f"Command exited with code {exit_code}"
    return result


# =============================================================================
# HTTP
# =============================================================================

@tool
async def api_fetch(
    url: str,
    method: str = "GET",
    headers: Optional[Dict[str, str]] = None,
    body: Optional[str] = None,
    timeout_ms: int = FETCH_TIMEOUT_MS_DEFAULT,
    max_response_bytes: int = FETCH_MAX_RESPONSE_BYTES_DEFAULT,
) -> Dict:
    """Make an HTTP request and return status, headers and body.

    Args:
        url: http or https URL
        method: GET, POST, PUT, DELETE, PATCH, HEAD or OPTIONS
        headers: Request headers
        body: Request body; JSON bodies get a JSON content type
        timeout_ms: Request timeout in milliseconds
        max_response_bytes: Abort when the response body exceeds this size
    """
    method = (method or "GET").upper()
    if method not in FETCH_METHODS:
        return {"success": False, "error": f"Unsupported method: {method}"}
    if not url.lower().startswith(("http://", "https://")):
        return {"success": False, "error": "Only http and https URLs are supported", "url": url}

    request_headers = dict(headers or {})
    if body is not None and not any(k.lower() == "content-type" for k in request_headers):
        try:
            json.loads(body)
            request_headers["Content-Type"] = "application/json"
        except ValueError:
            request_headers["Content-Type"] = "text/plain"

    try:
        async with httpx.AsyncClient(
            timeout=timeout_ms / 1000,
            follow_redirects=True,
            max_redirects=FETCH_MAX_REDIRECTS,
        ) as client:
            async with client.stream(method, url, headers=request_headers, content=body) as response:
                data = bytearray()
                async for chunk in response.aiter_bytes():
                    data.extend(chunk)
                    if len(data) > max_response_bytes:
                        return {
                            "success": False,
                            "url": url,
                            "status": response.status_code,
                            "error": f"Response exceeded {max_response_bytes} bytes",
                            "size_limit_exceeded": True,
                        }
                text = data.decode(response.encoding or "utf-8", errors="replace")
                return {
                    "success": response.is_success,
                    "url": str(response.url),
                    "status": response.status_code,
                    "headers": dict(response.headers),
                    "content": text,
                    "size": len(data),
                }
    except httpx.TimeoutException:
        return {"success": False, "url": url, "error": f"Request timed out after {timeout_ms}ms", "timed_out": True}
    except httpx.HTTPError as e:
        return {"success": False, "url": url, "error": str(e)}


BUILTIN_TOOLS = {
    builtin.name: builtin
    for builtin in (
        fs_read_file,
        fs_write_file,
        fs_move_file,
        fs_list_dir,
        fs_search_content,
        fs_find_files,
        fs_find_dirs_and_files,
        fs_get_file_tree,
        md_create_ascii_tree,
        os_exec,
        api_fetch,
        web_fetch,
        browser_use,
        filter_content,
        gh_list_repos,
    )
}
