"""GitHub repository listing through the ``gh`` command line tool.

``gh`` handles authentication (``gh auth login`` or ``GH_TOKEN``), so
this module only builds the command and reshapes its JSON output.
"""
from __future__ import annotations

import asyncio
import json
import logging
import shutil
from typing import Any, Dict, List, Optional

from langchain_core.tools import tool


logger = logging.getLogger(__name__)

GH_TIMEOUT_SECONDS = 60
GH_REPO_FIELDS = (
    "name,nameWithOwner,owner,description,url,sshUrl,createdAt,updatedAt,pushedAt,"
    "isPrivate,isFork,isArchived,primaryLanguage,repositoryTopics,stargazerCount,forkCount,diskUsage"
)
_SORT_FIELDS = {"created": "created_at", "updated": "updated_at", "pushed": "pushed_at"}


async def run_gh(args: List[str], timeout: float = GH_TIMEOUT_SECONDS) -> Dict[str, Any]:
    """Run ``gh`` with ``args`` and capture its output."""
    executable = shutil.which("gh")
    if executable is None:
        return {"success": False, "error": "GitHub CLI (gh) is not installed or not on PATH"}

    command = " ".join(["gh", *args])
    proc = await asyncio.create_subprocess_exec(
        executable,
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        return {"success": False, "error": f"gh timed out after {timeout}s", "command": command}

    return {
        "success": proc.returncode == 0,
        "command": command,
        "exit_code": proc.returncode,
        "stdout": stdout.decode("utf-8", errors="replace"),
        "stderr": stderr.decode("utf-8", errors="replace"),
    }


def _repo_summary(repo: Dict[str, Any]) -> Dict[str, Any]:
    owner = (repo.get("owner") or {}).get("login", "")
    topics = [t.get("topic", {}).get("name") for t in repo.get("repositoryTopics") or []]
    return {
        "name": repo.get("name"),
        "full_name": repo.get("nameWithOwner") or f"{owner}/{repo.get('name')}",
        "owner": owner,
        "description": repo.get("description") or "",
        "url": repo.get("url"),
        "ssh_url": repo.get("sshUrl"),
        "is_private": bool(repo.get("isPrivate")),
        "is_fork": bool(repo.get("isFork")),
        "is_archived": bool(repo.get("isArchived")),
        "language": (repo.get("primaryLanguage") or {}).get("name") or "Unknown",
        "topics": [t for t in topics if t],
        "stars": repo.get("stargazerCount") or 0,
        "forks": repo.get("forkCount") or 0,
        "size": repo.get("diskUsage") or 0,
        "created_at": repo.get("createdAt"),
        "updated_at": repo.get("updatedAt"),
        "pushed_at": repo.get("pushedAt"),
    }


@tool
async def gh_list_repos(
    owner: Optional[str] = None,
    limit: int = 30,
    visibility: Optional[str] = None,
    source_only: bool = False,
    sort: str = "updated",
    direction: str = "desc",
    language: Optional[str] = None,
    topic: Optional[str] = None,
    archived: bool = False,
    fork: bool = True,
) -> Dict:
    """List GitHub repositories of a user or organization with the GitHub CLI.

    Args:
        owner: User or organization; defaults to the authenticated user
        limit: Maximum number of repositories (1-100)
        visibility: public, private or internal
        source_only: Only repositories that are not forks
        sort: created, updated, pushed or full_name
        direction: asc or desc
        language: Only repositories with this primary language
        topic: Only repositories with this topic
        archived: Include archived repositories
        fork: Include forked repositories
    """
    args = ["repo", "list"]
    if owner:
        args.append(owner)
    args += ["--limit", str(max(1, min(limit, 100))), "--json", GH_REPO_FIELDS]
    if visibility:
        args += ["--visibility", visibility]
    if source_only:
        args.append("--source")
    if language:
        args += ["--language", language]
    if topic:
        args += ["--topic", topic]
    if not archived:
        args.append("--no-archived")

    result = await run_gh(args)
    if not result["success"]:
        return {
            "success": False,
            "error": result.get("error") or result.get("stderr", "").strip() or "Failed to list repositories",
            "command": result.get("command"),
            "exit_code": result.get("exit_code"),
        }

    try:
        repositories = json.loads(result["stdout"] or "[]")
    except ValueError:
        return {"success": False, "error": "Failed to parse GitHub CLI response", "raw_output": result["stdout"]}

    repos = [_repo_summary(r) for r in repositories if fork or not r.get("isFork")]
    if sort == "full_name":
        repos.sort(key=lambda r: r["full_name"].lower(), reverse=direction == "desc")
    elif sort in _SORT_FIELDS:
        field = _SORT_FIELDS[sort]
        repos.sort(key=lambda r: r[field] or "", reverse=direction == "desc")

    logger.debug("gh_list_repos: %d repositories for %s", len(repos), owner or "authenticated user")
    return {
        "success": True,
        "owner": owner or "authenticated user",
        "repositories": repos,
        "statistics": {
            "total": len(repos),
            "public": sum(1 for r in repos if not r["is_private"]),
            "private": sum(1 for r in repos if r["is_private"]),
            "forked": sum(1 for r in repos if r["is_fork"]),
            "archived": sum(1 for r in repos if r["is_archived"]),
            "stars": sum(r["stars"] for r in repos),
            "forks": sum(r["forks"] for r in repos),
            "languages": sorted({r["language"] for r in repos}),
        },
    }
