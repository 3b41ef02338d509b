"""Resolve skill identifiers and render them into system prompt text."""
import logging
from pathlib import Path
from typing import Iterable, List, Optional

from agentforce_adk.skills.parser import Skill, parse_skill_file


logger = logging.getLogger(__name__)

SKILLS_HEADER = "\n\n# Loaded Skills\n"


def resolve_skill_path(identifier: str, asset_path: Path) -> Optional[Path]:
    """Find the file for a skill identifier.

    A bare name is looked up under ``<asset_path>/skills`` as
    ``<name>/SKILL.md`` or ``<name>.md``. Anything containing a path
    separator is resolved relative to ``asset_path``; a directory resolves
    to the ``SKILL.md`` inside it.

    Returns:
        The existing file, or None
    """
    if "/" in identifier or "\\" in identifier:
        candidate = (asset_path / identifier).resolve()
        if candidate.is_dir():
            candidate = candidate / "SKILL.md"
        return candidate if candidate.is_file() else None

    skills_dir = asset_path / "skills"
    for candidate in (skills_dir / identifier / "SKILL.md", skills_dir / f"{identifier}.md"):
        if candidate.is_file():
            return candidate.resolve()
    return None


def load_skills(
    identifiers: Iterable[str],
    asset_path: Path,
    log: Optional[logging.Logger] = None,
) -> List[Skill]:
    """Load every resolvable skill; missing or invalid ones are logged and skipped."""
    log = log or logger
    skills: List[Skill] = []
    for identifier in identifiers:
        path = resolve_skill_path(identifier, asset_path)
        if path is None:
            log.warning("Skill file not found: %s (asset path %s)", identifier, asset_path)
            continue
        try:
            skill = parse_skill_file(path)
        except (ValueError, OSError) as e:
            log.error("Failed to load skill %s: %s", identifier, e)
            continue
        log.debug("Skill loaded: %s from %s", skill.name, path)
        skills.append(skill)
    return skills


def render_skills(skills: List[Skill]) -> str:
    """Render loaded skills as a system prompt section ("" when none)."""
    if not skills:
        return ""
    sections = [f"\n## Skill: {skill.name}\n{skill.instructions}" for skill in skills]
    return SKILLS_HEADER + "\n".join(sections)
