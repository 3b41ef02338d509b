"""Parse skill files: optional YAML frontmatter followed by markdown instructions.

Parsing is done via `python-frontmatter` (import name: `frontmatter`).
Frontmatter follows the Agent Skills format (https://agentskills.io/);
plain markdown files without frontmatter are accepted as well.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import frontmatter


_NAME_RE = re.compile(r'^[a-z0-9-]+$')


@dataclass
class Skill:
    """A loaded skill.

    Attributes:
        name: Skill name from frontmatter, else the file (or folder) name
        instructions: Markdown body appended to the system prompt
        path: File the skill was read from
        description: Optional one-line summary
        tools: Tool names the skill asks for
        metadata: Any other frontmatter values
    """
    name: str
    instructions: str
    path: Path
    description: Optional[str] = None
    tools: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


def validate_skill_name(name: Any, source: Path) -> str:
    """Check the Agent Skills naming rules.

    Raises:
        ValueError: If the name is not 1-64 chars of lowercase alphanumerics
            and single hyphens
    """
    if not isinstance(name, str) or len(name) < 1 or len(name) > 64:
        raise ValueError(f"Invalid 'name' in {source}: must be 1-64 characters")

    if not _NAME_RE.match(name):
        raise ValueError(
            f"Invalid 'name' in {source}: must be lowercase alphanumeric + hyphens"
        )

    if name.startswith('-') or name.endswith('-') or '--' in name:
        raise ValueError(
            f"Invalid 'name' in {source}: no leading/trailing/consecutive hyphens"
        )
    return name


def default_skill_name(skill_file: Path) -> str:
    if skill_file.name.upper() == "SKILL.MD":
        return skill_file.parent.name
    return re.sub(r'\.(md|txt)$', '', skill_file.name)


def parse_skill_file(skill_file: Path) -> Skill:
    """Parse a skill file.

    Args:
        skill_file: Path to a markdown skill file

    Returns:
        Skill with the body as instructions

    Raises:
        ValueError: If the frontmatter is malformed or has invalid fields
    """
    try:
        post = frontmatter.load(skill_file)
    except Exception as e:
        raise ValueError(f"Failed to parse frontmatter in {skill_file}: {e}") from e

    metadata = dict(post.metadata or {})
    instructions = (post.content or "").strip()

    if 'name' in metadata:
        name = validate_skill_name(metadata.pop('name'), skill_file)
    else:
        name = default_skill_name(skill_file)

    description = metadata.pop('description', None)
    if description is not None:
        description = str(description)
        if len(description) > 1024:
            raise ValueError(
                f"Invalid 'description' in {skill_file}: must be 1-1024 characters"
            )

    tools: List[str] = []
    if 'tools' in metadata:
        raw = metadata.pop('tools')
        if isinstance(raw, str):
            tools = raw.split()
        elif isinstance(raw, list):
            tools = [str(t) for t in raw]
        else:
            raise ValueError(f"'tools' in {skill_file} must be string or list")

    return Skill(
        name=name,
        instructions=instructions,
        path=skill_file,
        description=description,
        tools=tools,
        metadata=metadata,
    )
