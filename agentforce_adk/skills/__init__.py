"""Skill files appended to an agent's system prompt."""
from agentforce_adk.skills.parser import Skill, parse_skill_file
from agentforce_adk.skills.loader import load_skills, render_skills, resolve_skill_path

__all__ = ["Skill", "parse_skill_file", "load_skills", "render_skills", "resolve_skill_path"]
