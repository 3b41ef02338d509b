"""Configuration models for agents, models and the process environment."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from agentforce_adk.errors import ConfigurationError


DEFAULT_PROVIDER = "ollama"
DEFAULT_MODEL = "gemma3:4b"
DEFAULT_MAX_TOOL_ROUNDS = 10


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", ""))
    return "; ".join(parts)


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, extra="forbid")

    @classmethod
    def build(cls, **kwargs: Any):
        """Construct the model, reporting validation failures as ConfigurationError."""
        try:
            return cls(**kwargs)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid {cls.__name__}: {_validation_message(e)}"
            ) from e


class AgentConfig(_FrozenModel):
    """Static identity of an agent.

    Attributes:
        name: Agent name, used in logs and output
        tools: Names of registry tools the agent may call
        skills: Skill identifiers appended to the system prompt
        logger: Optional logger; defaults to a per-agent stdlib logger
    """

    name: str
    tools: Tuple[str, ...] = ()
    skills: Tuple[str, ...] = ()
    logger: Optional[Any] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("agent name must be a non-empty string")
        return value.strip()

    @field_validator("tools", "skills", mode="before")
    @classmethod
    def _to_tuple(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,)
        return tuple(value)


class ModelConfig(_FrozenModel):
    """Per-request generation settings.

    Attributes:
        temperature: Sampling temperature in [0, 1]
        max_tokens: Maximum output tokens
        max_tool_rounds: Tool execution rounds before a forced final answer
        append_tool_results: Append the raw results of the last tool round
            to the returned text
        request_delay: Seconds to wait before every provider call
        parallel_tool_calls: Execute the calls of one round concurrently
    """

    temperature: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    max_tokens: Optional[int] = Field(default=None, gt=0)
    max_tool_rounds: int = Field(default=DEFAULT_MAX_TOOL_ROUNDS, gt=0)
    append_tool_results: bool = False
    request_delay: float = Field(default=0.0, ge=0.0)
    parallel_tool_calls: bool = False


def coerce_model_config(value: Any) -> ModelConfig:
    """Accept a ModelConfig, a plain dict or None."""
    if value is None:
        return ModelConfig()
    if isinstance(value, ModelConfig):
        return value
    if isinstance(value, dict):
        return ModelConfig.build(**value)
    raise ConfigurationError(f"model_config must be a ModelConfig or dict, got {type(value).__name__}")


class Settings(BaseModel):
    """Values read from the process environment."""

    model_config = ConfigDict(frozen=True)

    log_level: str = "info"
    log_path: Optional[str] = None
    asset_path: Path = Field(default_factory=Path.cwd)
    file_root: Path = Field(default_factory=Path.cwd)
    ollama_host: Optional[str] = None
    openrouter_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    gemini_api_key: Optional[str] = None
    site_url: Optional[str] = None
    site_name: Optional[str] = None
    browser_path: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {
            "log_level": env.get("LOG_LEVEL", "info").lower(),
            "log_path": env.get("LOG_PATH") or None,
            "ollama_host": env.get("OLLAMA_HOST") or None,
            "openrouter_api_key": env.get("OPENROUTER_API_KEY") or None,
            "openai_api_key": env.get("OPENAI_API_KEY") or None,
            "gemini_api_key": env.get("GEMINI_API_KEY") or None,
            "site_url": env.get("YOUR_SITE_URL") or None,
            "site_name": env.get("YOUR_SITE_NAME") or None,
            "browser_path": env.get("AGENTFORCE_BROWSER_PATH") or None,
        }
        if env.get("AGENTFORCE_ASSET_PATH"):
            values["asset_path"] = Path(env["AGENTFORCE_ASSET_PATH"]).expanduser()
        if env.get("AGENTFORCE_FILE_ROOT"):
            values["file_root"] = Path(env["AGENTFORCE_FILE_ROOT"]).expanduser()
        return cls(**values)


def get_settings() -> Settings:
    """Read settings fresh from the environment on every call."""
    return Settings.from_env()


def agent_logger(config: AgentConfig) -> logging.Logger:
    if config.logger is not None:
        return config.logger
    return logging.getLogger(f"agentforce_adk.agent.{config.name}")
