"""Configuration loader for tinyagent.

Loads YAML configuration files and validates them against Pydantic models.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    format: str = Field(default="console", pattern=r"^(json|console)$")
    file: Optional[Path] = Field(default=None)


class AgentDefaults(BaseModel):
    """Defaults applied to every reasoning loop unless overridden per agent."""

    max_iterations: int = Field(default=5, ge=1, le=100)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    parallel_tool_calls: bool = Field(default=True)


class WorkflowDefaults(BaseModel):
    """Defaults applied to every workflow run unless overridden per call."""

    max_steps: int = Field(default=1000, ge=1)
    timeout_ms: Optional[int] = Field(default=None, ge=1)


class Config(BaseModel):
    """Complete tinyagent configuration."""

    version: str = Field(default="1.0")
    environment: str = Field(default="development")

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    agent: AgentDefaults = Field(default_factory=AgentDefaults)
    workflow: WorkflowDefaults = Field(default_factory=WorkflowDefaults)


def load_config(config_dir: Path | str) -> Config:
    """Load configuration from a directory.

    Reads ``tinyagent.yaml``, merges any files listed under ``includes``,
    then merges ``environments/<environment>.yaml`` on top.

    Args:
        config_dir: Path to configuration directory containing YAML files.

    Returns:
        Validated Config object.

    Raises:
        FileNotFoundError: If config directory doesn't exist.
        pydantic.ValidationError: If configuration is invalid.
    """
    config_dir = Path(config_dir)

    if not config_dir.exists():
        raise FileNotFoundError(f"Config directory not found: {config_dir}")

    main_file = config_dir / "tinyagent.yaml"
    if main_file.exists():
        with open(main_file) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    includes = data.pop("includes", [])
    for include in includes:
        include_path = config_dir / include
        if include_path.exists():
            with open(include_path) as f:
                _deep_merge(data, yaml.safe_load(f) or {})

    env = data.get("environment", "development")
    env_file = config_dir / "environments" / f"{env}.yaml"
    if env_file.exists():
        with open(env_file) as f:
            _deep_merge(data, yaml.safe_load(f) or {})

    return Config(**data)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    """Deep merge override into base dictionary."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
