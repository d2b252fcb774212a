"""Configuration loading and validation."""

from tinyagent.config.loader import (
    AgentDefaults,
    Config,
    LoggingConfig,
    WorkflowDefaults,
    load_config,
)

__all__ = [
    "load_config",
    "Config",
    "LoggingConfig",
    "AgentDefaults",
    "WorkflowDefaults",
]
