"""
Core infrastructure: configuration, logging setup and the error hierarchy.
"""

from .config_manager import (
    ConfigManager,
    MissionAgentConfig,
    LLMConfig,
    DatabaseConfig,
    ExecutionConfig,
    ToolsConfig,
    ServerConfig,
    config_manager,
    get_config,
    initialize_config,
    update_config,
)
from .errors import (
    MissionAgentError,
    CircularDependencyError,
    ToolResolutionError,
    TaskExecutionError,
    TaskStateError,
    InvalidTransitionError,
    MissionInterruptedError,
    EntityNotFoundError,
    MissionNotFoundError,
    PlanNotFoundError,
    TaskNotFoundError,
    PlanningError,
)
from .logging_config import configure_logging

__all__ = [
    "ConfigManager",
    "MissionAgentConfig",
    "LLMConfig",
    "DatabaseConfig",
    "ExecutionConfig",
    "ToolsConfig",
    "ServerConfig",
    "config_manager",
    "get_config",
    "initialize_config",
    "update_config",
    "configure_logging",
    # Errors
    "MissionAgentError",
    "CircularDependencyError",
    "ToolResolutionError",
    "TaskExecutionError",
    "TaskStateError",
    "InvalidTransitionError",
    "MissionInterruptedError",
    "EntityNotFoundError",
    "MissionNotFoundError",
    "PlanNotFoundError",
    "TaskNotFoundError",
    "PlanningError",
]
