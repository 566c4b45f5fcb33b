"""
Unified Configuration Manager for MissionAgent.

Provides a single source of truth for configuration across the engine,
the HTTP API and the CLI. Supports:
- Dataclass configuration sections with defaults
- JSON file loading
- Environment-based overrides (MISSIONAGENT_* variables)
- Runtime configuration updates and freezing

Usage:
    from missionagent.core.config_manager import config_manager, get_config

    config = get_config()
    url = config.database.url
    threshold = config.execution.completion_threshold

    config_manager.update({"llm.max_retries": 5})
"""

import os
import json
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Dataclasses
# =============================================================================

@dataclass
class LLMConfig:
    """
    Reasoning service configuration.

    The service is any OpenAI-compatible chat/embeddings endpoint.
    """

    base_url: str = "https://api.deepseek.com/v1"
    api_key: str = ""
    chat_model: str = "deepseek-reasoner"
    embedding_model: str = "deepseek-embedding"
    temperature: float = 0.7
    max_tokens: int = 2000
    timeout: float = 30.0
    max_retries: int = 3

    # Temperatures per request kind
    planning_temp: float = 0.3
    reflection_temp: float = 0.4
    tool_selection_temp: float = 0.2
    assessment_temp: float = 0.3

    def get_temperature(self, kind: str) -> float:
        """Get temperature for a request kind."""
        return getattr(self, f"{kind}_temp", self.temperature)


@dataclass
class DatabaseConfig:
    """Relational store configuration."""

    url: str = "sqlite:///missionagent.db"
    echo: bool = False


@dataclass
class ExecutionConfig:
    """Mission execution settings."""

    completion_threshold: float = 0.9
    progress_threshold: float = 0.5
    cache_ttl_seconds: int = 3600
    reflections_enabled: bool = True

    def __post_init__(self):
        self.completion_threshold = max(0.0, min(1.0, self.completion_threshold))
        self.progress_threshold = max(0.0, min(1.0, self.progress_threshold))


@dataclass
class ToolsConfig:
    """Settings shared by the built-in tools."""

    user_agent: str = "Mozilla/5.0 (compatible; ServiceAgent/1.0)"
    fetch_timeout: float = 10.0
    max_retries: int = 3
    retry_delay: float = 1.0
    retry_max_delay: float = 30.0
    similarity_threshold: float = 0.3
    default_search_limit: int = 5


@dataclass
class ServerConfig:
    """HTTP server settings."""

    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: List[str] = field(default_factory=lambda: [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ])


@dataclass
class MissionAgentConfig:
    """
    Complete configuration for MissionAgent.
    """

    llm: LLMConfig = field(default_factory=LLMConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    # Global settings
    log_level: str = "INFO"
    debug: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MissionAgentConfig":
        """Create from dictionary."""
        config = cls()

        if "llm" in data:
            config.llm = LLMConfig(**data["llm"])
        if "database" in data:
            config.database = DatabaseConfig(**data["database"])
        if "execution" in data:
            config.execution = ExecutionConfig(**data["execution"])
        if "tools" in data:
            config.tools = ToolsConfig(**data["tools"])
        if "server" in data:
            config.server = ServerConfig(**data["server"])

        if "log_level" in data:
            config.log_level = data["log_level"]
        if "debug" in data:
            config.debug = data["debug"]

        return config


# =============================================================================
# Configuration Manager
# =============================================================================

class ConfigManager:
    """
    Centralized configuration manager.

    Environment overrides are applied the first time the configuration is
    read, unless initialize() was called explicitly before.
    """

    ENV_PREFIX = "MISSIONAGENT_"

    ENV_MAPPINGS = {
        # Reasoning service
        "LLM_BASE_URL": "llm.base_url",
        "LLM_API_KEY": "llm.api_key",
        "LLM_MODEL": "llm.chat_model",
        "EMBEDDING_MODEL": "llm.embedding_model",
        "LLM_TIMEOUT": "llm.timeout",
        "LLM_MAX_RETRIES": "llm.max_retries",

        # Database
        "DATABASE_URL": "database.url",
        "DATABASE_ECHO": "database.echo",

        # Execution
        "COMPLETION_THRESHOLD": "execution.completion_threshold",
        "PROGRESS_THRESHOLD": "execution.progress_threshold",
        "CACHE_TTL": "execution.cache_ttl_seconds",
        "REFLECTIONS_ENABLED": "execution.reflections_enabled",

        # Tools
        "USER_AGENT": "tools.user_agent",
        "FETCH_TIMEOUT": "tools.fetch_timeout",
        "SIMILARITY_THRESHOLD": "tools.similarity_threshold",

        # Server
        "HOST": "server.host",
        "PORT": "server.port",

        # Global
        "LOG_LEVEL": "log_level",
        "DEBUG": "debug",
    }

    # Variables that are never parsed into bool/int/float
    STRING_PATHS = {"llm.api_key", "llm.chat_model", "llm.embedding_model", "database.url"}

    def __init__(self):
        self._config: MissionAgentConfig = MissionAgentConfig()
        self._callbacks: List[Callable[[str, Any, Any], None]] = []
        self._frozen: bool = False
        self._initialized: bool = False

    @property
    def config(self) -> MissionAgentConfig:
        """Get current configuration."""
        if not self._initialized:
            self.initialize()
        return self._config

    def initialize(
        self,
        config_path: Optional[str] = None,
        load_env: bool = True
    ) -> MissionAgentConfig:
        """
        Initialize configuration.

        Args:
            config_path: Optional path to JSON config file
            load_env: Whether to load from environment variables

        Returns:
            Initialized configuration
        """
        self._initialized = True

        if config_path:
            self.load_from_file(config_path)

        # DeepSeek-style key variable is honoured as a fallback
        if load_env:
            legacy_key = os.environ.get("DEEPSEEK_API_KEY")
            if legacy_key and not self._config.llm.api_key:
                self._config.llm.api_key = legacy_key
            self.load_from_environment()

        logger.debug("ConfigManager initialized")
        return self._config

    def reset(self) -> None:
        """Restore defaults and forget initialization."""
        self._config = MissionAgentConfig()
        self._frozen = False
        self._initialized = False

    def load_from_file(self, path: str) -> None:
        """
        Load configuration from JSON file.

        Args:
            path: Path to configuration file
        """
        try:
            with open(path, 'r') as f:
                data = json.load(f)
            self._config = MissionAgentConfig.from_dict(data)
            logger.info(f"Configuration loaded from {path}")
        except FileNotFoundError:
            logger.warning(f"Config file not found: {path}")
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in config file: {e}")

    def load_from_environment(self) -> None:
        """Load configuration from environment variables."""
        for env_suffix, config_path in self.ENV_MAPPINGS.items():
            env_var = f"{self.ENV_PREFIX}{env_suffix}"
            value = os.environ.get(env_var)

            if value is not None:
                parsed = value if config_path in self.STRING_PATHS else self._parse_value(value)
                self._set_nested(config_path, parsed)
                logger.debug(f"Config {config_path} set from {env_var}")

    def _parse_value(self, value: str) -> Any:
        """Parse environment variable value to appropriate type."""
        if value.lower() in ('true', 'yes'):
            return True
        if value.lower() in ('false', 'no'):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    def _set_nested(self, path: str, value: Any) -> None:
        """
        Set a nested configuration value.

        Args:
            path: Dot-separated path (e.g., "llm.timeout")
            value: Value to set
        """
        parts = path.split('.')
        obj = self._config

        for part in parts[:-1]:
            obj = getattr(obj, part)

        old_value = getattr(obj, parts[-1])
        setattr(obj, parts[-1], value)

        self._notify_change(path, old_value, value)

    def _get_nested(self, path: str) -> Any:
        parts = path.split('.')
        obj = self.config

        for part in parts:
            obj = getattr(obj, part)

        return obj

    def get(self, path: str, default: Any = None) -> Any:
        """
        Get a configuration value by path.

        Args:
            path: Dot-separated path
            default: Default value if not found

        Returns:
            Configuration value or default
        """
        try:
            return self._get_nested(path)
        except AttributeError:
            return default

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value.

        Raises:
            RuntimeError: If configuration is frozen
        """
        if self._frozen:
            raise RuntimeError("Configuration is frozen")

        # Make sure env overrides don't clobber an explicit value later
        if not self._initialized:
            self.initialize()
        self._set_nested(path, value)

    def update(self, updates: Dict[str, Any]) -> None:
        """
        Update multiple configuration values.

        Args:
            updates: Dictionary of path -> value updates

        Raises:
            RuntimeError: If configuration is frozen
        """
        for path, value in updates.items():
            self.set(path, value)

    def freeze(self) -> None:
        """Freeze configuration to prevent further changes."""
        self._frozen = True
        logger.info("Configuration frozen")

    def unfreeze(self) -> None:
        """Unfreeze configuration to allow changes."""
        self._frozen = False
        logger.info("Configuration unfrozen")

    def add_change_callback(self, callback: Callable[[str, Any, Any], None]) -> None:
        """
        Add a callback for configuration changes.

        Args:
            callback: Function(path, old_value, new_value)
        """
        self._callbacks.append(callback)

    def _notify_change(self, path: str, old_value: Any, new_value: Any) -> None:
        for callback in self._callbacks:
            try:
                callback(path, old_value, new_value)
            except Exception as e:
                logger.error(f"Config change callback failed: {e}")

    def log_config_summary(self) -> None:
        """Log configuration summary (secrets excluded)."""
        config = self.config
        logger.info("=" * 50)
        logger.info("MissionAgent Configuration")
        logger.info("=" * 50)
        logger.info(f"Reasoning service: {config.llm.base_url} ({config.llm.chat_model})")
        logger.info(f"API key: {'set' if config.llm.api_key else 'missing'}")
        logger.info(f"Database: {config.database.url}")
        logger.info(f"Completion threshold: {config.execution.completion_threshold}")
        logger.info(f"Reflections: {'enabled' if config.execution.reflections_enabled else 'disabled'}")
        logger.info("=" * 50)

    def save_to_file(self, path: str) -> None:
        """
        Save current configuration to JSON file.

        Args:
            path: Output file path
        """
        with open(path, 'w') as f:
            json.dump(self.config.to_dict(), f, indent=2)

        logger.info(f"Configuration saved to {path}")


# =============================================================================
# Global Instance and Convenience Functions
# =============================================================================

config_manager = ConfigManager()


def get_config() -> MissionAgentConfig:
    """Get the current configuration."""
    return config_manager.config


def initialize_config(
    config_path: Optional[str] = None,
    load_env: bool = True
) -> MissionAgentConfig:
    """Initialize the global configuration."""
    return config_manager.initialize(config_path, load_env)


def update_config(updates: Dict[str, Any]) -> None:
    """Update multiple configuration values."""
    config_manager.update(updates)
