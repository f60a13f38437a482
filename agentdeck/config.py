"""
Configuration System

Manages agentdeck configuration from multiple sources:
1. Default values
2. User configuration file (~/.agentdeck/config.yaml)
3. Project configuration file (<project>/.agentdeck.yaml)
4. Environment variables (highest priority)
"""

from typing import Any, Dict, Optional
from pathlib import Path
import os
import yaml
from dataclasses import dataclass, field, asdict

from .error_handling import ConfigurationError


USER_CONFIG_PATH = Path.home() / ".agentdeck" / "config.yaml"
PROJECT_CONFIG_NAME = ".agentdeck.yaml"


@dataclass
class TmuxConfig:
    """tmux session configuration"""
    agent_prefix: str = "sidecar-wt-"
    shell_prefix: str = "sidecar-sh-"
    history_limit: int = 10000
    capture_lines: int = 600
    capture_timeout: float = 2.0  # seconds
    command_timeout: float = 30.0  # seconds
    stop_grace_seconds: float = 2.0


@dataclass
class PollConfig:
    """Adaptive polling intervals (seconds)"""
    initial: float = 0.5
    active: float = 0.5
    idle: float = 5.0
    waiting: float = 5.0
    done: float = 20.0
    background: float = 10.0
    unfocused: float = 20.0
    stagger_max_ms: int = 400
    shell_max_bytes: int = 200000
    buffer_lines: int = 500


@dataclass
class MergeConfig:
    """Merge workflow configuration"""
    remote: str = "origin"
    default_base: str = "main"
    first_check_delay: float = 10.0  # seconds
    check_interval: float = 30.0  # seconds
    ancestry_timeout: float = 5.0  # seconds


@dataclass
class AgentConfig:
    """Agent launch configuration"""
    default_agent: str = "claude"
    skip_permissions: bool = False
    commands: Dict[str, str] = field(default_factory=dict)
    skip_permissions_flags: Dict[str, str] = field(default_factory=dict)


@dataclass
class TranscriptConfig:
    """Transcript locations used for status detection"""
    tail_bytes: int = 2 * 1024 * 1024
    claude_dir: Optional[str] = None
    codex_dir: Optional[str] = None
    gemini_dir: Optional[str] = None
    opencode_dir: Optional[str] = None


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    format: str = "text"
    file: Optional[str] = None
    console: bool = True


@dataclass
class DeckConfig:
    """Complete agentdeck configuration"""
    tmux: TmuxConfig = field(default_factory=TmuxConfig)
    poll: PollConfig = field(default_factory=PollConfig)
    merge: MergeConfig = field(default_factory=MergeConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    transcripts: TranscriptConfig = field(default_factory=TranscriptConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeckConfig":
        """Create configuration from dictionary"""
        config = cls()

        try:
            if "tmux" in data:
                config.tmux = TmuxConfig(**data["tmux"])
            if "poll" in data:
                config.poll = PollConfig(**data["poll"])
            if "merge" in data:
                config.merge = MergeConfig(**data["merge"])
            if "agent" in data:
                config.agent = AgentConfig(**data["agent"])
            if "transcripts" in data:
                config.transcripts = TranscriptConfig(**data["transcripts"])
            if "logging" in data:
                config.logging = LoggingConfig(**data["logging"])
        except TypeError as e:
            raise ConfigurationError(f"Unknown configuration key: {e}") from e

        return config


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_yaml(path: Path) -> dict:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping")
    return data


class ConfigManager:
    """
    Configuration manager with multiple source support

    Load priority (highest to lowest):
    1. Environment variables
    2. Project configuration file
    3. User configuration file
    4. Defaults
    """

    def __init__(
        self,
        project_dir: Optional[Path] = None,
        config_file: Optional[Path] = None,
        user_config_file: Optional[Path] = None,
    ):
        """
        Initialize configuration manager

        Args:
            project_dir: Project root; its .agentdeck.yaml is loaded if present
            config_file: Explicit config file, replaces the project file
            user_config_file: Override for ~/.agentdeck/config.yaml
        """
        self.project_dir = Path(project_dir) if project_dir else Path.cwd()
        self.config_file = config_file or self.project_dir / PROJECT_CONFIG_NAME
        self.user_config_file = user_config_file or USER_CONFIG_PATH
        self._config = self._load_config()

    def _load_config(self) -> DeckConfig:
        merged = DeckConfig().to_dict()

        for path in (self.user_config_file, self.config_file):
            if path.exists():
                merged = _deep_merge(merged, _read_yaml(path))

        config = DeckConfig.from_dict(merged)
        return self._apply_env_overrides(config)

    def _apply_env_overrides(self, config: DeckConfig) -> DeckConfig:
        """
        Apply environment variable overrides

        Environment variables format: AGENTDECK_<KEY>
        Example: AGENTDECK_LOG_LEVEL=DEBUG
        """
        if log_level := os.getenv("AGENTDECK_LOG_LEVEL"):
            config.logging.level = log_level
        if log_file := os.getenv("AGENTDECK_LOG_FILE"):
            config.logging.file = log_file
        if agent := os.getenv("AGENTDECK_DEFAULT_AGENT"):
            config.agent.default_agent = agent
        if skip := os.getenv("AGENTDECK_SKIP_PERMISSIONS"):
            config.agent.skip_permissions = skip.lower() in ("1", "true", "yes")

        return config

    @property
    def config(self) -> DeckConfig:
        return self._config

    def get(self, section: Optional[str] = None) -> Any:
        """
        Get configuration section or entire config

        Args:
            section: Optional section name (tmux, poll, merge, ...)
        """
        if section is None:
            return self._config

        return getattr(self._config, section, None)

    def update(self, section: str, key: str, value: Any) -> None:
        """Update configuration value at runtime"""
        section_obj = getattr(self._config, section, None)
        if section_obj is None:
            raise ConfigurationError(f"Unknown configuration section: {section}")

        if not hasattr(section_obj, key):
            raise ConfigurationError(f"Unknown configuration key: {section}.{key}")

        setattr(section_obj, key, value)

    def save(self, file_path: Optional[Path] = None) -> None:
        """Save configuration to file (defaults to the project file)"""
        save_path = file_path or self.config_file
        save_path.parent.mkdir(parents=True, exist_ok=True)

        with open(save_path, 'w') as f:
            yaml.dump(self._config.to_dict(), f, default_flow_style=False)

    def validate(self) -> tuple[bool, list[str]]:
        """
        Validate configuration

        Returns:
            Tuple of (is_valid, errors)
        """
        errors = []
        poll = self._config.poll

        for name in ("initial", "active", "idle", "waiting", "done", "background", "unfocused"):
            if getattr(poll, name) <= 0:
                errors.append(f"Poll interval '{name}' must be positive")
        if poll.stagger_max_ms < 0:
            errors.append("Poll stagger must be non-negative")
        if poll.buffer_lines < 1:
            errors.append("Output buffer must hold at least 1 line")

        if self._config.tmux.history_limit < self._config.tmux.capture_lines:
            errors.append("tmux history limit must be >= capture lines")

        if self._config.merge.check_interval <= 0:
            errors.append("Merge check interval must be positive")

        from .models import AgentType
        valid_agents = [a.value for a in AgentType]
        if self._config.agent.default_agent not in valid_agents:
            errors.append(f"Default agent must be one of: {', '.join(valid_agents)}")

        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self._config.logging.level.upper() not in valid_levels:
            errors.append(f"Logging level must be one of: {', '.join(valid_levels)}")

        return len(errors) == 0, errors

    def reload(self) -> None:
        """Reload configuration from files"""
        self._config = self._load_config()


def load_config(project_dir: Optional[Path] = None, config_file: Optional[Path] = None) -> DeckConfig:
    """Load configuration for a project directory."""
    return ConfigManager(project_dir=project_dir, config_file=config_file).config
