"""
Configuration loading and validation for agentdeploy.

This module loads TOML configuration files with environment variable
substitution and validates them against pydantic models.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import toml
from pydantic import BaseModel, Field, ValidationError

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
VALID_SCOPES = ["project", "global"]
VALID_MODES = ["symlink", "copy"]
VALID_EDITOR_MODES = ["store", "uri"]


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "structured"

    class Config:
        extra = "allow"


class SkillsConfig(BaseModel):
    """Configuration for skill installation."""

    default_scope: str = "project"
    mode: str = "symlink"
    full_depth: bool = False
    max_depth: int = 5
    clone_timeout: int = 120
    temp_prefix: str = "agentdeploy-skills-"

    class Config:
        extra = "allow"


class EditorTargetConfig(BaseModel):
    """Configuration for the editor-native target."""

    config_path: str = "~/.config/Code/User/mcp.json"
    servers_key: str = "servers"
    mode: str = "store"
    uri_scheme: str = "vscode"

    class Config:
        extra = "allow"


class ClaudeTargetConfig(BaseModel):
    """Configuration for the add-json CLI target."""

    binary: str = "claude"
    local_path: str | None = "~/.claude/local/claude"
    timeout: int = 120

    class Config:
        extra = "allow"


class CodexTargetConfig(BaseModel):
    """Configuration for the discrete-flags CLI target."""

    binary: str = "codex"
    local_path: str | None = None
    token_env_prefix: str = "MCP"
    timeout: int = 120

    class Config:
        extra = "allow"


class TargetsConfig(BaseModel):
    """Configuration for all install targets."""

    editor: EditorTargetConfig = Field(default_factory=EditorTargetConfig)
    claude: ClaudeTargetConfig = Field(default_factory=ClaudeTargetConfig)
    codex: CodexTargetConfig = Field(default_factory=CodexTargetConfig)

    class Config:
        extra = "allow"


class AgentOverride(BaseModel):
    """Override or addition of one agent definition."""

    display_name: str | None = None
    skills_dir: str | None = None
    global_skills_dir: str | None = None
    binaries: list[str] | None = None
    config_dirs: list[str] | None = None
    universal: bool | None = None

    class Config:
        extra = "allow"


class AgentDeployConfig(BaseModel):
    """Complete agentdeploy configuration schema."""

    version: str = "0.1.0"
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    skills: SkillsConfig = Field(default_factory=SkillsConfig)
    targets: TargetsConfig = Field(default_factory=TargetsConfig)
    agents: dict[str, AgentOverride] = Field(default_factory=dict)

    class Config:
        extra = "allow"


class ConfigLoader:
    """Reads, validates and writes agentdeploy TOML configuration."""

    def __init__(self) -> None:
        self.env_var_pattern = re.compile(r"\$\{([^}]+)\}")

    def load_from_file(self, config_path: str | Path) -> dict[str, Any]:
        """
        Read a TOML file, expand environment references and validate it.

        Raises:
            ConfigurationError: If the file is missing, unreadable, not TOML,
                or fails validation
        """
        try:
            config_path = Path(config_path).expanduser().resolve()

            if not config_path.exists():
                raise ConfigurationError(f"Configuration file not found: {config_path}")

            logger.info(f"Loading configuration from {config_path}")

            with open(config_path) as f:
                config_data = toml.load(f)

            return self.load_from_dict(config_data)

        except toml.TomlDecodeError as e:
            raise ConfigurationError(f"Invalid TOML syntax: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Error reading configuration file: {e}") from e

    def load_defaults(self) -> dict[str, Any]:
        """Built-in defaults as a plain dictionary."""
        return AgentDeployConfig().model_dump()

    def load_from_dict(self, config_dict: dict[str, Any]) -> dict[str, Any]:
        """Expand environment references in a parsed mapping and validate it."""
        config_data = self._substitute_env_vars(config_dict)

        errors = self.validate_config(config_data)
        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}"
            )

        return config_data

    def load(self, config_path: str | Path | None = None) -> AgentDeployConfig:
        """
        Load the effective configuration model.

        Uses the given file, else the default path when it exists, else the
        built-in defaults; file values are merged over the defaults.
        """
        defaults = self.load_defaults()
        path = Path(config_path) if config_path else self.get_default_config_path()
        if config_path or path.exists():
            defaults = self.merge_configs(defaults, self.load_from_file(path))
        return AgentDeployConfig(**defaults)

    def validate_config(self, config_data: dict[str, Any]) -> list[str]:
        """
        Check a configuration mapping.

        Returns:
            One ``field.path: message`` string per problem; empty when valid
        """
        errors = []

        try:
            AgentDeployConfig(**config_data)
        except ValidationError as e:
            for error in e.errors():
                field_path = ".".join(str(x) for x in error["loc"])
                errors.append(f"{field_path}: {error['msg']}")

        errors.extend(self._validate_logging_config(config_data.get("logging", {})))
        errors.extend(self._validate_skills_config(config_data.get("skills", {})))
        errors.extend(self._validate_targets_config(config_data.get("targets", {})))

        return errors

    def _substitute_env_vars(self, obj: Any) -> Any:
        """Expand ``${...}`` references in every string of a parsed TOML tree."""
        if isinstance(obj, dict):
            return {key: self._substitute_env_vars(value) for key, value in obj.items()}
        if isinstance(obj, list):
            return [self._substitute_env_vars(item) for item in obj]
        if isinstance(obj, str):
            return self._substitute_env_vars_in_string(obj)
        return obj

    def _substitute_env_vars_in_string(self, text: str) -> str:
        """
        Expand environment references in one string.

        ``${NAME}`` must be set; ``${NAME:-fallback}`` and ``${NAME:fallback}``
        use the fallback when ``NAME`` is unset.

        Raises:
            ConfigurationError: If a reference without fallback is unset
        """

        def expand(match: re.Match) -> str:
            name, sep, fallback = match.group(1).partition(":")
            if sep and fallback.startswith("-"):
                fallback = fallback[1:]
            name = name.strip()

            if name in os.environ:
                return os.environ[name]
            if sep and name:
                return fallback
            raise ConfigurationError(f"Environment variable {name or match.group(0)} is not set")

        return self.env_var_pattern.sub(expand, text)

    def _validate_logging_config(self, logging_config: dict[str, Any]) -> list[str]:
        """Validate logging configuration."""
        errors = []
        level = str(logging_config.get("level", "INFO")).upper()
        if level not in VALID_LOG_LEVELS:
            errors.append(f"logging.level: must be one of {VALID_LOG_LEVELS}")
        return errors

    def _validate_skills_config(self, skills: dict[str, Any]) -> list[str]:
        """Validate skill installation configuration."""
        errors = []

        scope = skills.get("default_scope", "project")
        if scope not in VALID_SCOPES:
            errors.append(f"skills.default_scope: must be one of {VALID_SCOPES}")

        mode = skills.get("mode", "symlink")
        if mode not in VALID_MODES:
            errors.append(f"skills.mode: must be one of {VALID_MODES}")

        max_depth = skills.get("max_depth", 5)
        if not isinstance(max_depth, int) or max_depth < 1:
            errors.append("skills.max_depth: must be a positive integer")

        return errors

    def _validate_targets_config(self, targets: dict[str, Any]) -> list[str]:
        """Validate install target configuration."""
        errors = []

        editor = targets.get("editor", {})
        if isinstance(editor, dict):
            mode = editor.get("mode", "store")
            if mode not in VALID_EDITOR_MODES:
                errors.append(f"targets.editor.mode: must be one of {VALID_EDITOR_MODES}")

        codex = targets.get("codex", {})
        if isinstance(codex, dict):
            prefix = codex.get("token_env_prefix", "MCP")
            if not isinstance(prefix, str) or not re.fullmatch(r"[A-Z][A-Z0-9_]*", prefix):
                errors.append(
                    "targets.codex.token_env_prefix: must be an uppercase identifier"
                )

        for name in ("claude", "codex"):
            section = targets.get(name, {})
            if isinstance(section, dict):
                timeout = section.get("timeout", 120)
                if not isinstance(timeout, int) or timeout <= 0:
                    errors.append(f"targets.{name}.timeout: must be a positive integer")

        return errors

    def save_config(self, config_data: dict[str, Any], config_path: str | Path) -> None:
        """
        Validate and write a configuration mapping as TOML.

        Raises:
            ConfigurationError: If the mapping is invalid or the write fails
        """
        try:
            config_path = Path(config_path).expanduser().resolve()
            config_path.parent.mkdir(parents=True, exist_ok=True)

            errors = self.validate_config(config_data)
            if errors:
                raise ConfigurationError(
                    f"Cannot save invalid configuration: {'; '.join(errors)}"
                )

            with open(config_path, "w") as f:
                toml.dump(config_data, f)

            logger.info(f"Configuration saved to {config_path}")

        except OSError as e:
            raise ConfigurationError(f"Error saving configuration file: {e}") from e

    def merge_configs(
        self, base_config: dict[str, Any], override_config: dict[str, Any]
    ) -> dict[str, Any]:
        """Merge ``override_config`` over ``base_config``, recursing into tables."""
        merged = dict(base_config)
        for key, value in override_config.items():
            current = merged.get(key)
            if isinstance(current, dict) and isinstance(value, dict):
                value = self.merge_configs(current, value)
            merged[key] = value
        return merged

    def get_default_config_path(self) -> Path:
        """``$AGENTDEPLOY_CONFIG``, else ``~/.agentdeploy/config.toml``."""
        env_path = os.environ.get("AGENTDEPLOY_CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        return Path.home() / ".agentdeploy" / "config.toml"

    def create_example_config(self, config_path: str | Path) -> None:
        """Write a starter configuration that sets every section."""
        example_config = {
            "version": "0.1.0",
            "logging": {"level": "INFO", "format": "structured"},
            "skills": {
                "default_scope": "project",
                "mode": "symlink",
                "full_depth": False,
                "max_depth": 5,
                "clone_timeout": 120,
            },
            "targets": {
                "editor": {
                    "config_path": "~/.config/Code/User/mcp.json",
                    "mode": "store",
                    "uri_scheme": "vscode",
                },
                "claude": {
                    "binary": "claude",
                    "local_path": "~/.claude/local/claude",
                    "timeout": 120,
                },
                "codex": {"binary": "codex", "token_env_prefix": "MCP", "timeout": 120},
            },
            "agents": {
                "my-agent": {
                    "display_name": "My Agent",
                    "skills_dir": ".my-agent/skills",
                    "global_skills_dir": "~/.my-agent/skills",
                    "config_dirs": ["~/.my-agent"],
                }
            },
        }

        self.save_config(example_config, config_path)
