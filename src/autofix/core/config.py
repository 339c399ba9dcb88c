"""Configuration for the auto-fix agent.

Settings come from environment variables, optionally layered over a YAML
file that also holds the deployment-platform bindings for each watched
environment. Environment variables always win over the file.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from platformdirs import user_config_dir
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from autofix.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CLAUDE_MODEL = "claude-sonnet-4-20250514"
DEFAULT_STATE_FILENAME = "autofix-state.json"
CONFIG_FILENAMES = ["autofix.yaml", "autofix.yml", ".autofix.yaml"]

# Environment variable -> config field
ENV_FIELDS = {
    "ANTHROPIC_API_KEY": "anthropic_api_key",
    "AUTOFIX_CLAUDE_MODEL": "claude_model",
    "AUTOFIX_ANALYZER": "analyzer",
    "AUTOFIX_POLL_INTERVAL": "poll_interval_seconds",
    "AUTOFIX_MAX_ERRORS_PER_POLL": "max_errors_per_poll",
    "AUTOFIX_MAX_PRS_PER_HOUR": "max_prs_per_hour",
    "AUTOFIX_COOLDOWN_SECONDS": "cooldown_seconds",
    "AUTOFIX_WORKING_DIR": "working_directory",
    "AUTOFIX_STATE_FILE": "state_file_path",
    "AUTOFIX_GIT_USER_NAME": "git_user_name",
    "AUTOFIX_GIT_USER_EMAIL": "git_user_email",
    "AUTOFIX_DRY_RUN": "dry_run",
    "AUTOFIX_LOG_LEVEL": "log_level",
    "RAILWAY_API_TOKEN": "railway_api_token",
}

SECRET_FIELDS = {"anthropic_api_key", "railway_api_token"}


class EnvironmentBinding(BaseModel):
    """Maps a watched environment onto its Railway project and services."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Human-readable environment name")
    project_id: str = Field(..., description="Project the environment belongs to")
    railway_project_id: str = Field(..., description="Railway project id")
    railway_environment_id: str = Field(..., description="Railway environment id")
    services: Dict[str, str] = Field(
        default_factory=dict, description="Service name -> Railway service id"
    )


class AutoFixConfig(BaseModel):
    """Complete agent configuration."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    # Analyzer
    anthropic_api_key: Optional[str] = Field(None, description="Anthropic API key")
    claude_model: str = Field(default=DEFAULT_CLAUDE_MODEL, description="Claude model to use")
    analyzer: str = Field(default="claude", description="Error analyzer (claude or mock)")

    # Polling and limits
    poll_interval_seconds: int = Field(default=300, gt=0, description="Seconds between polls")
    max_errors_per_poll: int = Field(default=10, gt=0, description="Errors fetched per watch")
    max_prs_per_hour: int = Field(default=5, gt=0, description="Pull requests per clock hour")
    cooldown_seconds: int = Field(default=3600, gt=0, description="Quiet period after a PR")

    # Repository
    working_directory: Path = Field(default_factory=Path.cwd, description="Repository root")
    state_file_path: Optional[Path] = Field(None, description="Custom state file path")
    git_user_name: str = Field(default="Auto-Fix Agent", description="Commit author name")
    git_user_email: str = Field(default="autofix@infraprint.dev", description="Commit author email")

    # Behaviour
    dry_run: bool = Field(default=False, description="Analyze only, never touch git")
    log_level: str = Field(default="INFO", description="Logging level")

    # Platforms
    railway_api_token: Optional[str] = Field(None, description="Railway API token")
    environments: Dict[str, EnvironmentBinding] = Field(
        default_factory=dict, description="Environment id -> platform binding"
    )

    @field_validator("analyzer")
    @classmethod
    def validate_analyzer(cls, v: str) -> str:
        """Validate analyzer name."""
        supported = ["claude", "mock"]
        if v not in supported:
            raise ValueError(f"Unsupported analyzer: {v}. Supported: {supported}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize logging level."""
        level = v.upper()
        if level not in ["DEBUG", "INFO", "WARNING", "ERROR"]:
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator("dry_run", mode="before")
    @classmethod
    def parse_dry_run(cls, v: Any) -> Any:
        """Only the literal string 'true' enables dry run from the environment."""
        if isinstance(v, str):
            return v.strip().lower() == "true"
        return v

    @property
    def state_file(self) -> Path:
        """Resolved state file location."""
        return self.state_file_path or self.working_directory / DEFAULT_STATE_FILENAME

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> "AutoFixConfig":
        """Load configuration from a YAML file.

        Args:
            config_path: Path to configuration file

        Returns:
            Loaded configuration

        Raises:
            ConfigurationError: If file cannot be loaded or is invalid
        """
        return build_config(_read_yaml(Path(config_path)), config_path=Path(config_path))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AutoFixConfig":
        """Load configuration from environment variables only."""
        return build_config(env_overrides(environ))

    def validate_for_run(self) -> List[str]:
        """Check settings that a poll cycle needs.

        Returns:
            List of problems, empty when the configuration is usable
        """
        errors = []

        if self.analyzer == "claude" and not self.anthropic_api_key:
            errors.append("ANTHROPIC_API_KEY environment variable is required")
        if not self.working_directory.exists():
            errors.append(f"Working directory does not exist: {self.working_directory}")

        for environment_id, binding in self.environments.items():
            if not binding.services:
                errors.append(f"Environment {environment_id} has no services bound")

        return errors

    def get_effective_settings(self) -> Dict[str, Any]:
        """Get settings with secrets redacted.

        Returns:
            Dictionary safe to print
        """
        data = self.model_dump(mode="json")
        for key in SECRET_FIELDS:
            data[key] = "***" if data.get(key) else None
        data["state_file"] = str(self.state_file)
        return data


def env_overrides(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Collect config values set through environment variables.

    Args:
        environ: Environment mapping (defaults to ``os.environ``)

    Returns:
        Field name -> raw string value for every variable that is set
    """
    environ = os.environ if environ is None else environ
    return {
        field: environ[name]
        for name, field in ENV_FIELDS.items()
        if environ.get(name) not in (None, "")
    }


def build_config(data: Dict[str, Any], config_path: Optional[Path] = None) -> AutoFixConfig:
    """Validate raw settings into a config object.

    Raises:
        ConfigurationError: If any setting is invalid
    """
    try:
        return AutoFixConfig(**data)
    except PydanticValidationError as e:
        problems = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
        raise ConfigurationError(
            f"Invalid configuration: {'; '.join(problems)}",
            config_path=str(config_path) if config_path else None,
        ) from e


def _read_yaml(config_path: Path) -> Dict[str, Any]:
    if not config_path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {config_path}", config_path=str(config_path)
        )

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid YAML syntax in configuration file: {e}", config_path=str(config_path)
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            "Configuration file must contain a mapping", config_path=str(config_path)
        )
    return data


def find_config_file(
    environ: Optional[Mapping[str, str]] = None, start_path: Optional[Path] = None
) -> Optional[Path]:
    """Locate the YAML config file.

    Looks at ``AUTOFIX_CONFIG``, then the working directory, then the user
    config directory.

    Returns:
        Path to the config file, or None if there is none
    """
    environ = os.environ if environ is None else environ

    explicit = environ.get("AUTOFIX_CONFIG")
    if explicit:
        return Path(explicit)

    start_path = start_path or Path(environ.get("AUTOFIX_WORKING_DIR") or Path.cwd())
    for filename in CONFIG_FILENAMES:
        candidate = start_path / filename
        if candidate.exists():
            return candidate

    user_config = get_default_config_path()
    if user_config.exists():
        return user_config

    return None


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AutoFixConfig:
    """Load agent configuration.

    Args:
        config_path: Optional path to a YAML configuration file
        environ: Environment mapping (defaults to ``os.environ``)

    Returns:
        Loaded configuration

    Raises:
        ConfigurationError: If configuration cannot be loaded
    """
    path = Path(config_path) if config_path else find_config_file(environ)

    data: Dict[str, Any] = {}
    if path:
        logger.debug(f"Loading configuration from {path}")
        data.update(_read_yaml(path))

    data.update(env_overrides(environ))
    return build_config(data, config_path=path)


def get_user_config_dir() -> Path:
    """Get user configuration directory for the agent."""
    return Path(user_config_dir("autofix", appauthor=False))


def get_default_config_path() -> Path:
    """Get default configuration file path."""
    return get_user_config_dir() / "config.yaml"
