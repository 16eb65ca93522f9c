"""
Configuration management for pipedeck.

Loads and validates the console's config.yaml.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv


CONFIG_FILENAME = "config.yaml"


class ConfigError(Exception):
    """Configuration validation error."""
    pass


@dataclass
class PipedeckConfig:
    """
    Settings shared by the API client, the poller and the workflows.

    Attributes:
        api_url: Base URL of the console backend (the /api/ prefix is added by the client)
        api_token: Bearer token sent with every request
        request_timeout_s: Total timeout for a single HTTP request
        poll_interval_s: Delay between normal poll steps
        poll_backoff_s: Delay after a failed lookup
        workspace_poll_interval_s: Delay between workspace build poll steps
        workspace_initial_delay_s: Delay before the first workspace build poll
        dbt_version: dbt version requested when creating a workspace
        log_level: Logging level name
        log_format: "pretty" (rich) or "structured" (JSON)
        log_file: Optional log file path
        env_file: Optional .env file loaded into the process environment
    """
    api_url: str
    api_token: Optional[str] = None
    request_timeout_s: float = 30.0
    poll_interval_s: float = 3.0
    poll_backoff_s: float = 5.0
    workspace_poll_interval_s: float = 2.0
    workspace_initial_delay_s: float = 1.0
    dbt_version: str = "1.4.5"
    log_level: str = "INFO"
    log_format: str = "pretty"
    log_file: Optional[str] = None
    env_file: Optional[str] = None

    def validate(self) -> None:
        """Validate configuration values."""
        if not self.api_url:
            raise ConfigError("api_url is required")
        if not self.api_url.startswith(("http://", "https://")):
            raise ConfigError(f"api_url must be an http(s) URL: {self.api_url}")

        for name in ("request_timeout_s", "poll_interval_s", "poll_backoff_s",
                     "workspace_poll_interval_s", "workspace_initial_delay_s"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
                raise ConfigError(f"{name} must be a non-negative number, got {value!r}")

        if self.log_format not in ("pretty", "structured"):
            raise ConfigError(f"log_format must be 'pretty' or 'structured', got {self.log_format!r}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipedeckConfig":
        """Build a config from parsed YAML, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        if "api_url" not in data:
            raise ConfigError("Configuration is missing 'api_url'")
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def get_pipedeck_home() -> Path:
    """Return the pipedeck home directory ($PIPEDECK_HOME or ~/.config/pipedeck)."""
    home = os.environ.get("PIPEDECK_HOME")
    if home:
        return Path(home).expanduser()
    return Path("~/.config/pipedeck").expanduser()


def load_config(config_path: Optional[Path] = None) -> PipedeckConfig:
    """
    Load pipedeck configuration from YAML file.

    Args:
        config_path: Path to config file. Defaults to <home>/config.yaml

    Returns:
        PipedeckConfig instance

    Raises:
        FileNotFoundError: If the config file does not exist
        ConfigError: If config is invalid
    """
    if config_path is None:
        config_path = get_pipedeck_home() / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(
            f"pipedeck config.yaml not found at {config_path}. Run 'pipedeck init' first."
        )

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}")

    if not data:
        raise ConfigError("Configuration file is empty")
    if not isinstance(data, dict):
        raise ConfigError("Configuration file must contain a mapping")

    config = PipedeckConfig.from_dict(data)

    if config.env_file:
        env_path = Path(config.env_file).expanduser()
        if env_path.exists():
            load_dotenv(env_path, override=False)

    token = os.environ.get("PIPEDECK_API_TOKEN")
    if token:
        config.api_token = token

    config.validate()
    return config
