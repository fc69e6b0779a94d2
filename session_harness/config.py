"""Configuration for Session Harness.

Settings live in ``.session-harness/config.json`` under the project root,
grouped in sections (session, waits, browser, output). Missing files or
sections fall back to defaults; a couple of environment variables override
the file so CI can point the same suite at another server.
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigError


CONFIG_DIR = ".session-harness"
CONFIG_FILE = "config.json"

LOGIN_ENCODINGS = ("form", "json")

ENV_BASE_URL = "SESSION_HARNESS_BASE_URL"
ENV_VERBOSE = "SESSION_HARNESS_VERBOSE"


@dataclass
class HarnessConfig:
    """Complete harness configuration."""

    # Target application
    base_url: str = "http://localhost:8083"

    # Session bootstrap
    login_path: str = "/login"
    session_cookie: str = "cypress-session-cookie"
    token_field: str = "token"
    username: str = "cypress"
    password: str = "password123"
    login_encoding: str = "form"  # "form" or "json"

    # Waits (seconds)
    wait_timeout: float = 4.0
    poll_interval: float = 0.05
    exchange_timeout: float = 5.0
    scenario_timeout: float = 60.0

    # Browser
    viewport_width: int = 500
    viewport_height: int = 380

    # Output
    verbose: bool = False

    def validate(self) -> "HarnessConfig":
        """Check value ranges.

        Returns:
            self, for chaining.

        Raises:
            ConfigError: On an invalid value.
        """
        for name in ("wait_timeout", "exchange_timeout", "scenario_timeout", "poll_interval"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)}")
        if self.poll_interval > self.wait_timeout:
            raise ConfigError(
                f"poll_interval ({self.poll_interval}) exceeds wait_timeout ({self.wait_timeout})"
            )
        if self.login_encoding not in LOGIN_ENCODINGS:
            raise ConfigError(
                f"login_encoding must be one of {LOGIN_ENCODINGS}, got '{self.login_encoding}'"
            )
        if not self.session_cookie:
            raise ConfigError("session_cookie must not be empty")
        return self

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "base_url": self.base_url,
            "session": {
                "login_path": self.login_path,
                "cookie": self.session_cookie,
                "token_field": self.token_field,
                "username": self.username,
                "password": self.password,
                "encoding": self.login_encoding,
            },
            "waits": {
                "timeout": self.wait_timeout,
                "poll_interval": self.poll_interval,
                "exchange_timeout": self.exchange_timeout,
                "scenario_timeout": self.scenario_timeout,
            },
            "browser": {
                "viewport_width": self.viewport_width,
                "viewport_height": self.viewport_height,
            },
            "output": {
                "verbose": self.verbose,
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HarnessConfig":
        """Create from dictionary; missing keys keep their defaults."""
        defaults = cls()
        session = data.get("session", {})
        waits = data.get("waits", {})
        browser = data.get("browser", {})
        output = data.get("output", {})

        return cls(
            base_url=data.get("base_url", defaults.base_url),
            login_path=session.get("login_path", defaults.login_path),
            session_cookie=session.get("cookie", defaults.session_cookie),
            token_field=session.get("token_field", defaults.token_field),
            username=session.get("username", defaults.username),
            password=session.get("password", defaults.password),
            login_encoding=session.get("encoding", defaults.login_encoding),
            wait_timeout=float(waits.get("timeout", defaults.wait_timeout)),
            poll_interval=float(waits.get("poll_interval", defaults.poll_interval)),
            exchange_timeout=float(waits.get("exchange_timeout", defaults.exchange_timeout)),
            scenario_timeout=float(waits.get("scenario_timeout", defaults.scenario_timeout)),
            viewport_width=int(browser.get("viewport_width", defaults.viewport_width)),
            viewport_height=int(browser.get("viewport_height", defaults.viewport_height)),
            verbose=bool(output.get("verbose", defaults.verbose)),
        )


def get_config_path(project_path: str = ".") -> Path:
    return Path(project_path) / CONFIG_DIR / CONFIG_FILE


def _apply_env_overrides(config: HarnessConfig) -> HarnessConfig:
    base_url = os.environ.get(ENV_BASE_URL)
    if base_url:
        config.base_url = base_url.rstrip("/")

    verbose = os.environ.get(ENV_VERBOSE)
    if verbose is not None:
        config.verbose = verbose.strip().lower() in {"1", "true", "yes", "on"}

    return config


def load_harness_config(project_path: str = ".") -> HarnessConfig:
    """Load harness configuration from project config.

    Args:
        project_path: Path to project root.

    Returns:
        HarnessConfig with settings from config.json (or defaults) and
        environment overrides applied.
    """
    config_file = get_config_path(project_path)
    config = HarnessConfig()

    if config_file.exists():
        try:
            with open(config_file) as f:
                config = HarnessConfig.from_dict(json.load(f))
        except (json.JSONDecodeError, IOError, TypeError, ValueError):
            config = HarnessConfig()

    return _apply_env_overrides(config)


def save_harness_config(config: HarnessConfig, project_path: str = ".") -> Path:
    """Write configuration to ``.session-harness/config.json``.

    Returns:
        Path of the written file.
    """
    config_file = get_config_path(project_path)
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, "w") as f:
        json.dump(config.to_dict(), f, indent=2)
    return config_file
