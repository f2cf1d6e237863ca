"""
Configuration Management for MCP Firewall

Uses Pydantic Settings for environment-based configuration and sets up
structlog so that diagnostics never touch the protocol channel.
"""

import logging
import sys
from importlib.resources import files
from pathlib import Path
from typing import Literal

import structlog
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from mcpfirewall.proxy.backend import DEFAULT_BACKEND_COMMAND
from mcpfirewall.proxy.interceptor import FailMode

DEFAULT_RULES_FILE = "default_rules.json"


def default_rules_path() -> Path:
    """Rule file installed as package data."""
    return Path(str(files("mcpfirewall") / DEFAULT_RULES_FILE))


class Settings(BaseSettings):
    """
    Application configuration loaded from environment variables.

    Environment variables should be prefixed with MCPFIREWALL_.
    Example: MCPFIREWALL_FAIL_MODE=closed
    """

    model_config = SettingsConfigDict(
        env_prefix="MCPFIREWALL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # =========================================================================
    # General Settings
    # =========================================================================

    debug: bool = Field(
        default=False,
        description="Enable debug logging"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level for diagnostics on stderr"
    )

    log_format: Literal["console", "json"] = Field(
        default="console",
        description="Render diagnostics as text lines or JSON objects"
    )

    # =========================================================================
    # Policy Settings
    # =========================================================================

    rules_path: Path | None = Field(
        default=None,
        description="Rule file; defaults to the rule file shipped with the package"
    )

    fail_mode: FailMode = Field(
        default=FailMode.OPEN,
        description="Forward (open) or reject (closed) unparseable messages"
    )

    # =========================================================================
    # Proxy Settings
    # =========================================================================

    backend_command: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BACKEND_COMMAND),
        description="Backend server command; CLI arguments are appended"
    )

    read_chunk_size: int = Field(
        default=65536,
        gt=0,
        description="Maximum bytes per read from the client or backend"
    )

    @property
    def resolved_rules_path(self) -> Path:
        """Rule file to load."""
        return self.rules_path or default_rules_path()

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level


# Global settings instance - lazy loaded
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the application settings instance.

    Uses lazy loading to defer configuration parsing until first use.

    Returns:
        Settings: The application configuration.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """
    Reset the settings instance.

    Useful for testing or when environment variables change.
    """
    global _settings
    _settings = None


def configure_logging(
    level: str = "INFO",
    log_format: str = "console",
) -> None:
    """
    Route structlog output to stderr.

    stdout carries the JSON-RPC stream, so nothing else may write there.

    Args:
        level: Minimum level name to emit.
        log_format: "console" for text lines, "json" for JSON objects.
    """
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level)
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
