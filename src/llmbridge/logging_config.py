# src/llmbridge/logging_config.py
"""
Logging setup for llmbridge and the services embedding it.

The `[logging]` section of the llmbridge configuration is passed to
`configure_logging`, which installs:

- a stderr console handler gated by a `DisplayFilter`;
- an optional file handler (a timestamped file per run, or a single rotating file);
- per-component levels for llmbridge and the HTTP/gRPC libraries it drives.

Key concepts:

    **Display filter**: With ``console_enabled=False`` (the default) the
    console handler still exists but only passes records logged with
    ``extra={"display": True}``. Operator-facing messages such as
    "Vector sync finished: 12 points upserted" still reach the console while
    request chatter stays in the file (or nowhere).

Usage:
    from llmbridge.logging_config import configure_logging, log_display

    configure_logging(app_name="llmbridge", config=settings.logging)

    logger = logging.getLogger("llmbridge.vector.sync")
    log_display(logger, logging.INFO, "Vector sync finished: %d points", count)
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

DEFAULT_LOGGING_CONFIG: dict[str, Any] = {
    "console_enabled": False,
    "console_level": "WARNING",
    "console_format": "%(levelname)s - %(message)s",
    "file_enabled": False,
    "file_level": "DEBUG",
    "file_directory": "~/.local/share/llmbridge/logs",
    "file_mode": "per_run",
    "file_name_pattern": "{app}_{timestamp:%Y%m%d_%H%M%S}.log",
    "file_single_name": "{app}.log",
    "file_format": "%(asctime)s [%(levelname)-8s] %(name)-30s - %(message)s (%(filename)s:%(lineno)d)",
    "rotation_max_bytes": 10 * 1024 * 1024,
    "rotation_backup_count": 5,
    "display_min_level": "INFO",
    "components": {
        "llmbridge": "INFO",
        "aiohttp": "WARNING",
        "openai": "WARNING",
        "anthropic": "WARNING",
        "httpx": "WARNING",
        "httpcore": "WARNING",
        "qdrant_client": "WARNING",
        "grpc": "WARNING",
        "asyncio": "WARNING",
    },
}


def _level(value: Any, fallback: int) -> int:
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).upper())
    return level if isinstance(level, int) else fallback


class DisplayFilter(logging.Filter):
    """
    Decides which records reach the console handler.

    When the console is globally enabled every record passes and the handler
    level does the filtering. Otherwise only records carrying
    ``display=True`` at or above ``display_min_level`` pass.
    """

    def __init__(self, console_globally_enabled: bool = False, display_min_level: int = logging.INFO) -> None:
        super().__init__()
        self.console_globally_enabled = console_globally_enabled
        self.display_min_level = display_min_level

    def filter(self, record: logging.LogRecord) -> bool:
        if self.console_globally_enabled:
            return True
        if getattr(record, "display", False):
            return record.levelno >= self.display_min_level
        return False


class UnifiedLoggingManager:
    """
    Singleton owning the handlers installed on the root logger.

    Logging is configured once per process unless a reconfiguration is forced.
    """

    _instance: Optional["UnifiedLoggingManager"] = None
    _configured: bool = False
    _log_file_path: Path | None = None
    _console_handler: logging.Handler | None = None
    _file_handler: logging.Handler | None = None

    def __new__(cls) -> "UnifiedLoggingManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @classmethod
    def get_instance(cls) -> "UnifiedLoggingManager":
        return cls()

    @classmethod
    def is_configured(cls) -> bool:
        return cls._configured

    @classmethod
    def get_log_file_path(cls) -> Path | None:
        return cls._log_file_path

    def configure(
        self,
        app_name: str = "llmbridge",
        config: dict[str, Any] | None = None,
        force_reconfigure: bool = False,
    ) -> Path | None:
        """
        Install handlers on the root logger.

        Args:
            app_name: Used in log file names.
            config: The `[logging]` section; missing keys take their defaults.
            force_reconfigure: Replace handlers even if already configured.

        Returns:
            The log file path, or None when file logging is disabled.
        """
        if UnifiedLoggingManager._configured and not force_reconfigure:
            return UnifiedLoggingManager._log_file_path

        log_config = {**DEFAULT_LOGGING_CONFIG, **(config or {})}

        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()
        root_logger.setLevel(logging.DEBUG)

        console_enabled = bool(log_config.get("console_enabled", False))
        console_handler = logging.StreamHandler(sys.stderr)
        if console_enabled:
            console_handler.setLevel(_level(log_config.get("console_level"), logging.WARNING))
        else:
            # The filter is the only gate when the console is "off".
            console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(logging.Formatter(log_config["console_format"]))
        console_handler.addFilter(
            DisplayFilter(
                console_globally_enabled=console_enabled,
                display_min_level=_level(log_config.get("display_min_level"), logging.INFO),
            )
        )
        root_logger.addHandler(console_handler)
        UnifiedLoggingManager._console_handler = console_handler

        file_handler, log_file_path = None, None
        if log_config.get("file_enabled", False):
            file_handler, log_file_path = self._create_file_handler(log_config, app_name)
            if file_handler:
                root_logger.addHandler(file_handler)
        UnifiedLoggingManager._file_handler = file_handler
        UnifiedLoggingManager._log_file_path = log_file_path

        components = {**DEFAULT_LOGGING_CONFIG["components"], **log_config.get("components", {})}
        for component_name, level_str in components.items():
            logging.getLogger(component_name).setLevel(_level(level_str, logging.INFO))

        UnifiedLoggingManager._configured = True
        logging.getLogger(__name__).debug(f"Logging configured for '{app_name}'. Log file: {log_file_path}")
        return log_file_path

    def _create_file_handler(
        self, config: dict[str, Any], app_name: str
    ) -> tuple[logging.Handler | None, Path | None]:
        """Creates the per-run or single rotating file handler. Returns (None, None) if the file is unusable."""
        log_dir = Path(os.path.expanduser(config.get("file_directory", DEFAULT_LOGGING_CONFIG["file_directory"])))
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log directory {log_dir}: {e}\n")
            return None, None

        handler: logging.Handler
        try:
            if config.get("file_mode", "per_run") == "single":
                log_file_path = log_dir / config.get("file_single_name", "{app}.log").format(app=app_name)
                handler = RotatingFileHandler(
                    log_file_path,
                    maxBytes=config.get("rotation_max_bytes", DEFAULT_LOGGING_CONFIG["rotation_max_bytes"]),
                    backupCount=config.get("rotation_backup_count", DEFAULT_LOGGING_CONFIG["rotation_backup_count"]),
                    encoding="utf-8",
                )
            else:
                pattern = config.get("file_name_pattern", DEFAULT_LOGGING_CONFIG["file_name_pattern"])
                log_file_path = log_dir / pattern.format(app=app_name, timestamp=datetime.now())
                handler = logging.FileHandler(log_file_path, encoding="utf-8")
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log file in {log_dir}: {e}\n")
            return None, None

        handler.setLevel(_level(config.get("file_level"), logging.DEBUG))
        handler.setFormatter(logging.Formatter(config.get("file_format", DEFAULT_LOGGING_CONFIG["file_format"])))
        return handler, log_file_path

    def set_component_level(self, component: str, level: str | int) -> None:
        """Change a specific component's log level at runtime."""
        logging.getLogger(component).setLevel(_level(level, logging.INFO))


def configure_logging(
    app_name: str = "llmbridge",
    config: dict[str, Any] | None = None,
    force_reconfigure: bool = False,
) -> Path | None:
    """
    Configure logging for the process. Call once, early at startup.

    Example:
        configure_logging(app_name="llmbridge", config={"console_enabled": True})
    """
    return UnifiedLoggingManager.get_instance().configure(
        app_name=app_name, config=config, force_reconfigure=force_reconfigure
    )


def log_display(logger: logging.Logger, level: int, msg: str, *args: Any, **kwargs: Any) -> None:
    """
    Log a message that also reaches the console in silent mode.

    Wraps ``logger.log()`` and merges ``display=True`` into ``extra``.
    The ``display_min_level`` setting still applies.
    """
    extra = kwargs.pop("extra", None) or {}
    extra["display"] = True
    kwargs["extra"] = extra
    logger.log(level, msg, *args, **kwargs)


def get_log_file_path() -> Path | None:
    return UnifiedLoggingManager.get_log_file_path()


def set_component_level(component: str, level: str | int) -> None:
    UnifiedLoggingManager.get_instance().set_component_level(component, level)
