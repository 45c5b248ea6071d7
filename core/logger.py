"""
LitBook - Logging System
Timestamped console output with rich formatting + file logging
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.theme import Theme

# Custom theme for console output
THEME = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "success": "bold green",
    "timestamp": "dim white",
    "header": "bold magenta",
    "config": "dim cyan",
})

# Global console instance
console = Console(theme=THEME)

# Module-level logger instance
_logger: Optional[logging.Logger] = None
_log_file_path: Optional[Path] = None
_console_enabled: bool = True


def setup_logging(
    log_file_path: Path,
    level: str = "INFO",
    log_to_file: bool = True,
    log_to_console: bool = True
) -> logging.Logger:
    """
    Initialize the logging system.

    Args:
        log_file_path: Path to the diagnostic log file
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_to_file: Whether to write logs to file
        log_to_console: Whether to write logs to console (via rich)

    Returns:
        Configured logger instance
    """
    global _logger, _log_file_path, _console_enabled

    _log_file_path = log_file_path
    _console_enabled = log_to_console

    _logger = logging.getLogger("litbook")
    _logger.setLevel(getattr(logging, level.upper()))
    _logger.handlers.clear()

    if log_to_file:
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)  # File gets everything
        file_formatter = logging.Formatter(
            "[%(asctime)s] %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
        file_handler.setFormatter(file_formatter)
        _logger.addHandler(file_handler)

    return _logger


def get_timestamp() -> str:
    """Get formatted timestamp for console output."""
    return datetime.now().strftime("%H:%M:%S")


def _print(markup: str, style: Optional[str] = None) -> None:
    if _console_enabled:
        console.print(markup, style=style)


def _stamped(markup: str, style: Optional[str] = None) -> None:
    _print(f"[timestamp][{get_timestamp()}][/timestamp] {markup}", style=style)


def _to_file(message: str, level: int = logging.INFO) -> None:
    if _logger:
        _logger.log(level, message)


def _banner(markup: str, plain: str) -> None:
    """A line of text framed by separators, on console and in the file log."""
    separator = "=" * 60
    _print("")
    _print(f"[header]{separator}[/header]")
    _stamped(markup)
    _print(f"[header]{separator}[/header]")
    for line in (separator, plain, separator):
        _to_file(line)


def log(message: str, level: str = "info", prefix: str = "") -> None:
    """
    Log a message to both console and file.

    Args:
        message: The message to log
        level: Log level (info, warning, error, success)
        prefix: Optional emoji/prefix for console output
    """
    style = level if level in ("info", "warning", "error", "success") else "info"
    prefix_str = f"{prefix} " if prefix else ""
    # Messages carry user text (book titles); never parse it as markup
    _stamped(f"{prefix_str}{escape(message)}", style=style)
    _to_file(f"{prefix_str}{message}", getattr(logging, level.upper(), logging.INFO))


def log_info(message: str, prefix: str = "") -> None:
    log(message, "info", prefix)


def log_success(message: str, prefix: str = "") -> None:
    log(message, "info", prefix or "✅")


def log_warning(message: str, prefix: str = "") -> None:
    log(message, "warning", prefix or "⚠️")


def log_error(message: str, prefix: str = "") -> None:
    log(message, "error", prefix or "❌")


def log_config(key: str, value: str, indent: int = 0) -> None:
    """Print a configuration value, e.g. 'Port: 5000'."""
    log_subsection(f"{key}: {value}", indent=indent)


def log_subsection(message: str, emoji: str = "", indent: int = 1) -> None:
    """Print an indented detail line under the current section."""
    line = "   " * indent + (f"{emoji} " if emoji else "") + message
    _stamped(f"[config]{escape(line)}[/config]")
    _to_file(line)


def log_section(title: str, emoji: str = "📋") -> None:
    _print("")
    _stamped(f"[header]{emoji} {escape(title)}:[/header]")
    _to_file(f"{title}:")


def log_startup_banner(version: str, project_name: str) -> None:
    title = f"{project_name} - v{version} - Social Reading Core"
    _banner(f"[header]📖 {escape(title)}[/header]", title)


def log_ready(host: str, port: int) -> None:
    ready = f"LITBOOK READY on http://{host}:{port}"
    _banner(f"[success]✅ {ready}[/success]", ready)
    _print("")
