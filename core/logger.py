"""
Pattern Relay - Logging
Rich console lines and a plain diagnostic log file, fed by the same calls.

Every helper writes one console line (when the console is enabled) and
one file record (once setup_logging() has run). Messages are escaped
before reaching rich, so pattern output and chunk placeholders such as
"[Error processing chunk 2: ...]" print literally.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.theme import Theme

THEME = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "success": "bold green",
    "timestamp": "dim white",
    "header": "bold magenta",
    "detail": "dim cyan",
})

RULE = "=" * 60
INDENT = "   "

console = Console(theme=THEME)

_logger: Optional[logging.Logger] = None
_console_enabled: bool = True

# Console style -> file log level
_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def setup_logging(
    log_file_path: Path,
    level: str = "INFO",
    log_to_file: bool = True,
    log_to_console: bool = True
) -> logging.Logger:
    """
    Configure the diagnostic file and the console switch.

    Args:
        log_file_path: Diagnostic log file (parent directories are created)
        level: Minimum level written to the file
        log_to_file: Attach the file handler
        log_to_console: Print rich console lines

    Returns:
        The "pattern_relay" logger
    """
    global _logger, _console_enabled

    _console_enabled = log_to_console

    _logger = logging.getLogger("pattern_relay")
    _logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    _logger.handlers.clear()
    _logger.propagate = False

    if log_to_file:
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file_path, encoding="utf-8")
        handler.setFormatter(logging.Formatter(
            "[%(asctime)s] %(levelname)s - %(threadName)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        _logger.addHandler(handler)

    return _logger


def get_timestamp() -> str:
    return datetime.now().strftime("%H:%M:%S")


def _emit(markup: str, record: str, level: int = logging.INFO, leading_newline: bool = False) -> None:
    """Print pre-built markup and write the matching plain record."""
    if _console_enabled:
        lead = "\n" if leading_newline else ""
        console.print(f"{lead}[timestamp][{get_timestamp()}][/timestamp] {markup}", highlight=False)
    if _logger:
        _logger.log(level, record)


def log(message: str, level: str = "info", prefix: str = "") -> None:
    """
    Log one message.

    Args:
        message: Text to log (never parsed as markup)
        level: info, success, warning or error
        prefix: Emoji shown before the message
    """
    style = level if level in _LEVELS else "info"
    text = f"{prefix} {message}" if prefix else message
    _emit(f"[{style}]{escape(text)}[/{style}]", text, _LEVELS[style])


def log_info(message: str, prefix: str = "") -> None:
    log(message, "info", prefix)


def log_success(message: str, prefix: str = "") -> None:
    log(message, "success", prefix or "✅")


def log_warning(message: str, prefix: str = "") -> None:
    log(message, "warning", prefix or "⚠️")


def log_error(message: str, prefix: str = "") -> None:
    log(message, "error", prefix or "❌")


def log_startup_banner(version: str, project_name: str) -> None:
    """Banner printed once before the catalog loads."""
    title = f"🧩 {project_name} v{version} - patterns for text of any length"
    for index, line in enumerate((RULE, title, RULE)):
        _emit(f"[header]{escape(line)}[/header]", line, leading_newline=index == 0)


def log_section(title: str, emoji: str = "📋") -> None:
    """Startup section heading, e.g. "Chunking" or "LLM Routing"."""
    _emit(f"[header]{emoji} {escape(title)}:[/header]", f"{title}:", leading_newline=True)


def log_subsection(message: str, emoji: str = "", indent: int = 1) -> None:
    """One indented detail line under a section."""
    text = INDENT * indent + (f"{emoji} {message}" if emoji else message)
    _emit(f"[detail]{escape(text)}[/detail]", text)


def log_ready() -> None:
    """Closing line of startup: the relay accepts input from here on."""
    _emit(f"[header]{RULE}[/header]", RULE, leading_newline=True)
    _emit("[success]✅ Pattern Relay ready for input[/success]", "Pattern Relay ready for input")
    _emit(f"[header]{RULE}[/header]", RULE)
