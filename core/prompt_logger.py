"""
Pattern Relay - API Prompt Logger
JSON Lines logging for all generation backend calls
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Optional, List, Dict, Any
from threading import Lock

# Thread-safe file writing
_write_lock = Lock()


def _log_path() -> Optional[Path]:
    import config

    if not getattr(config, 'PROMPT_LOG_ENABLED', True):
        return None
    return getattr(config, 'PROMPT_LOG_PATH', None)


def log_api_request(
    provider: str,
    model: str,
    tier: str,
    system_prompt: Optional[str],
    messages: List[Dict[str, str]],
    settings: Dict[str, Any],
    response_text: str,
    success: bool,
    error: Optional[str] = None,
    error_type: Optional[str] = None
) -> None:
    """
    Log a backend request and response to the JSON Lines file.

    Args:
        provider: LLM provider name (anthropic, kobold)
        model: Model identifier
        tier: Tier that served the call (utility, primary, fallback)
        system_prompt: System prompt sent to the backend
        messages: Message list sent to the backend
        settings: Request settings (timeout, max_tokens, ...)
        response_text: The response text from the backend
        success: Whether the request succeeded
        error: Error message if failed
        error_type: Structured failure reason if failed
    """
    entry = {
        "timestamp": datetime.now().isoformat(),
        "provider": provider,
        "model": model,
        "tier": tier,
        "system_prompt": system_prompt,
        "messages": messages,
        "settings": settings,
        "response": {
            "text": response_text,
            "success": success,
            "error": error,
            "error_type": error_type
        }
    }

    _write_entry(entry)


def _write_entry(entry: Dict[str, Any]) -> None:
    """Write a single entry to the log file (thread-safe)."""
    path = _log_path()
    if path is None:
        return

    path.parent.mkdir(parents=True, exist_ok=True)

    with _write_lock:
        try:
            with open(path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except OSError as e:
            # Don't let logging failures break the main application
            from core.logger import log_warning
            log_warning(f"Failed to write prompt log: {e}")

