#!/usr/bin/env python3
"""
Pattern Relay - Main Entry Point
Pattern processing engine for text of any length

Usage:
    python main.py               # Run in CLI mode (console) - default
    python main.py --cli         # Same as above
    python main.py --telegram    # Run as a Telegram bot
    python main.py -t            # Short form for Telegram mode
"""

import sys
import signal
import threading
import argparse
from pathlib import Path

# Ensure we can import from project root
sys.path.insert(0, str(Path(__file__).parent))

import config
from core.logger import (
    setup_logging,
    log_startup_banner,
    log_section,
    log_subsection,
    log_success,
    log_warning,
    log_error,
    log_ready,
    log_info
)
from concurrency.locks import init_operation_guard, get_operation_guard
from engine.session import get_session_store
from llm.router import init_llm_router, get_llm_router, LLMProvider
from patterns.catalog import init_pattern_catalog
from interface.pattern_flow import init_pattern_flow
from interface.cli import init_cli, get_cli

# Seconds between expired-session sweeps in Telegram mode
SESSION_SWEEP_INTERVAL = 60.0

# Global shutdown event
_shutdown_event = threading.Event()


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully."""
    print()  # New line after ^C
    log_warning("Shutdown signal received...")
    _shutdown_event.set()


def initialize_system(patterns_dir: Path = None) -> bool:
    """
    Initialize all system components.

    Args:
        patterns_dir: Override for the pattern directory

    Returns:
        True if successful, False otherwise
    """
    # Setup logging first
    config.LOGS_DIR.mkdir(parents=True, exist_ok=True)
    config.DATA_DIR.mkdir(parents=True, exist_ok=True)
    setup_logging(
        log_file_path=config.DIAGNOSTIC_LOG_PATH,
        level=config.LOG_LEVEL,
        log_to_file=config.LOG_TO_FILE,
        log_to_console=config.LOG_TO_CONSOLE
    )

    # Print startup banner
    log_startup_banner(config.VERSION, config.PROJECT_NAME)

    # Load patterns; a failed load disables suggestion but keeps running
    log_section("Pattern Catalog", "🧩")
    catalog = init_pattern_catalog(patterns_dir)
    if not catalog.is_loaded():
        log_warning("=" * 60)
        log_warning("RUNNING IN DEGRADED MODE - No patterns available")
        log_warning(f"Add pattern directories under {patterns_dir or config.PATTERNS_DIR}")
        log_warning("=" * 60)

    # Print configuration summary
    print_configuration()

    # Initialize components
    init_operation_guard()
    init_llm_router()
    check_llm_providers()
    init_pattern_flow()

    return True


def print_configuration() -> None:
    """Print configuration summary."""
    log_section("Configuration", "📡")
    log_subsection(f"Patterns: {config.PATTERNS_DIR}")
    log_subsection(f"Exports: {config.EXPORT_DIR}")
    log_subsection(f"Diagnostic Log: {config.DIAGNOSTIC_LOG_PATH}")
    if config.PROMPT_LOG_ENABLED:
        log_subsection(f"Prompt Log: {config.PROMPT_LOG_PATH}")

    log_section("Chunking", "✂️")
    log_subsection(f"Chunk Size: {config.CHUNK_MAX_SIZE} chars (display: {config.DISPLAY_MAX_SIZE})")
    log_subsection(f"Large Input Threshold: {config.LARGE_INPUT_THRESHOLD:,} chars")
    log_subsection(f"Batch Delay: {config.BATCH_CHUNK_DELAY}s between chunks")
    log_subsection(f"Session TTL: {config.PATTERN_STATE_TTL // 60}min")

    log_section("Retry Policy", "🔁")
    log_subsection(
        f"Backend Calls: {config.INVOKE_INITIAL_TIMEOUT:.0f}s -> {config.INVOKE_MAX_TIMEOUT:.0f}s, "
        f"{config.INVOKE_RETRIES} retries"
    )
    log_subsection(
        f"Orchestration: {config.ORCHESTRATION_MAX_ATTEMPTS} attempts, "
        f"backoff {config.ORCHESTRATION_INITIAL_DELAY}s x{config.ORCHESTRATION_BACKOFF_MULTIPLIER}"
    )
    log_subsection(f"Chunks: {config.CHUNK_MAX_ATTEMPTS} attempts, {config.CHUNK_RETRY_DELAY}s delay")

    if config.TELEGRAM_ENABLED:
        log_section("Communication", "📱")
        chat_id = config.TELEGRAM_CHAT_ID
        masked = f"...{chat_id[-4:]}" if len(chat_id) >= 4 else "any chat"
        log_subsection(f"Telegram Chat: {masked}")
        log_subsection(f"Workers: {config.TELEGRAM_WORKERS}")


def check_llm_providers() -> None:
    """Check and display LLM provider status."""
    log_section("LLM Routing", "🤖")

    router = get_llm_router()
    status = router.check_providers()

    if status.get(LLMProvider.ANTHROPIC):
        log_subsection(f"Primary (anthropic): ✅ {router.primary_model}")
    else:
        log_subsection("Primary (anthropic): ❌ No API key configured")

    if router.utility_model:
        log_subsection(f"Utility tier: {router.utility_model}")
    else:
        log_subsection("Utility tier: DISABLED")

    if not config.LLM_FALLBACK_ENABLED:
        log_subsection("Fallback: DISABLED")
    elif router.fallback_provider == LLMProvider.KOBOLD:
        kobold_ok = status.get(LLMProvider.KOBOLD)
        log_subsection(f"Fallback (kobold): {'✅' if kobold_ok else '❌'} {config.KOBOLD_API_URL}")
    else:
        log_subsection("Fallback (anthropic): failover model")


def run_cli_mode(patterns_dir: Path = None) -> int:
    """Run the application in CLI mode."""
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        if not initialize_system(patterns_dir):
            log_error("System initialization failed")
            return 1

        init_cli()
        log_ready()

        # Start CLI (blocks until exit)
        get_cli().start()

        get_operation_guard().log_stats()
        log_success("Pattern Relay shutdown complete")
        return 0

    except KeyboardInterrupt:
        log_warning("Interrupted")
        return 130


def run_telegram_mode(patterns_dir: Path = None) -> int:
    """Run the application as a Telegram bot."""
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if not config.TELEGRAM_BOT_TOKEN:
        print("Telegram mode requires TELEGRAM_BOT_TOKEN in the environment or .env")
        return 1

    if not initialize_system(patterns_dir):
        log_error("System initialization failed")
        return 1

    from communication.telegram_gateway import init_telegram_gateway
    from communication.telegram_listener import init_telegram_listener
    from communication.telegram_bridge import get_telegram_bridge

    init_telegram_gateway()
    init_telegram_listener()

    log_section("Starting Services", "🔧")
    bridge = get_telegram_bridge()
    bridge.start()
    log_subsection("Telegram listener started")

    log_ready()

    # Sweep expired sessions until shutdown
    store = get_session_store()
    while not _shutdown_event.wait(SESSION_SWEEP_INTERVAL):
        purged = store.purge_expired()
        if purged:
            log_info(f"Expired {purged} pattern session(s)")

    log_section("Stopping Services", "🛑")
    bridge.stop()
    log_subsection("Telegram listener stopped")
    get_operation_guard().log_stats()

    log_success("Pattern Relay shutdown complete")
    return 0


def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = argparse.ArgumentParser(
        description="Pattern Relay - pattern processing for text of any length",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--cli", "-c",
        action="store_true",
        help="Run the console interface (default)"
    )
    mode.add_argument(
        "--telegram", "-t",
        action="store_true",
        help="Run as a Telegram bot"
    )
    parser.add_argument(
        "--patterns",
        type=Path,
        default=None,
        help="Pattern directory (overrides PATTERNS_DIR)"
    )
    args = parser.parse_args()

    if args.patterns is not None:
        config.PATTERNS_DIR = args.patterns

    if args.telegram:
        return run_telegram_mode(args.patterns)
    return run_cli_mode(args.patterns)


if __name__ == "__main__":
    sys.exit(main())
