"""
Pattern Relay - Configuration
Feature flags, constants, and limits
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# =============================================================================
# PATHS
# =============================================================================
PROJECT_ROOT = Path(__file__).parent
DATA_DIR = PROJECT_ROOT / "data"
LOGS_DIR = PROJECT_ROOT / "logs"
PATTERNS_DIR = Path(os.getenv("PATTERNS_DIR", str(PROJECT_ROOT / "assets" / "patterns")))
EXPORT_DIR = DATA_DIR / "exports"
DIAGNOSTIC_LOG_PATH = LOGS_DIR / "diagnostic.log"

# =============================================================================
# VERSION
# =============================================================================
VERSION = "0.1.0"
PROJECT_NAME = "Pattern Relay"

# =============================================================================
# LLM CONFIGURATION
# =============================================================================
# Anthropic (Claude)
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-5-20250929")  # Primary tier
ANTHROPIC_MODEL_UTILITY = os.getenv("ANTHROPIC_MODEL_UTILITY", "claude-haiku-4-5-20251001")  # Fast first tier
ANTHROPIC_MAX_TOKENS = int(os.getenv("ANTHROPIC_MAX_TOKENS", "8192"))
ANTHROPIC_TEMPERATURE = 0.7

# Set to false to go straight to the primary tier
UTILITY_TIER_ENABLED = os.getenv("UTILITY_TIER_ENABLED", "true").lower() == "true"

# KoboldCpp (Local)
KOBOLD_API_URL = os.getenv("KOBOLD_API_URL", "http://127.0.0.1:5001")
KOBOLD_MAX_CONTEXT = int(os.getenv("KOBOLD_MAX_CONTEXT", "8192"))
KOBOLD_MAX_LENGTH = int(os.getenv("KOBOLD_MAX_LENGTH", "1024"))

# Fallback tier: 'anthropic' uses ANTHROPIC_MODEL_FAILOVER, 'kobold' uses local model
LLM_FALLBACK_PROVIDER = os.getenv("LLM_FALLBACK_PROVIDER", "anthropic")
LLM_FALLBACK_ENABLED = True

# Maps each primary model to its fallback tier model
ANTHROPIC_MODEL_FAILOVER = {
    "claude-opus-4-6": "claude-sonnet-4-5-20250929",
    "claude-sonnet-4-5-20250929": "claude-opus-4-6",
}

# =============================================================================
# BACKEND CALL POLICY
# =============================================================================
# Layer 1: per-call timeout escalation across the model tiers
INVOKE_INITIAL_TIMEOUT = 60.0                 # Seconds, utility tier and first primary attempt
INVOKE_MAX_TIMEOUT = 120.0                    # Seconds, cap for escalation and fallback tier
INVOKE_RETRIES = 2                            # Extra primary attempts

# Layer 2: orchestration retry around a whole pattern run
ORCHESTRATION_MAX_ATTEMPTS = 3                # 1 try + 2 retries
ORCHESTRATION_INITIAL_DELAY = 2.0             # Seconds, doubles per attempt
ORCHESTRATION_BACKOFF_MULTIPLIER = 2.0

# Layer 3: per-chunk retry inside large inputs and batches
CHUNK_MAX_ATTEMPTS = 2                        # 1 try + 1 retry
CHUNK_RETRY_DELAY = 1.0

# =============================================================================
# CHUNKING
# =============================================================================
CHUNK_MAX_SIZE = 3800                         # Input slice size sent to the backend
DISPLAY_MAX_SIZE = 4000                       # Delivery channel message limit
LARGE_INPUT_THRESHOLD = 100_000               # Above this, apply_large splits before calling

# =============================================================================
# BATCH PROCESSING
# =============================================================================
BATCH_CHUNK_DELAY = 0.5                       # Seconds between sequential per-chunk calls

# =============================================================================
# SESSION STATE
# =============================================================================
PATTERN_STATE_TTL = 7200                      # 2 hours, refreshed on every write
PATTERNS_PER_PAGE = 8                         # Category menu page size

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_TO_FILE = True
LOG_TO_CONSOLE = True

# API prompt logging (JSON Lines format for debugging)
PROMPT_LOG_ENABLED = os.getenv("PROMPT_LOG_ENABLED", "true").lower() == "true"
PROMPT_LOG_PATH = LOGS_DIR / "prompts.jsonl"

# =============================================================================
# TELEGRAM CONFIGURATION
# =============================================================================
TELEGRAM_ENABLED = os.getenv("TELEGRAM_ENABLED", "false").lower() == "true"
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")
TELEGRAM_CHAT_ID = os.getenv("TELEGRAM_CHAT_ID", "")  # Optional allow-list; empty accepts any chat
TELEGRAM_POLL_INTERVAL = 2.0                  # Seconds between polls
TELEGRAM_WORKERS = int(os.getenv("TELEGRAM_WORKERS", "4"))  # Concurrent pattern runs across users
