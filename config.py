"""
LitBook - Configuration
Feature flags, constants, and service settings
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
DATABASE_PATH = Path(os.getenv("LITBOOK_DATABASE_PATH", str(DATA_DIR / "litbook.db")))
DIAGNOSTIC_LOG_PATH = LOGS_DIR / "diagnostic.log"

# =============================================================================
# VERSION
# =============================================================================
VERSION = "0.3.0"
PROJECT_NAME = "LitBook"

# =============================================================================
# LLM CONFIGURATION
# =============================================================================
# Anthropic (Claude)
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-5-20250929")
ANTHROPIC_MAX_TOKENS = int(os.getenv("ANTHROPIC_MAX_TOKENS", "4096"))
ANTHROPIC_TIMEOUT_SECONDS = float(os.getenv("ANTHROPIC_TIMEOUT_SECONDS", "60"))

# KoboldCpp (Local)
KOBOLD_API_URL = os.getenv("KOBOLD_API_URL", "http://127.0.0.1:5001")
KOBOLD_MAX_CONTEXT = int(os.getenv("KOBOLD_MAX_CONTEXT", "8192"))
KOBOLD_MAX_LENGTH = int(os.getenv("KOBOLD_MAX_LENGTH", "2048"))

# Routing
LLM_PRIMARY_PROVIDER = os.getenv("LLM_PRIMARY_PROVIDER", "anthropic")  # 'anthropic' or 'kobold'
LLM_FALLBACK_ENABLED = os.getenv("LLM_FALLBACK_ENABLED", "false").lower() == "true"

# Automatic retry for transient errors (500, 502, 503, connection resets).
# Timeouts are NOT retried: a timed-out segmentation call goes straight to the
# local fallback splitter.
API_RETRY_MAX_ATTEMPTS = 2
API_RETRY_INITIAL_DELAY = 0.5
API_RETRY_BACKOFF_MULTIPLIER = 2.0

# =============================================================================
# VERSE SEGMENTATION
# =============================================================================
# Clients that already ran AI segmentation send verses joined by this delimiter.
SEGMENTATION_PRESPLIT_DELIMITER = "\n\n"

# When disabled, chapters without a pre-split are always split line by line.
SEGMENTATION_AI_ENABLED = os.getenv("SEGMENTATION_AI_ENABLED", "true").lower() == "true"

# Timeout for each segmentation request sent to a provider. On timeout the
# local splitter takes over. Connection and server errors are retried up to
# API_RETRY_MAX_ATTEMPTS times, each attempt with this timeout, and chapters
# are segmented one after another, so a save can wait several multiples of it.
SEGMENTATION_TIMEOUT_SECONDS = float(os.getenv("SEGMENTATION_TIMEOUT_SECONDS", "20"))

# Chapters longer than this skip the service entirely
SEGMENTATION_MAX_INPUT_CHARS = int(os.getenv("SEGMENTATION_MAX_INPUT_CHARS", "40000"))

# JSON key the service must return the verse array under
SEGMENTATION_RESPONSE_KEY = "verses"

# =============================================================================
# ANNOTATIONS
# =============================================================================
ANNOTATIONS_ENABLED = os.getenv("ANNOTATIONS_ENABLED", "true").lower() == "true"
ANNOTATION_CONTEXT_VERSES = 5      # Preceding verses sent as context
ANNOTATION_TIMEOUT_SECONDS = float(os.getenv("ANNOTATION_TIMEOUT_SECONDS", "45"))

# =============================================================================
# READING DATA
# =============================================================================
# Reject progress/bookmark writes whose chapter is not part of the book or
# whose paragraph index is outside the chapter's current verse count.
# Stored rows that go stale after a book edit are still returned as-is.
VALIDATE_READING_COORDINATES = True

ACTIVITY_DEFAULT_LIMIT = 20
ACTIVITY_MAX_LIMIT = 100

# =============================================================================
# DATABASE CONFIGURATION
# =============================================================================
DB_BUSY_TIMEOUT_MS = 10000
DB_MAX_RETRIES = 5
DB_RETRY_INITIAL_DELAY = 0.1
DB_RETRY_BACKOFF_MULTIPLIER = 2.0
DB_RETRY_MAX_DELAY = 5.0

# =============================================================================
# HTTP API
# =============================================================================
HTTP_ENABLED = True
HTTP_HOST = os.getenv("HTTP_HOST", "127.0.0.1")
HTTP_PORT = int(os.getenv("HTTP_PORT", "5000"))

# =============================================================================
# LOGGING
# =============================================================================
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_TO_FILE = True
LOG_TO_CONSOLE = True
