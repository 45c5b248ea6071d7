#!/usr/bin/env python3
"""
LitBook - Main Entry Point
Reading core service: books, verses, reading progress and bookmarks

Usage:
    python main.py                    # Serve the HTTP API with settings from .env
    python main.py --port 8080        # Override the listen port
    python main.py --db ./books.db    # Use a different database file
    python main.py --no-ai            # Line-split chapters, no LLM calls
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
    log_ready
)
from core.database import init_database
from llm.router import init_llm_router, get_llm_router
from reading.segmenter import init_verse_segmenter
from reading.books import init_book_service
from interface.http_api import init_http_server, get_http_server


# Global shutdown event
_shutdown_event = threading.Event()


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully."""
    print()  # New line after ^C
    log_warning("Shutdown signal received...")
    _shutdown_event.set()


def initialize_system() -> bool:
    """
    Initialize all system components.

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

    log_startup_banner(config.VERSION, config.PROJECT_NAME)

    db = init_database(
        db_path=config.DATABASE_PATH,
        busy_timeout_ms=config.DB_BUSY_TIMEOUT_MS
    )
    if not db.initialized:
        log_error("Failed to initialize database")
        return False

    print_configuration()

    init_llm_router(
        primary_provider=config.LLM_PRIMARY_PROVIDER,
        fallback_enabled=config.LLM_FALLBACK_ENABLED
    )
    if config.SEGMENTATION_AI_ENABLED or config.ANNOTATIONS_ENABLED:
        check_llm_providers()

    segmenter = init_verse_segmenter(ai_enabled=config.SEGMENTATION_AI_ENABLED)
    init_book_service(segmenter=segmenter)

    if config.HTTP_ENABLED:
        init_http_server(host=config.HTTP_HOST, port=config.HTTP_PORT)

    return True


def print_configuration() -> None:
    """Print configuration summary."""
    log_section("Configuration", "📡")
    log_subsection(f"Database: {config.DATABASE_PATH}")
    log_subsection(f"Diagnostic Log: {config.DIAGNOSTIC_LOG_PATH}")

    log_section("Database Concurrency", "🔒")
    log_subsection(f"Busy Timeout: {config.DB_BUSY_TIMEOUT_MS}ms")
    log_subsection(f"Max Retries: {config.DB_MAX_RETRIES}")
    log_subsection(f"Retry Initial Delay: {config.DB_RETRY_INITIAL_DELAY}s")
    log_subsection(f"Backoff Multiplier: {config.DB_RETRY_BACKOFF_MULTIPLIER}x")

    log_section("Verse Segmentation", "✂️")
    log_subsection(f"AI Segmentation: {'ENABLED' if config.SEGMENTATION_AI_ENABLED else 'DISABLED'}")
    log_subsection(f"Service Timeout: {config.SEGMENTATION_TIMEOUT_SECONDS}s")
    log_subsection(f"Max Input: {config.SEGMENTATION_MAX_INPUT_CHARS} chars")

    log_section("Reading Data", "📖")
    log_subsection(
        f"Coordinate Validation: {'ENABLED' if config.VALIDATE_READING_COORDINATES else 'DISABLED'}"
    )
    log_subsection(f"Annotations: {'ENABLED' if config.ANNOTATIONS_ENABLED else 'DISABLED'}")
    log_subsection(f"Activity Feed Limit: {config.ACTIVITY_DEFAULT_LIMIT} (max {config.ACTIVITY_MAX_LIMIT})")


def check_llm_providers() -> None:
    """Check and display LLM provider status."""
    log_section("LLM Routing", "🤖")

    router = get_llm_router()
    status = router.check_providers()

    for provider, (available, message) in status.items():
        role = "Primary" if provider == router.primary_provider else "Secondary"
        mark = "✅" if available else "❌"
        log_subsection(f"{role} ({provider.value}): {mark} {message}")

    if config.LLM_FALLBACK_ENABLED:
        log_subsection("Fallback: ENABLED")
    else:
        log_subsection("Fallback: DISABLED")

    primary_ok = status.get(router.primary_provider, (False, ""))[0]
    if not primary_ok and not config.LLM_FALLBACK_ENABLED:
        log_warning("Primary LLM unavailable - chapters will be line-split")


def apply_arguments(args: argparse.Namespace) -> None:
    """Command line flags override .env settings."""
    if args.host:
        config.HTTP_HOST = args.host
    if args.port:
        config.HTTP_PORT = args.port
    if args.db:
        config.DATABASE_PATH = Path(args.db)
    if args.no_ai:
        config.SEGMENTATION_AI_ENABLED = False
        config.ANNOTATIONS_ENABLED = False


def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = argparse.ArgumentParser(
        description="LitBook - reading core service",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument("--host", help=f"HTTP listen host (default {config.HTTP_HOST})")
    parser.add_argument("--port", type=int, help=f"HTTP listen port (default {config.HTTP_PORT})")
    parser.add_argument("--db", help=f"SQLite database file (default {config.DATABASE_PATH})")
    parser.add_argument(
        "--no-ai",
        action="store_true",
        help="Disable LLM segmentation and annotations"
    )
    args = parser.parse_args()
    apply_arguments(args)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        if not initialize_system():
            log_error("System initialization failed")
            return 1

        if not config.HTTP_ENABLED:
            log_warning("HTTP API disabled - nothing to serve")
            return 0

        http_server = get_http_server()
        http_server.start()
        log_ready(config.HTTP_HOST, config.HTTP_PORT)

        # Block until SIGINT/SIGTERM
        while not _shutdown_event.wait(timeout=1.0):
            pass

        http_server.stop()
        log_success("LitBook shutdown complete")
        return 0

    except KeyboardInterrupt:
        log_warning("Interrupted")
        return 130

    except Exception as e:
        log_error(f"Fatal error: {e}")
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
