"""
LitBook - Database Retry Logic
Exponential backoff retry for SQLite lock contention
"""

import time
import sqlite3
from typing import TypeVar, Callable, Optional
from functools import wraps

import config
from core.logger import log_warning, log_error

T = TypeVar('T')

RETRYABLE_MESSAGES = ("locked", "busy")


class DatabaseRetryExhausted(Exception):
    """Raised when all retry attempts are exhausted."""
    pass


class RetryConfig:
    """Configuration for database retry behavior."""

    def __init__(
        self,
        max_retries: int = 5,
        initial_delay: float = 0.1,
        backoff_multiplier: float = 2.0,
        max_delay: float = 5.0
    ):
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.backoff_multiplier = backoff_multiplier
        self.max_delay = max_delay

    @classmethod
    def from_config(cls) -> "RetryConfig":
        return cls(
            max_retries=config.DB_MAX_RETRIES,
            initial_delay=config.DB_RETRY_INITIAL_DELAY,
            backoff_multiplier=config.DB_RETRY_BACKOFF_MULTIPLIER,
            max_delay=config.DB_RETRY_MAX_DELAY
        )


DEFAULT_RETRY_CONFIG = RetryConfig.from_config()


def is_retryable(error: sqlite3.OperationalError) -> bool:
    """Lock/busy errors are worth retrying; anything else is a real failure."""
    message = str(error).lower()
    return any(fragment in message for fragment in RETRYABLE_MESSAGES)


def db_retry(retry_config: Optional[RetryConfig] = None):
    """
    Decorator for retrying database operations with exponential backoff.

    Only sqlite3.OperationalError with a lock/busy message is retried.
    Integrity errors and everything else propagate on the first attempt.
    The wrapped function must be safe to re-run from the start, which holds
    for every operation that opens its own connection context.

    Args:
        retry_config: Retry tuning (defaults to the values in config.py)
    """
    settings = retry_config or DEFAULT_RETRY_CONFIG

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            delay = settings.initial_delay
            last_error = None

            for attempt in range(settings.max_retries + 1):
                try:
                    return func(*args, **kwargs)

                except sqlite3.OperationalError as e:
                    if not is_retryable(e):
                        raise

                    last_error = e
                    if attempt >= settings.max_retries:
                        break

                    log_warning(
                        f"Database locked in {func.__name__} "
                        f"(attempt {attempt + 1}/{settings.max_retries + 1}), "
                        f"retrying in {delay:.2f}s..."
                    )
                    time.sleep(delay)
                    delay = min(delay * settings.backoff_multiplier, settings.max_delay)

            log_error(
                f"{func.__name__} failed after {settings.max_retries + 1} attempts: {last_error}"
            )
            raise DatabaseRetryExhausted(
                f"Max retries ({settings.max_retries}) exhausted. Last error: {last_error}"
            ) from last_error

        return wrapper
    return decorator
