"""
Utility functions and logging configuration for NDOP Downloader.
"""

import logging
import sys
from functools import wraps
from time import sleep
from typing import Callable, TypeVar

# Type variable for generic retry decorator
T = TypeVar("T")


def setup_logging(
    level: int = logging.INFO,
    log_file: str | None = None,
    verbose: bool = False,
) -> logging.Logger:
    """
    Configure logging for the application.

    Args:
        level: Logging level (default: INFO)
        log_file: Optional file path to write logs
        verbose: If True, set level to DEBUG

    Returns:
        Configured logger instance
    """
    if verbose:
        level = logging.DEBUG

    logger = logging.getLogger("ndop_downloader")
    logger.setLevel(level)

    # Clear existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    # Format: timestamp - level - message
    formatter = logging.Formatter(
        "%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger() -> logging.Logger:
    """Get the application logger."""
    return logging.getLogger("ndop_downloader")


def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: tuple = (Exception,),
) -> Callable:
    """
    Decorator for retrying a function with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts (0 disables retrying)
        initial_delay: Initial delay in seconds
        backoff_factor: Multiplier for each subsequent delay
        exceptions: Tuple of exception types to catch

    Returns:
        Decorated function
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            logger = get_logger()
            delay = initial_delay

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_retries:
                        if max_retries:
                            logger.error(
                                f"Failed after {max_retries + 1} attempts: {e}"
                            )
                        raise

                    logger.warning(
                        f"Attempt {attempt + 1} failed: {e}. "
                        f"Retrying in {delay:.1f}s..."
                    )
                    sleep(delay)
                    delay *= backoff_factor

            raise RuntimeError("Retry loop exited unexpectedly")

        return wrapper

    return decorator


def clean_optional_string(value: str | None) -> str | None:
    """
    Normalize an optional text value.

    Strips surrounding whitespace and turns empty strings into None.

    Args:
        value: Input string or None

    Returns:
        Stripped string, or None if nothing is left
    """
    if value is None:
        return None

    value = str(value).strip()
    return value or None


def validate_positive_int(value: int, field_name: str, allow_zero: bool = False) -> int:
    """
    Validate that a value is a positive integer.

    Args:
        value: Value to validate
        field_name: Name of the field for error messages
        allow_zero: If True, allow zero as a valid value

    Returns:
        The validated value

    Raises:
        ValueError: If value is invalid
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field_name} must be an integer, got {type(value).__name__}")

    min_val = 0 if allow_zero else 1
    if value < min_val:
        raise ValueError(f"{field_name} must be >= {min_val}, got {value}")

    return value


def sanitize_filename(name: str, max_length: int = 200) -> str:
    """
    Sanitize a string for use as a filename.

    Args:
        name: Input string
        max_length: Maximum allowed length

    Returns:
        Safe filename string
    """
    unsafe_chars = '<>:"/\\|?*'
    for char in unsafe_chars:
        name = name.replace(char, "_")

    # Spaces are legal but awkward on the command line
    name = name.strip().strip(".").replace(" ", "_")

    if len(name) > max_length:
        name = name[:max_length]

    return name or "unnamed"


def format_record_range(first: int, last: int) -> str:
    """
    Format a 1-based inclusive record range for log messages.

    Args:
        first: First record number
        last: Last record number

    Returns:
        Formatted range (e.g., "1 - 1,000")
    """
    return f"{first:,} - {last:,}"
