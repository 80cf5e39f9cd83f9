"""
Utility functions for logging and describing exceptions raised while talking
to the backend, including exception groups surfaced by the async transport.
"""

import logging


def _safe_str(obj) -> str:
    """
    Safely convert an object to string, handling cases where __str__ or __repr__ might fail.
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _safe_get_exceptions(exception_group) -> list:
    try:
        return list(exception_group.exceptions)
    except Exception:
        return []


def _describe_single(exception: Exception) -> str:
    text = _safe_str(exception)
    # httpx timeouts and some connect errors carry no message
    return text if text.strip() else type(exception).__name__


def format_exception_message(exception: Exception) -> str:
    """
    Format an exception message, including sub-exceptions for exception groups.
    Never returns an empty string and never raises.

    Args:
        exception: The exception to format

    Returns:
        A formatted string describing the exception
    """
    if exception is None:
        return "None"

    sub_exceptions = (
        _safe_get_exceptions(exception) if hasattr(exception, "exceptions") else []
    )
    if not sub_exceptions:
        return _describe_single(exception)

    parts = [
        f"{type(sub_exc).__name__}: {_describe_single(sub_exc)}"
        for sub_exc in sub_exceptions
    ]
    return f"{_describe_single(exception)} (Sub-exceptions: {'; '.join(parts)})"


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: Exception,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with its traceback, one record per sub-exception for
    exception groups. Logging failures are never propagated to the caller.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[templates]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        sub_exceptions = (
            _safe_get_exceptions(exception)
            if exception is not None and hasattr(exception, "exceptions")
            else []
        )
        if not sub_exceptions:
            logger.log(
                level,
                f"{prefix} Exception: {format_exception_message(exception)}",
                exc_info=exception if exception is not None else False,
            )
            return

        logger.log(
            level,
            f"{prefix} Exception with {len(sub_exceptions)} sub-exceptions: "
            f"{_describe_single(exception)}",
        )
        for i, sub_exc in enumerate(sub_exceptions):
            logger.log(
                level,
                f"{prefix} Sub-exception {i + 1}: {type(sub_exc).__name__}: "
                f"{_describe_single(sub_exc)}",
                exc_info=sub_exc,
            )
    except Exception:
        try:
            logger.log(logging.ERROR, f"{prefix} Exception (logging failed)")
        except Exception:
            pass
