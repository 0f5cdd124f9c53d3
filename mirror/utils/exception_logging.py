"""
Exception logging helpers for upstream failures.

Failures surfacing from the streaming stack may arrive wrapped in exception
groups (anyio task groups), so both helpers unfold sub-exceptions.
"""

import logging


def _safe_str(obj) -> str:
    """
    Convert an object to string without letting a broken __str__ escape.

    Args:
        obj: The object to convert to string

    Returns:
        A string representation of the object, or a placeholder
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _sub_exceptions(exception) -> list:
    try:
        return list(getattr(exception, "exceptions", None) or [])
    except Exception:
        return []


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: Exception,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception, one line per sub-exception for exception groups.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g. "[Proxy]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    message = _safe_str(exception) if exception is not None else "None"
    sub_exceptions = _sub_exceptions(exception)

    try:
        if not sub_exceptions:
            logger.log(
                level,
                f"{prefix} {type(exception).__name__}: {message}",
                exc_info=exception if exception is not None else False,
            )
            return

        logger.log(
            level,
            f"{prefix} Exception with {len(sub_exceptions)} sub-exceptions: {message}",
        )
        for i, sub_exc in enumerate(sub_exceptions):
            logger.log(
                level,
                f"{prefix} Sub-exception {i + 1}: {type(sub_exc).__name__}: {_safe_str(sub_exc)}",
                exc_info=sub_exc,
            )
    except Exception:
        # Logging must never turn into a second failure of the request
        logger.log(level, f"{prefix} Exception (logging details failed)")


def format_exception_message(exception: Exception) -> str:
    """
    Format an exception for an error response, including sub-exceptions.

    Args:
        exception: The exception to format

    Returns:
        A formatted string describing the exception
    """
    if exception is None:
        return "None"

    message = _safe_str(exception)
    sub_exceptions = _sub_exceptions(exception)
    if not sub_exceptions:
        return message or type(exception).__name__

    details = "; ".join(
        f"{type(sub_exc).__name__}: {_safe_str(sub_exc)}" for sub_exc in sub_exceptions
    )
    return f"{message} (Sub-exceptions: {details})"
