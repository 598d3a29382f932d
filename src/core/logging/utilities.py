"""Logging utility functions."""

import logging
from typing import Any

# Reserved LogRecord attribute names that cannot be used in extra dict
_RESERVED_LOG_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "asctime",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "message",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)


def log_with_context(
    logger: logging.Logger,
    level: int,
    msg: str,
    **kwargs: Any,
) -> None:
    """
    Log with structured context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Additional context fields (duration_ms, http_status, etc.)
                  Note: exc_info=True is supported and handled specially.

    Example:
        log_with_context(
            logger, logging.INFO, "Batch sent",
            batch_bytes=len(payload),
            duration_ms=elapsed,
            http_status=201,
        )
    """
    # exc_info is a direct parameter to log(), not extra
    exc_info = kwargs.pop("exc_info", None)

    extra = {k: v for k, v in kwargs.items() if k not in _RESERVED_LOG_KEYS}

    logger.log(level, msg, exc_info=exc_info, extra=extra)


def log_exception(
    logger: logging.Logger,
    exc: BaseException,
    msg: str,
    level: int = logging.ERROR,
    include_traceback: bool = True,
    **kwargs: Any,
) -> None:
    """
    Log exception with context and optional traceback.

    Picks up status_code and is_fatal from PipelineError subclasses and
    truncates long error messages.

    Example:
        try:
            fetcher.fetch_all(url)
        except Exception as e:
            log_exception(logger, e, "Fetch failed", url=url)
    """
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int):
        kwargs.setdefault("status_code", status_code)
    if hasattr(exc, "is_fatal"):
        kwargs.setdefault("is_fatal", exc.is_fatal)

    error_msg = str(exc)
    if len(error_msg) > 500:
        error_msg = error_msg[:500] + "..."
    kwargs["error_message"] = error_msg
    kwargs.setdefault("error_type", type(exc).__name__)

    extra = {k: v for k, v in kwargs.items() if k not in _RESERVED_LOG_KEYS}
    if include_traceback:
        logger.log(level, msg, exc_info=exc, extra=extra)
    else:
        logger.log(level, msg, extra=extra)


def log_startup_banner(
    logger: logging.Logger,
    title: str,
    **fields: Any,
) -> None:
    """
    Log startup banner with run configuration.

    Example:
        log_startup_banner(
            logger,
            "Azure Inventory Export",
            version="0.1.0",
            tenants=2,
            subscriptions=5,
        )
    """
    separator = "=" * 50

    lines = ["", separator, title]

    version = fields.pop("version", None)
    if version:
        lines.append(f"Version: {version}")

    lines.append(separator)

    for key, value in fields.items():
        if value is not None and value != "":
            label = key.replace("_", " ").title() + ":"
            lines.append(f"{label:<16}{value}")

    lines.append(separator)
    lines.append("")

    logger.info("\n".join(lines))
