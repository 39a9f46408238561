"""
Logging configuration for the SafeGig registry mirror.
Provides structured logging for chain sync operations.
"""

import logging
import sys
from typing import Any, Dict, Optional

import structlog
from structlog.stdlib import LoggerFactory

from app.core.config import settings

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("motor", "pymongo", "httpx", "httpcore", "web3", "urllib3")


def setup_logging() -> None:
    """
    Configure structlog on top of the standard library logger.

    Production renders one JSON object per line; other environments use the
    console renderer.
    """
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(),
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _renderer():
    if settings.ENVIRONMENT == "production":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=settings.DEBUG)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        structlog.stdlib.BoundLogger: Configured logger instance
    """
    return structlog.get_logger(name)


# Specialized logging functions for sync operations


def log_sync_window(
    contract_address: str,
    from_block: int,
    to_block: int,
    events_found: int,
    events_applied: int,
    **kwargs
) -> None:
    """
    Log a committed sync window.

    Args:
        contract_address: Watched contract address
        from_block: First block of the window
        to_block: Last block of the window (new cursor)
        events_found: Logs returned by the provider
        events_applied: Users created from those logs
        **kwargs: Additional context
    """
    logger = get_logger("sync.window")
    logger.info(
        "Sync window committed",
        contract_address=contract_address,
        from_block=from_block,
        to_block=to_block,
        events_found=events_found,
        events_applied=events_applied,
        **kwargs
    )


def log_sync_run(
    contract_address: str,
    status: str,
    from_block: Optional[int] = None,
    to_block: Optional[int] = None,
    last_synced_block: Optional[int] = None,
    **kwargs
) -> None:
    """
    Log the outcome of a sync run.

    Args:
        contract_address: Watched contract address
        status: completed, caught_up, cancelled or aborted
        from_block: First block of the run
        to_block: Target block of the run
        last_synced_block: Cursor position at the end of the run
        **kwargs: Additional context
    """
    logger = get_logger("sync.run")
    log = logger.error if status == "aborted" else logger.info
    log(
        "Sync run finished",
        contract_address=contract_address,
        status=status,
        from_block=from_block,
        to_block=to_block,
        last_synced_block=last_synced_block,
        **kwargs
    )


def log_user_mirrored(
    wallet_address: str,
    block_number: int,
    created: bool,
    user_type: Optional[int] = None,
    **kwargs
) -> None:
    """
    Log the materialization (or duplicate replay) of a registration event.

    Args:
        wallet_address: Registered wallet
        block_number: Block the registration was observed in
        created: Whether a new user document was written
        user_type: On-chain user type
        **kwargs: Additional context
    """
    logger = get_logger("sync.user")
    logger.info(
        "Indexed new user" if created else "User already indexed, skipping",
        wallet_address=wallet_address,
        block_number=block_number,
        user_type=user_type,
        **kwargs
    )


def log_error(error: Exception, context: Dict[str, Any] = None) -> None:
    """
    Log an error with context.

    Args:
        error: Exception instance
        context: Additional context information
    """
    logger = get_logger("error")
    logger.error(
        "An error occurred",
        error=str(error),
        error_type=type(error).__name__,
        context=context or {},
        exc_info=True
    )
