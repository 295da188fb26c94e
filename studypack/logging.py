import logging

import structlog


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog for application-wide logging.

    Initializes stdlib logging at the given level and renders structlog events
    as JSON lines with ISO timestamps, so batch runs can be grepped per user.
    """
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO))
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
