import logging
import os
import sys
from pathlib import Path

import structlog
from dotenv import load_dotenv

QUIET_LOGGERS = ("httpx", "httpcore")
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def _level(name: str | None) -> int:
    return getattr(logging, (name or "INFO").upper(), logging.INFO)


def setup_logging(level: str | None = None, service: str = "driftwatch"):
    """JSON logs to stdout; errors also go to LOG_ERROR_FILE when it is set."""
    load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")
    log_level = _level(level or os.getenv("LOG_LEVEL"))
    error_log_path = os.getenv("LOG_ERROR_FILE", "").strip()

    formatter = logging.Formatter("%(message)s")
    handlers: list[logging.Handler] = []
    stdout = logging.StreamHandler(sys.stdout)
    stdout.setLevel(log_level)
    handlers.append(stdout)
    if error_log_path:
        Path(error_log_path).parent.mkdir(parents=True, exist_ok=True)
        errors = logging.FileHandler(error_log_path)
        errors.setLevel(logging.ERROR)
        handlers.append(errors)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service)

    # Transport libraries log every request at INFO.
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))
    for name in SERVER_LOGGERS:
        logging.getLogger(name).setLevel(log_level)
