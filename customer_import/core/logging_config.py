"""
Logging setup for the import service.

Every line carries the thread name so output from concurrent import runs
(``csv-import_0``, ``csv-import_1``, ...) can be told apart from request
handling.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Dict

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(threadName)s | %(name)s | %(message)s"

# Per-statement and per-request chatter from these libraries drowns out job progress.
QUIET_LOGGERS = ("sqlalchemy.engine", "botocore", "boto3", "s3transfer", "urllib3")

_is_configured = False


def build_logging_config(level: str) -> Dict[str, Any]:
    level = level.upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "service": {"format": LOG_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "formatter": "service",
            },
        },
        "root": {"handlers": ["stdout"], "level": "WARNING"},
        "loggers": {
            "customer_import": {"level": level},
            "uvicorn": {"level": level},
            **{name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        },
    }


def configure_logging(level: str) -> None:
    """Apply the service logging config once per process."""
    global _is_configured
    if _is_configured:
        return
    dictConfig(build_logging_config(level))
    _is_configured = True
    logging.getLogger(__name__).debug("Logging configured at %s", level.upper())
