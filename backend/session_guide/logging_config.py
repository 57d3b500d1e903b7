import logging
import os
from logging.config import dictConfig
from typing import Any, Dict

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
TELEMETRY_LOG_FORMAT = "%(asctime)s %(message)s"

STORE_LOGGERS = ("session_guide.persistence", "session_guide.migrations", "session_guide.journal")


def _logging_config(level: str) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": os.getenv("GUIDE_LOG_FORMAT", DEFAULT_LOG_FORMAT)},
            "telemetry": {"format": TELEMETRY_LOG_FORMAT},
        },
        "handlers": {
            "default": {"class": "logging.StreamHandler", "formatter": "default"},
            "telemetry": {"class": "logging.StreamHandler", "formatter": "telemetry"},
        },
        "loggers": {
            "session_guide.telemetry": {
                "handlers": ["telemetry"],
                "level": os.getenv("GUIDE_TELEMETRY_LOG_LEVEL", level).upper(),
                "propagate": False,
            },
        },
        "root": {"handlers": ["default"], "level": level},
    }


def configure_logging() -> str:
    """Configure process logging from GUIDE_* environment flags and return the root level."""
    level = os.getenv("GUIDE_LOG_LEVEL", "INFO").upper()
    dictConfig(_logging_config(level))

    if os.getenv("GUIDE_DEBUG_STORES", "0") == "1":
        for name in STORE_LOGGERS:
            logging.getLogger(name).setLevel(logging.DEBUG)
    if os.getenv("GUIDE_DEBUG_HTTP", "0") != "1":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    return level
