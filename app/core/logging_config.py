import logging
import logging.config
import sys
from typing import Any, Dict, Optional


def build_logging_config(level: str = "INFO", json_output: bool = True) -> Dict[str, Any]:
    """dictConfig for the API process: one stdout handler, JSON lines by default."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.json.JsonFormatter",
                "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
                "json_ensure_ascii": False,
            },
            "console": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json" if json_output else "console",
                "stream": sys.stdout,
            },
        },
        "loggers": {
            "app": {
                "handlers": ["console"],
                "level": level.upper(),
                "propagate": False,
            },
            # Statement echo is noisy and may carry secrets from platform_settings
            "sqlalchemy.engine": {
                "level": "WARNING",
            },
        },
        "root": {
            "handlers": ["console"],
            "level": "WARNING",
        },
    }


def configure_logging(level: str = "INFO", json_output: bool = True, config: Optional[Dict[str, Any]] = None) -> None:
    logging.config.dictConfig(config or build_logging_config(level, json_output))
    logging.getLogger(__name__).debug("Logging configured", extra={"level": level, "json": json_output})
