import json
import logging
from logging.config import dictConfig


def setup_logging(*, debug: bool = False) -> None:
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {
                    "()": JsonFormatter,
                },
                "plain": {
                    "format": "%(levelname)s %(name)s: %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "json",
                },
                "script_console": {
                    "class": "logging.StreamHandler",
                    "formatter": "plain",
                },
            },
            "root": {
                "level": "INFO",
                "handlers": ["console"],
            },
            "loggers": {
                "b2media": {
                    "level": "DEBUG" if debug else "INFO",
                },
                "b2media.scripts": {
                    "handlers": ["script_console"],
                    "level": "INFO",
                    "propagate": False,
                },
            },
        }
    )


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "extra") and isinstance(record.extra, dict):
            payload.update(record.extra)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def mask_secret(value: str | None, *, visible: int = 4) -> str:
    """Render a secret as ``head...tail (len:N)`` for diagnostics."""
    if not value:
        return "(missing)"
    if len(value) <= visible * 2:
        return f"{'*' * len(value)} (len:{len(value)})"
    return f"{value[:visible]}...{value[-visible:]} (len:{len(value)})"
