import json
import logging
from logging.config import dictConfig

# thread_name_prefix of the multipart upload pool
WORKER_THREAD_PREFIX = "multipart-upload"


def setup_logging(level: str = "INFO") -> None:
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
                "cli_console": {
                    "class": "logging.StreamHandler",
                    "formatter": "plain",
                },
            },
            "root": {
                "level": level,
                "handlers": ["console"],
            },
            "loggers": {
                "universal_storage.cli": {
                    "handlers": ["cli_console"],
                    "level": level,
                    "propagate": False,
                }
            },
        }
    )


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Structured fields passed as ``extra={"extra": {...}}`` are merged at the top
    level. Records from multipart worker threads carry the thread name so
    interleaved part logs can be told apart.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.threadName and record.threadName.startswith(WORKER_THREAD_PREFIX):
            payload["thread"] = record.threadName
        if hasattr(record, "extra") and isinstance(record.extra, dict):
            payload.update(record.extra)
        if record.exc_info:
            if record.exc_info[0] is not None:
                payload["error_type"] = record.exc_info[0].__name__
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)
