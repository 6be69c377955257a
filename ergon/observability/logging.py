from __future__ import annotations

import json
import logging
from typing import Any

from .context import snapshot


_RESERVED = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
    }
)


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        payload: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(snapshot())

        for k, v in record.__dict__.items():
            if k in _RESERVED or k.startswith("_"):
                continue
            try:
                json.dumps(v)
                payload[k] = v
            except TypeError:
                payload[k] = repr(v)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False)


_handler: logging.Handler | None = None


class KVLogger:
    """Logger adapter that turns keyword arguments into structured fields."""

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def debug(self, msg: str, *args: object, **kwargs: object) -> None:
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: object) -> None:
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: object) -> None:
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: object) -> None:
        self._log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args: object, **kwargs: object) -> None:
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, msg, *args, **kwargs)

    def _log(self, level: int, msg: str, *args: object, **kwargs: object) -> None:
        if not self._logger.isEnabledFor(level):
            return
        extra = kwargs.pop("extra", None)
        exc_info = kwargs.pop("exc_info", None)
        stack_info = bool(kwargs.pop("stack_info", False))
        if extra is None:
            extra_dict: dict[str, object] = {}
        elif isinstance(extra, dict):
            extra_dict = dict(extra)
        else:
            extra_dict = {"extra": repr(extra)}

        extra_dict.update(kwargs)
        self._logger.log(level, msg, *args, extra=extra_dict, exc_info=exc_info, stack_info=stack_info)


def configure_logging(level: str | int = "WARNING") -> None:
    """Install the JSON stderr handler on the root logger.

    Calling again only changes the level.
    """

    global _handler
    root = logging.getLogger()
    root.setLevel(level.upper() if isinstance(level, str) else level)
    if _handler is not None:
        return

    _handler = logging.StreamHandler()
    _handler.setFormatter(_JsonFormatter())
    root.handlers.clear()
    root.addHandler(_handler)


def get_logger(name: str = "ergon") -> KVLogger:
    return KVLogger(logging.getLogger(name))
