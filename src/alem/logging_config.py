from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_MAX_BYTES = 2_000_000
LOG_BACKUPS = 5
CHANNELS = {"alem.sales": "sales.log", "alem.credit": "credit.log"}


def _fields(message: str) -> dict[str, str]:
    # "sale_created sale_id=7 total=4500" -> {"sale_id": "7", "total": "4500"}
    pairs = (token.split("=", 1) for token in message.split()[1:] if "=" in token)
    return {k: v for k, v in pairs if k}


class JsonFormatter(logging.Formatter):
    """One JSON object per line; the leading word of a message is its event name."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        payload = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "event": message.split(" ", 1)[0] if message else "",
            "message": message,
        }
        fields = _fields(message)
        if fields:
            payload["fields"] = fields
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _rotating_file(path: Path, level: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8")
    handler.setFormatter(JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    handler.setLevel(level)
    return handler


def _attach(logger: logging.Logger, path: Path, level: int) -> None:
    target = str(path.resolve())
    if any(getattr(h, "baseFilename", None) == target for h in logger.handlers):
        return
    logger.addHandler(_rotating_file(path, level))


def setup_logging(logs_dir: Path, level: int = logging.INFO) -> None:
    logs_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        _attach(root, logs_dir / "app.log", logging.INFO)
        _attach(root, logs_dir / "errors.log", logging.ERROR)

    for name, filename in CHANNELS.items():
        channel = logging.getLogger(name)
        channel.setLevel(logging.INFO)
        _attach(channel, logs_dir / filename, logging.INFO)
