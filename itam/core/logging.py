from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Mapping

from .context import actor_ctx_var, operation_ctx_var


class JsonLogFormatter(logging.Formatter):
    """Render log records as JSON for easier ingestion."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        operation = operation_ctx_var.get()
        if operation:
            payload["operation"] = operation
        actor_id = actor_ctx_var.get()
        if actor_id is not None:
            payload["actor_id"] = actor_id
        extra = getattr(record, "extra_data", None)
        if isinstance(extra, Mapping):
            payload.update(extra)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), default=str)


def configure_logging(level: str | None = None, json_output: bool | None = None) -> None:
    from ..settings import get_settings

    settings = get_settings()
    handler = logging.StreamHandler()
    if json_output if json_output is not None else settings.LOG_JSON:
        handler.setFormatter(JsonLogFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logging.root.handlers = [handler]
    logging.root.setLevel((level or settings.LOG_LEVEL).upper())
