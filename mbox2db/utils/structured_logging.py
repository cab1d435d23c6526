"""
Structured Logging Module
JSON log lines for long conversions run under a log collector
"""

import json
import logging
from typing import Any, Dict, Optional


# Keys whose values are message content; never written to a log
CONTENT_KEYS = ('body', 'password', 'token', 'secret')

REDACTED = "[REDACTED]"


def record_context(index: int, offset: int, **fields: Any) -> Dict[str, Dict[str, Any]]:
    """
    Build the `extra` mapping that ties a log line to one archive message.

    logger.warning("bad part", extra=record_context(raw.index, raw.offset, defect="base64"))
    """
    context = {"record_index": index, "byte_offset": offset}
    context.update(fields)
    return {"extra_fields": context}


class JSONFormatter(logging.Formatter):
    """
    Writes each log record as one JSON object per line.

    Fields attached through record_context() are merged at the top level,
    so `jq 'select(.defect == "base64") | .record_index'` lists the
    affected messages. Values of content keys are replaced by "[REDACTED]".
    """

    def __init__(self, datefmt: Optional[str] = None, max_value_length: int = 500):
        super().__init__(datefmt=datefmt)
        self.max_value_length = max_value_length

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "where": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        for key, value in getattr(record, "extra_fields", {}).items():
            payload[key] = self._field_value(key, value)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=False)

    def _field_value(self, key: str, value: Any) -> Any:
        lowered = key.lower()
        if any(marker in lowered for marker in CONTENT_KEYS):
            return REDACTED
        if isinstance(value, str) and len(value) > self.max_value_length:
            return value[:self.max_value_length] + "..."
        return value
