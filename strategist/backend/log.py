from __future__ import annotations

import logging
import sys
from typing import Any, MutableMapping, Tuple

from strategist.backend import constants, settings


_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_ROOT_LOGGER = "strategist"


def configure_logging() -> logging.Logger:
	logger = logging.getLogger(_ROOT_LOGGER)
	level = getattr(logging, settings.log_level(), logging.INFO)
	logger.setLevel(level)
	if not logger.handlers:
		handler = logging.StreamHandler(sys.stdout)
		handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
		logger.addHandler(handler)
	return logger


class RequestLogger(logging.LoggerAdapter):
	def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
		request_id = (self.extra or {}).get("request_id")
		if request_id:
			return f"[{request_id}] {msg}", kwargs
		return msg, kwargs


def request_logger(name: str, request_id: str | None) -> RequestLogger:
	return RequestLogger(logging.getLogger(name), {"request_id": request_id or ""})


def preview(value: Any, length: int = constants.LOG_PREVIEW_CHARS) -> str:
	if not isinstance(value, str):
		return "[non-string payload]"
	return value if len(value) <= length else f"{value[:length]}..."
