from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple

from strategist.backend.errors import ServiceError
from strategist.backend.services.context_blob import ContextBlob
from strategist.backend.services.prompts import STRATEGY_SYSTEM_PROMPT, build_user_prompt
from strategist.backend.settings import ProviderSettings


_REASONING_REJECTION_KEYWORDS = ("reasoning", "effort", "thinking")
_TEXT_DELTA_EVENT = "response.output_text.delta"

_log = logging.getLogger(__name__)

Logger = logging.Logger | logging.LoggerAdapter


@dataclass(frozen=True)
class CompletionResult:
	text: str
	input_tokens: Optional[int] = None
	reasoning_used: bool = False


class TokenBaselineCache:
	"""Single-entry cache for the empty-payload token count.

	Reads and writes hold the lock. ``compute`` runs outside it.
	"""

	def __init__(self, *, clock: Callable[[], float] = time.monotonic, max_age_s: float | None = None):
		self._clock = clock
		self._max_age_s = max_age_s
		self._entry: Optional[Tuple[Hashable, int, float]] = None
		self._lock = Lock()

	def get(self, key: Hashable) -> Optional[int]:
		with self._lock:
			if self._entry is None:
				return None
			cached_key, value, stored_at = self._entry
		if cached_key != key:
			return None
		if self._max_age_s is not None and self._clock() - stored_at > self._max_age_s:
			return None
		return value

	def put(self, key: Hashable, value: int) -> None:
		with self._lock:
			self._entry = (key, value, self._clock())

	def get_or_compute(self, key: Hashable, compute: Callable[[], int]) -> int:
		cached = self.get(key)
		if cached is not None:
			return cached
		value = compute()
		self.put(key, value)
		return value

	def reset(self) -> None:
		with self._lock:
			self._entry = None


BASELINE_CACHE = TokenBaselineCache()


def _build_openai_client(*, api_key: str, timeout_s: float):
	try:
		from openai import OpenAI
	except ImportError as exc:
		raise ServiceError(
			status_code=503,
			code="provider_unconfigured",
			message="OpenAI SDK not installed. Add 'openai' dependency.",
		) from exc
	return OpenAI(api_key=api_key, timeout=timeout_s)


def client_for(settings: ProviderSettings):
	return _build_openai_client(api_key=settings.api_key, timeout_s=settings.timeout_s)


def _error_message(exc: Exception) -> str:
	message = getattr(exc, "message", None)
	if isinstance(message, str) and message.strip():
		return message.strip()
	return str(exc).strip()


def provider_error(exc: Exception) -> ServiceError:
	name = exc.__class__.__name__
	if isinstance(exc, TimeoutError) or name == "APITimeoutError":
		return ServiceError(
			status_code=504,
			code="provider_timeout",
			message="Model provider timed out.",
		)
	detail = _error_message(exc)
	return ServiceError(
		status_code=502,
		code="provider_error",
		message=f"Model provider request failed: {detail}" if detail else "Model provider request failed.",
	)


def is_reasoning_rejection(exc: Exception) -> bool:
	message = _error_message(exc).lower()
	return any(keyword in message for keyword in _REASONING_REJECTION_KEYWORDS)


def content_blocks(user_prompt: str, blob: ContextBlob) -> List[Dict[str, Any]]:
	"""User-turn content: PDF documents, then images, then the prompt text."""
	blocks: List[Dict[str, Any]] = []
	for document in blob.documents:
		blocks.append(
			{
				"type": "input_file",
				"filename": document.filename,
				"file_data": f"data:{document.mime_type or 'application/pdf'};base64,{document.data}",
			}
		)
	for image in blob.images:
		blocks.append(
			{
				"type": "input_image",
				"image_url": f"data:{image.mime_type};base64,{image.data}",
			}
		)
	blocks.append({"type": "input_text", "text": user_prompt})
	return blocks


def strategy_input(user_prompt: str, blob: ContextBlob) -> List[Dict[str, Any]]:
	return [
		{
			"role": "system",
			"content": [{"type": "input_text", "text": STRATEGY_SYSTEM_PROMPT}],
		},
		{
			"role": "user",
			"content": content_blocks(user_prompt, blob),
		},
	]


def extract_response_text(response: Any) -> str:
	output_text = getattr(response, "output_text", None)
	if isinstance(output_text, str) and output_text.strip():
		return output_text.strip()

	output = getattr(response, "output", None)
	if not isinstance(output, list):
		return ""
	parts: List[str] = []
	for item in output:
		content = getattr(item, "content", None)
		if content is None and isinstance(item, dict):
			content = item.get("content")
		if not isinstance(content, list):
			continue
		for chunk in content:
			text = getattr(chunk, "text", None)
			if text is None and isinstance(chunk, dict):
				text = chunk.get("text")
			if isinstance(text, str) and text.strip():
				parts.append(text.strip())
	return "\n".join(parts).strip()


def _usage_input_tokens(response: Any) -> Optional[int]:
	usage = getattr(response, "usage", None)
	value = getattr(usage, "input_tokens", None)
	if value is None and isinstance(usage, dict):
		value = usage.get("input_tokens")
	return value if isinstance(value, int) else None


def create_completion(
	*,
	client: Any,
	settings: ProviderSettings,
	input_items: List[Dict[str, Any]],
	max_output_tokens: int,
	logger: Optional[Logger] = None,
) -> CompletionResult:
	"""Run one completion, retrying once without reasoning if the endpoint rejects it.

	Every other provider exception is re-raised as-is.
	"""
	log = logger or _log
	request: Dict[str, Any] = {
		"model": settings.model,
		"input": input_items,
		"max_output_tokens": max_output_tokens,
	}
	if settings.reasoning_effort:
		request["reasoning"] = {"effort": settings.reasoning_effort}

	try:
		response = client.responses.create(**request)
	except Exception as exc:
		if "reasoning" not in request or not is_reasoning_rejection(exc):
			raise
		log.warning("Extended reasoning rejected by endpoint, retrying without it: %s", _error_message(exc))
		request.pop("reasoning")
		response = client.responses.create(**request)

	return CompletionResult(
		text=extract_response_text(response),
		input_tokens=_usage_input_tokens(response),
		reasoning_used="reasoning" in request,
	)


def count_tokens(*, client: Any, settings: ProviderSettings, input_items: List[Dict[str, Any]]) -> int:
	result = client.responses.input_tokens.count(model=settings.model, input=input_items)
	value = getattr(result, "input_tokens", None)
	if value is None and isinstance(result, dict):
		value = result.get("input_tokens")
	return int(value or 0)


def character_estimate(character_count: int) -> int:
	return max(1, math.ceil(character_count / 4))


def estimate_user_tokens(
	*,
	client: Any,
	settings: ProviderSettings,
	user_prompt: str,
	blob: ContextBlob,
	text_characters: int,
	cache: TokenBaselineCache = BASELINE_CACHE,
	logger: Optional[Logger] = None,
) -> int:
	"""Tokens attributable to user content: full request count minus the cached empty baseline."""
	log = logger or _log

	def _baseline() -> int:
		log.debug("Computing baseline token count for cache miss")
		empty = ContextBlob(text="")
		return count_tokens(
			client=client,
			settings=settings,
			input_items=strategy_input(build_user_prompt(""), empty),
		)

	baseline = cache.get_or_compute((settings.model, STRATEGY_SYSTEM_PROMPT), _baseline)
	full = count_tokens(client=client, settings=settings, input_items=strategy_input(user_prompt, blob))
	tokens = full - baseline
	if tokens <= 0:
		fallback = character_estimate(text_characters)
		log.warning(
			"Baseline subtraction yielded non-positive token count (full=%d baseline=%d), using estimate %d",
			full,
			baseline,
			fallback,
		)
		return fallback
	log.info("User content tokens computed: %d (full=%d baseline=%d)", tokens, full, baseline)
	return tokens


def open_stream(
	*,
	client: Any,
	settings: ProviderSettings,
	input_items: List[Dict[str, Any]],
	max_output_tokens: int,
	temperature: float | None = None,
):
	request: Dict[str, Any] = {
		"model": settings.model,
		"input": input_items,
		"max_output_tokens": max_output_tokens,
		"stream": True,
	}
	if temperature is not None:
		request["temperature"] = temperature
	return client.responses.create(**request)


def _coerce_event_dict(event: Any) -> Dict[str, Any]:
	if isinstance(event, dict):
		return event
	method = getattr(event, "model_dump", None)
	if callable(method):
		try:
			value = method()
		except TypeError:
			return {}
		if isinstance(value, dict):
			return value
	return {}


def extract_stream_delta(event: Any) -> str:
	event_type = getattr(event, "type", None)
	data = _coerce_event_dict(event)
	if event_type is None:
		event_type = data.get("type")
	if event_type is not None and event_type != _TEXT_DELTA_EVENT:
		return ""
	value = getattr(event, "delta", None)
	if isinstance(value, str):
		return value
	value = data.get("delta")
	return value if isinstance(value, str) else ""
