from __future__ import annotations

import os
from dataclasses import dataclass

from strategist.backend.errors import ServiceError


_DEFAULT_MODEL = "gpt-5-mini"
_DEFAULT_TIMEOUT_S = 120.0
_DEFAULT_STRATEGY_MAX_OUTPUT_TOKENS = 8192
_DEFAULT_CHAT_MAX_OUTPUT_TOKENS = 600
_REASONING_EFFORTS = ("minimal", "low", "medium", "high")


@dataclass(frozen=True)
class ProviderSettings:
	api_key: str
	model: str
	timeout_s: float
	reasoning_effort: str | None
	strategy_max_output_tokens: int
	chat_max_output_tokens: int
	chat_temperature: float | None


def _unconfigured(message: str) -> ServiceError:
	return ServiceError(status_code=503, code="provider_unconfigured", message=message)


def _float_env(name: str, default: float) -> float:
	raw = os.getenv(name, "").strip()
	if not raw:
		return default
	try:
		return float(raw)
	except ValueError as exc:
		raise _unconfigured(f"{name} must be numeric.") from exc


def _int_env(name: str, default: int, minimum: int = 1) -> int:
	raw = os.getenv(name, "").strip()
	if not raw:
		return default
	try:
		value = int(raw)
	except ValueError as exc:
		raise _unconfigured(f"{name} must be an integer.") from exc
	if value < minimum:
		raise _unconfigured(f"{name} must be at least {minimum}.")
	return value


def api_key() -> str:
	return os.getenv("OPENAI_API_KEY", "").strip()


def require_api_key() -> str:
	key = api_key()
	if not key:
		raise _unconfigured("OpenAI API key not configured. Set OPENAI_API_KEY.")
	return key


def model() -> str:
	return os.getenv("STRATEGY_OPENAI_MODEL", _DEFAULT_MODEL).strip() or _DEFAULT_MODEL


def timeout_s() -> float:
	value = _float_env("STRATEGY_OPENAI_TIMEOUT_S", _DEFAULT_TIMEOUT_S)
	if value <= 0:
		raise _unconfigured("STRATEGY_OPENAI_TIMEOUT_S must be greater than zero.")
	return value


def reasoning_effort() -> str | None:
	raw = os.getenv("STRATEGY_REASONING_EFFORT", "").strip().lower()
	if not raw:
		return None
	if raw not in _REASONING_EFFORTS:
		raise _unconfigured(
			"STRATEGY_REASONING_EFFORT must be one of: " + ", ".join(_REASONING_EFFORTS) + "."
		)
	return raw


def chat_temperature() -> float | None:
	if not os.getenv("SECTION_CHAT_TEMPERATURE", "").strip():
		return None
	value = _float_env("SECTION_CHAT_TEMPERATURE", 0.0)
	if not 0.0 <= value <= 2.0:
		raise _unconfigured("SECTION_CHAT_TEMPERATURE must be between 0 and 2.")
	return value


def log_level() -> str:
	return os.getenv("STRATEGY_LOG_LEVEL", "INFO").strip().upper() or "INFO"


def load_provider_settings() -> ProviderSettings:
	return ProviderSettings(
		api_key=require_api_key(),
		model=model(),
		timeout_s=timeout_s(),
		reasoning_effort=reasoning_effort(),
		strategy_max_output_tokens=_int_env(
			"STRATEGY_MAX_OUTPUT_TOKENS", _DEFAULT_STRATEGY_MAX_OUTPUT_TOKENS
		),
		chat_max_output_tokens=_int_env(
			"SECTION_CHAT_MAX_OUTPUT_TOKENS", _DEFAULT_CHAT_MAX_OUTPUT_TOKENS
		),
		chat_temperature=chat_temperature(),
	)
