from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from strategist.backend.errors import ServiceError
from strategist.backend.log import preview
from strategist.backend.services import completion_service
from strategist.backend.services.context_blob import ContextBlob, build_context_blob
from strategist.backend.services.file_extraction import ExtractedFile, UploadedFile, extract_files
from strategist.backend.services.prompts import build_user_prompt
from strategist.backend.services.response_parser import parse_model_response
from strategist.backend.services.text_accounting import normalize_text_input
from strategist.backend.settings import load_provider_settings


_log = logging.getLogger(__name__)

Logger = logging.Logger | logging.LoggerAdapter


def _text_characters(text_input: str, extracted: List[ExtractedFile]) -> int:
	return len(text_input) + sum(
		len(item.content) for item in extracted if item.kind == "text" and isinstance(item.content, str)
	)


def _summarize_uploads(uploads: List[UploadedFile]) -> List[Dict[str, Any]]:
	return [
		{"index": index, "filename": upload.filename, "size": upload.size, "content_type": upload.content_type}
		for index, upload in enumerate(uploads)
	]


def _assemble(text_input: str, uploads: List[UploadedFile], log: Logger) -> tuple[List[ExtractedFile], ContextBlob]:
	log.debug("Uploaded files: %s", _summarize_uploads(uploads))
	extracted = extract_files(uploads, log)
	blob = build_context_blob(text_input, extracted)
	log.info(
		"Context blob built: %d chars, %d words, truncated=%s, images=%d, documents=%d",
		len(blob.text),
		blob.word_count,
		blob.truncated,
		len(blob.images),
		len(blob.documents),
	)
	return extracted, blob


def generate_strategy(
	*,
	text_input: Any,
	uploads: List[UploadedFile],
	task_brief: str | None = None,
	logger: Optional[Logger] = None,
) -> Dict[str, Any]:
	"""Run one strategy request end to end and return the outcome JSON."""
	log = logger or _log
	text = normalize_text_input(text_input)
	log.info("Strategy request: text=%d chars (%s), files=%d", len(text), preview(text), len(uploads))

	settings = load_provider_settings()
	extracted, blob = _assemble(text, uploads, log)
	user_prompt = build_user_prompt(blob.text, task_brief)

	try:
		client = completion_service.client_for(settings)
		result = completion_service.create_completion(
			client=client,
			settings=settings,
			input_items=completion_service.strategy_input(user_prompt, blob),
			max_output_tokens=settings.strategy_max_output_tokens,
			logger=log,
		)
	except ServiceError:
		raise
	except Exception as exc:
		log.error("Completion request failed", exc_info=True)
		raise completion_service.provider_error(exc) from exc

	outcome = parse_model_response(result.text)
	log.info("Model reply parsed as %s (%d chars)", outcome.type, len(result.text))
	payload = outcome.as_dict()
	if result.input_tokens is not None:
		payload["tokenCount"] = result.input_tokens
	else:
		payload["tokenCount"] = completion_service.character_estimate(_text_characters(text, extracted))
	return payload


def count_input_tokens(
	*,
	text_input: Any,
	uploads: List[UploadedFile],
	logger: Optional[Logger] = None,
) -> Dict[str, Any]:
	"""Estimate user-content tokens for the UI budget display."""
	log = logger or _log
	text = normalize_text_input(text_input)
	summary: Dict[str, Any] = {"hasFiles": bool(uploads), "fileCount": len(uploads)}
	if not text.strip() and not uploads:
		log.info("Token count request empty, returning 0")
		return {"tokens": 0, **summary}

	settings = load_provider_settings()
	try:
		extracted, blob = _assemble(text, uploads, log)
		tokens = completion_service.estimate_user_tokens(
			client=completion_service.client_for(settings),
			settings=settings,
			user_prompt=build_user_prompt(blob.text),
			blob=blob,
			text_characters=_text_characters(text, extracted),
			logger=log,
		)
	except Exception:
		log.error("Token counting error", exc_info=True)
		return {"tokens": 0, "error": "Token counting failed", **summary}
	return {"tokens": tokens, **summary}
