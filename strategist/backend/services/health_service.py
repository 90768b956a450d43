from __future__ import annotations

from typing import Dict, List

from strategist.backend import constants, settings
from strategist.backend.errors import ServiceError


def get_summary() -> Dict[str, object]:
	warnings: List[str] = []
	if not settings.api_key():
		warnings.append("OpenAI API key not configured. Set OPENAI_API_KEY.")
	try:
		reasoning_effort = settings.reasoning_effort()
	except ServiceError as exc:
		reasoning_effort = None
		warnings.append(exc.message)
	return {
		"provider": {
			"model": settings.model(),
			"ready": not warnings,
			"reasoning_effort": reasoning_effort,
			"warnings": warnings,
		},
		"limits": {
			"max_context_words": constants.MAX_CONTEXT_WORDS,
			"max_upload_bytes": constants.MAX_UPLOAD_BYTES,
			"pdf_direct_limit_bytes": constants.PDF_DIRECT_LIMIT_BYTES,
			"chat_history_turns": constants.CHAT_HISTORY_TURNS,
		},
	}
