from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional

from strategist.backend.services import chat_session_service, completion_service
from strategist.backend.services.chat_session_service import CancellationToken, ChatTurn
from strategist.backend.services.prompts import (
	DEFAULT_SECTION_LABEL,
	build_section_chat_context,
	build_section_chat_system_prompt,
)
from strategist.backend.settings import load_provider_settings


_log = logging.getLogger(__name__)


def chat_input(section_label: str, section_content: str, turns: List[ChatTurn]) -> List[Dict[str, Any]]:
	items: List[Dict[str, Any]] = [
		{
			"role": "system",
			"content": [{"type": "input_text", "text": build_section_chat_system_prompt(section_label)}],
		},
		{
			"role": "user",
			"content": [{"type": "input_text", "text": build_section_chat_context(section_label, section_content)}],
		},
	]
	for turn in turns:
		block_type = "output_text" if turn.role == "assistant" else "input_text"
		items.append({"role": turn.role, "content": [{"type": block_type, "text": turn.content}]})
	return items


class SectionReplyStream:
	"""Incremental text of one chat answer, abortable through its cancellation token."""

	def __init__(
		self,
		*,
		stream: Any,
		token: CancellationToken,
		conversation_id: str,
		logger: Optional[logging.Logger | logging.LoggerAdapter] = None,
	):
		self._stream = stream
		self._token = token
		self._conversation_id = conversation_id
		self._log = logger or _log
		close = getattr(stream, "close", None)
		if callable(close):
			token.add_callback(close)

	@property
	def cancelled(self) -> bool:
		return self._token.cancelled

	def cancel(self) -> None:
		self._token.cancel()
		chat_session_service.end_stream(self._conversation_id, self._token)

	def __iter__(self) -> Iterator[str]:
		try:
			for event in self._stream:
				if self._token.cancelled:
					self._log.info("Section chat stream cancelled for conversation %s", self._conversation_id)
					return
				delta = completion_service.extract_stream_delta(event)
				if delta:
					yield delta
			self._log.debug("Section chat stream completed for conversation %s", self._conversation_id)
		except Exception:
			if not self._token.cancelled:
				raise
			self._log.info("Section chat stream aborted for conversation %s", self._conversation_id)
		finally:
			chat_session_service.end_stream(self._conversation_id, self._token)


def open_reply_stream(
	*,
	section_content: str,
	messages: Iterable[Any] | None,
	conversation_id: str,
	section_label: str | None = None,
	logger: Optional[logging.Logger | logging.LoggerAdapter] = None,
) -> SectionReplyStream:
	log = logger or _log
	content = section_content.strip() if isinstance(section_content, str) else ""
	if not content:
		raise ValueError("Section content is required for chat.")
	label = section_label.strip() if section_label and section_label.strip() else DEFAULT_SECTION_LABEL
	turns = chat_session_service.sanitize_turns(messages)

	settings = load_provider_settings()
	client = completion_service.client_for(settings)
	token = chat_session_service.begin_stream(conversation_id)
	log.info("Opening section chat stream: label=%r turns=%d", label, len(turns))
	try:
		stream = completion_service.open_stream(
			client=client,
			settings=settings,
			input_items=chat_input(label, content, turns),
			max_output_tokens=settings.chat_max_output_tokens,
			temperature=settings.chat_temperature,
		)
	except Exception as exc:
		chat_session_service.end_stream(conversation_id, token)
		log.error("Failed to initialize section chat stream", exc_info=True)
		raise completion_service.provider_error(exc) from exc
	return SectionReplyStream(stream=stream, token=token, conversation_id=conversation_id, logger=log)
