from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Event, Lock
from typing import Any, Callable, Dict, Iterable, List

from strategist.backend import constants


_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatTurn:
	role: str
	content: str

	def as_dict(self) -> Dict[str, str]:
		return {"role": self.role, "content": self.content}


class CancellationToken:
	def __init__(self) -> None:
		self._event = Event()
		self._lock = Lock()
		self._callbacks: List[Callable[[], None]] = []

	@property
	def cancelled(self) -> bool:
		return self._event.is_set()

	def add_callback(self, callback: Callable[[], None]) -> None:
		with self._lock:
			if not self._event.is_set():
				self._callbacks.append(callback)
				return
		callback()

	def cancel(self) -> None:
		with self._lock:
			if self._event.is_set():
				return
			self._event.set()
			callbacks = list(self._callbacks)
			self._callbacks.clear()
		for callback in callbacks:
			try:
				callback()
			except Exception:
				_log.warning("Cancellation callback failed", exc_info=True)


_ACTIVE: Dict[str, CancellationToken] = {}
_LOCK = Lock()


def _turn_field(turn: Any, name: str) -> Any:
	if isinstance(turn, dict):
		return turn.get(name)
	return getattr(turn, name, None)


def sanitize_turns(messages: Iterable[Any] | None, limit: int = constants.CHAT_HISTORY_TURNS) -> List[ChatTurn]:
	"""Keep well-formed user/assistant turns, trimmed, most recent ``limit`` only."""
	turns: List[ChatTurn] = []
	for message in messages or []:
		role = _turn_field(message, "role")
		content = _turn_field(message, "content")
		if role not in {"user", "assistant"} or not isinstance(content, str):
			continue
		cleaned = content.strip()
		if not cleaned:
			continue
		turns.append(ChatTurn(role=role, content=cleaned))
	return turns[-limit:] if limit > 0 else []


def begin_stream(conversation_id: str) -> CancellationToken:
	"""Register a new stream, cancelling any stream still active for the conversation."""
	token = CancellationToken()
	with _LOCK:
		previous = _ACTIVE.get(conversation_id)
		_ACTIVE[conversation_id] = token
	if previous is not None:
		_log.info("Superseding active stream for conversation %s", conversation_id)
		previous.cancel()
	return token


def end_stream(conversation_id: str, token: CancellationToken) -> None:
	with _LOCK:
		if _ACTIVE.get(conversation_id) is token:
			_ACTIVE.pop(conversation_id, None)


def active_stream(conversation_id: str) -> CancellationToken | None:
	with _LOCK:
		return _ACTIVE.get(conversation_id)
