import os
from types import SimpleNamespace
from unittest import TestCase
from unittest.mock import patch

from fastapi.testclient import TestClient

from strategist.backend.main import app
from strategist.backend.services import chat_session_service, section_chat_service
from strategist.backend.services.chat_session_service import CancellationToken


_CLIENT_PATH = "strategist.backend.services.completion_service._build_openai_client"
_ENV = {
	"OPENAI_API_KEY": "test-key",
	"STRATEGY_REASONING_EFFORT": "",
	"SECTION_CHAT_TEMPERATURE": "",
}


def _delta(text: str):
	return {"type": "response.output_text.delta", "delta": text}


class _FakeStream:
	def __init__(self, events, error: Exception | None = None):
		self._events = list(events)
		self._error = error
		self.closed = False

	def __iter__(self):
		for event in self._events:
			yield event
		if self._error is not None:
			raise self._error

	def close(self) -> None:
		self.closed = True


class _FakeResponses:
	def __init__(self, stream: _FakeStream | None = None, error: Exception | None = None):
		self._stream = stream
		self._error = error
		self.calls = []

	def create(self, **kwargs):
		self.calls.append(kwargs)
		if self._error is not None:
			raise self._error
		return self._stream


class _FakeClient:
	def __init__(self, **kwargs):
		self.responses = _FakeResponses(**kwargs)


class SanitizeTurnsTests(TestCase):
	def test_drops_malformed_turns_and_keeps_last_twelve(self) -> None:
		messages = [{"role": "user", "content": f"q{index}"} for index in range(15)]
		messages.insert(3, {"role": "system", "content": "ignored"})
		messages.insert(5, {"role": "assistant", "content": "   "})
		messages.insert(7, {"role": "user", "content": None})
		messages.append(SimpleNamespace(role="assistant", content="  a-last  "))
		turns = chat_session_service.sanitize_turns(messages)
		self.assertEqual(len(turns), 12)
		self.assertEqual(turns[0].content, "q4")
		self.assertEqual(turns[-1].as_dict(), {"role": "assistant", "content": "a-last"})


class ActiveStreamRegistryTests(TestCase):
	def test_new_stream_supersedes_previous(self) -> None:
		closed = []
		first = chat_session_service.begin_stream("conv-supersede")
		first.add_callback(lambda: closed.append("first"))
		second = chat_session_service.begin_stream("conv-supersede")
		self.assertTrue(first.cancelled)
		self.assertFalse(second.cancelled)
		self.assertEqual(closed, ["first"])
		self.assertIs(chat_session_service.active_stream("conv-supersede"), second)

		chat_session_service.end_stream("conv-supersede", first)
		self.assertIs(chat_session_service.active_stream("conv-supersede"), second)
		chat_session_service.end_stream("conv-supersede", second)
		self.assertIsNone(chat_session_service.active_stream("conv-supersede"))

	def test_callback_added_after_cancel_runs_immediately(self) -> None:
		token = CancellationToken()
		token.cancel()
		calls = []
		token.add_callback(lambda: calls.append(1))
		self.assertEqual(calls, [1])

	def test_failing_callback_is_logged_not_raised(self) -> None:
		token = CancellationToken()

		def explode() -> None:
			raise RuntimeError("close failed")

		token.add_callback(explode)
		with self.assertLogs(chat_session_service.__name__, level="WARNING"):
			token.cancel()
		self.assertTrue(token.cancelled)


class SectionReplyStreamTests(TestCase):
	def test_iteration_stops_once_cancelled(self) -> None:
		stream = _FakeStream([_delta("one "), _delta("two "), _delta("three")])
		token = chat_session_service.begin_stream("conv-cancel")
		reply = section_chat_service.SectionReplyStream(stream=stream, token=token, conversation_id="conv-cancel")
		received = []
		for chunk in reply:
			received.append(chunk)
			reply.cancel()
		self.assertEqual(received, ["one "])
		self.assertTrue(stream.closed)
		self.assertIsNone(chat_session_service.active_stream("conv-cancel"))

	def test_non_text_events_are_skipped(self) -> None:
		stream = _FakeStream([{"type": "response.created"}, _delta("hi"), {"type": "response.completed"}])
		token = chat_session_service.begin_stream("conv-skip")
		reply = section_chat_service.SectionReplyStream(stream=stream, token=token, conversation_id="conv-skip")
		self.assertEqual(list(reply), ["hi"])
		self.assertIsNone(chat_session_service.active_stream("conv-skip"))

	def test_blank_section_content_rejected(self) -> None:
		with self.assertRaises(ValueError):
			section_chat_service.open_reply_stream(section_content="   ", messages=[], conversation_id="conv-blank")


class SectionChatApiTests(TestCase):
	def setUp(self) -> None:
		self.client = TestClient(app)

	def _post(self, fake: _FakeClient, payload, *, env=None, headers=None):
		with patch.dict(os.environ, env or _ENV, clear=False), patch(_CLIENT_PATH, return_value=fake):
			return self.client.post("/api/section-chat", json=payload, headers=headers or {})

	def test_streams_plain_text_deltas(self) -> None:
		stream = _FakeStream([_delta("The budget "), {"type": "response.in_progress"}, _delta("is $40k.")])
		fake = _FakeClient(stream=stream)
		response = self._post(
			fake,
			{
				"section_content": "Budget: $40k per quarter.",
				"section_label": "Proposal",
				"messages": [
					{"role": "user", "content": "Summarize."},
					{"role": "assistant", "content": "A $40k quarterly plan."},
					{"role": "user", "content": "What is the budget?"},
				],
			},
			headers={"X-Conversation-ID": "conv-api"},
		)
		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.headers["content-type"].startswith("text/plain"))
		self.assertEqual(response.headers["x-conversation-id"], "conv-api")
		self.assertEqual(response.text, "The budget is $40k.")
		self.assertTrue(stream.closed)
		self.assertIsNone(chat_session_service.active_stream("conv-api"))

		call = fake.responses.calls[0]
		self.assertTrue(call["stream"])
		self.assertEqual(call["max_output_tokens"], 600)
		self.assertNotIn("temperature", call)
		roles = [item["role"] for item in call["input"]]
		self.assertEqual(roles, ["system", "user", "user", "assistant", "user"])
		self.assertIn('"Proposal"', call["input"][0]["content"][0]["text"])
		self.assertIn("Budget: $40k per quarter.", call["input"][1]["content"][0]["text"])
		self.assertEqual(call["input"][3]["content"][0]["type"], "output_text")

	def test_configured_temperature_is_sent(self) -> None:
		fake = _FakeClient(stream=_FakeStream([_delta("ok")]))
		response = self._post(
			fake,
			{"section_content": "Ads."},
			env={**_ENV, "SECTION_CHAT_TEMPERATURE": "0.3"},
		)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(fake.responses.calls[0]["temperature"], 0.3)

	def test_missing_section_content_returns_422(self) -> None:
		fake = _FakeClient(stream=_FakeStream([]))
		response = self._post(fake, {"section_content": "   "})
		self.assertEqual(response.status_code, 422)
		self.assertEqual(response.json()["error"]["code"], "validation_error")
		self.assertEqual(fake.responses.calls, [])

	def test_missing_api_key_returns_503(self) -> None:
		fake = _FakeClient(stream=_FakeStream([]))
		response = self._post(fake, {"section_content": "Ads."}, env={**_ENV, "OPENAI_API_KEY": ""})
		self.assertEqual(response.status_code, 503)
		self.assertEqual(response.json()["error"]["code"], "provider_unconfigured")

	def test_stream_initialization_failure_returns_502(self) -> None:
		fake = _FakeClient(error=RuntimeError("stream refused"))
		response = self._post(fake, {"section_content": "Ads."}, headers={"X-Conversation-ID": "conv-fail"})
		self.assertEqual(response.status_code, 502)
		self.assertEqual(response.json()["error"]["code"], "provider_error")
		self.assertIsNone(chat_session_service.active_stream("conv-fail"))

	def test_mid_stream_failure_ends_response_with_partial_text(self) -> None:
		stream = _FakeStream([_delta("Partial")], error=RuntimeError("connection reset"))
		fake = _FakeClient(stream=stream)
		response = self._post(fake, {"section_content": "Ads."})
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.text, "Partial")
		self.assertTrue(stream.closed)
