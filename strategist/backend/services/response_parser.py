from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from strategist.backend import constants


PLACEHOLDER_QUESTION = (
	"Could you resupply the client information with more detail about goals, audience, budget and timeline?"
)
DEFAULT_REFUSAL_MESSAGE = "Cannot proceed without additional information."
PARSE_ERROR_MESSAGE = "Could not parse AI response. Please try again."
EMPTY_RESPONSE_MESSAGE = "The AI response was empty. Please try again."

_CLARIFICATION_TAG = "clarification_needed"
_FULL_PLAN_TAG = "full_plan"
_CANNOT_PROCEED_TAG = "cannot_proceed"
_OUTCOME_TAGS = (_CLARIFICATION_TAG, _FULL_PLAN_TAG, _CANNOT_PROCEED_TAG)
_PLAN_SECTIONS = ("proposal", "content_strategy", "sample_ads")

_ANY_TAG_RE = re.compile(r"</?[A-Za-z_][\w\-]*(?:\s[^<>]*)?/?>")
_BOLD_RE = re.compile(r"\*\*|__")
_LIST_MARKER_RE = re.compile(
	r"^\s*(?:[-*+•·–—>]+|\(?\d{1,3}[.):\]]|\(?[A-Za-z][.):\]]|Q\d{1,3}[.):]?)\s+",
	re.IGNORECASE,
)
_QUESTION_LABEL_RE = re.compile(r"^\s*question(?:\s*\d{1,3})?\s*[:.\-)]\s*", re.IGNORECASE)
_TRAILING_PUNCT_RE = re.compile(r"[\s.,;:!\-]+$")
_TRAILING_QMARKS_RE = re.compile(r"\?+$")

_log = logging.getLogger(__name__)


def _open_tag_re(tag: str) -> re.Pattern:
	return re.compile(rf"<{tag}(?:\s[^<>]*)?>", re.IGNORECASE)


def _close_tag_re(tag: str) -> re.Pattern:
	return re.compile(rf"</\s*{tag}\s*>", re.IGNORECASE)


def _block_re(tag: str) -> re.Pattern:
	return re.compile(rf"<{tag}(?:\s[^<>]*)?>(.*?)</\s*{tag}\s*>", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class FullPlan:
	proposal: str
	content_strategy: str
	sample_ads: str
	thinking: Optional[str] = None

	type = _FULL_PLAN_TAG

	def as_dict(self) -> Dict[str, Any]:
		return {
			"type": self.type,
			"thinking": self.thinking,
			"proposal": self.proposal,
			"contentStrategy": self.content_strategy,
			"sampleAds": self.sample_ads,
		}


@dataclass(frozen=True)
class ClarificationNeeded:
	questions: Tuple[str, ...] = field(default=(PLACEHOLDER_QUESTION,))
	thinking: Optional[str] = None

	type = _CLARIFICATION_TAG

	def __post_init__(self) -> None:
		if not self.questions:
			object.__setattr__(self, "questions", (PLACEHOLDER_QUESTION,))

	def as_dict(self) -> Dict[str, Any]:
		return {
			"type": self.type,
			"thinking": self.thinking,
			"questions": list(self.questions),
		}


@dataclass(frozen=True)
class CannotProceed:
	message: str
	thinking: Optional[str] = None

	type = _CANNOT_PROCEED_TAG

	def as_dict(self) -> Dict[str, Any]:
		return {
			"type": self.type,
			"thinking": self.thinking,
			"message": self.message,
		}


@dataclass(frozen=True)
class ParseError:
	message: str = PARSE_ERROR_MESSAGE

	type = "error"

	def as_dict(self) -> Dict[str, Any]:
		return {"type": self.type, "message": self.message}


ModelOutcome = Union[FullPlan, ClarificationNeeded, CannotProceed, ParseError]


def _region(text: str, tag: str, *, stop_tags: Tuple[str, ...] = ()) -> Optional[str]:
	"""Body of ``tag``: up to its close tag, else up to the first stop tag, else end of text."""
	opening = _open_tag_re(tag).search(text)
	if opening is None:
		return None
	start = opening.end()
	closing = _close_tag_re(tag).search(text, start)
	if closing is not None:
		return text[start : closing.start()]
	end = len(text)
	for stop in stop_tags:
		match = _open_tag_re(stop).search(text, start)
		if match is not None:
			end = min(end, match.start())
	return text[start:end]


def extract_thinking(text: str) -> Optional[str]:
	match = _block_re("thinking").search(text)
	if match is not None:
		return match.group(1).strip() or None
	unclosed = _region(text, "thinking", stop_tags=_OUTCOME_TAGS)
	if unclosed is None:
		return None
	_log.debug("Thinking block has no closing tag, sliced up to next outcome tag")
	return unclosed.strip() or None


def _strip_thinking(text: str) -> str:
	stripped = _block_re("thinking").sub("", text)
	opening = _open_tag_re("thinking").search(stripped)
	if opening is None:
		return stripped
	end = len(stripped)
	for tag in _OUTCOME_TAGS:
		match = _open_tag_re(tag).search(stripped, opening.end())
		if match is not None:
			end = min(end, match.start())
	return stripped[: opening.start()] + stripped[end:]


def _strip_markup(text: str) -> str:
	return _ANY_TAG_RE.sub("\n", text)


def _clean_fragment(line: str) -> str:
	cleaned = _strip_markup(line)
	cleaned = _BOLD_RE.sub("", cleaned)
	previous = None
	while previous != cleaned:
		previous = cleaned
		cleaned = _LIST_MARKER_RE.sub("", cleaned, count=1)
		cleaned = _QUESTION_LABEL_RE.sub("", cleaned, count=1)
	return " ".join(cleaned.split())


def normalize_question(line: str) -> str:
	"""Turn one candidate line into a single question ending with exactly one '?'.

	Returns an empty string when nothing question-like survives.
	"""
	cleaned = _clean_fragment(line)
	if not any(char.isalnum() for char in cleaned):
		return ""
	if "?" in cleaned:
		cleaned = cleaned[: cleaned.rfind("?") + 1]
		cleaned = _TRAILING_QMARKS_RE.sub("?", cleaned.rstrip())
		return cleaned
	cleaned = _TRAILING_PUNCT_RE.sub("", cleaned)
	if not cleaned:
		return ""
	return f"{cleaned}?"


def _tagged_questions(region: str) -> List[str]:
	questions: List[str] = []
	for match in _block_re("question").finditer(region):
		cleaned = _clean_fragment(match.group(1))
		if cleaned:
			questions.append(cleaned)
	return questions


def _looks_enumerated(line: str) -> bool:
	unbolded = _BOLD_RE.sub("", line)
	return bool(_LIST_MARKER_RE.match(unbolded) or _QUESTION_LABEL_RE.match(unbolded))


def _fallback_questions(region: str, *, tagged_present: bool) -> List[str]:
	if tagged_present:
		region = _block_re("question").sub("\n", region)
	lines = [line.strip() for line in _strip_markup(region).splitlines() if line.strip()]
	# Once any line carries a '?', unmarked prose lines stop counting as questions.
	only_explicit = tagged_present or any("?" in line for line in lines)
	questions: List[str] = []
	for line in lines:
		if only_explicit and "?" not in line and not _looks_enumerated(line):
			continue
		if line.endswith(":"):
			continue
		normalized = normalize_question(line)
		if normalized:
			questions.append(normalized)
	return questions


def _dedupe_key(question: str) -> str:
	return _TRAILING_PUNCT_RE.sub("", question.rstrip("?")).strip().lower()


def _merge_questions(*groups: List[str], limit: int) -> List[str]:
	seen: set[str] = set()
	merged: List[str] = []
	for group in groups:
		for question in group:
			key = _dedupe_key(question)
			if not key or key in seen:
				continue
			seen.add(key)
			merged.append(question)
			if len(merged) >= limit:
				return merged
	return merged


def _parse_clarification(text: str, thinking: Optional[str]) -> ClarificationNeeded:
	body = _strip_thinking(text)
	clarification = _region(body, _CLARIFICATION_TAG, stop_tags=(_FULL_PLAN_TAG, _CANNOT_PROCEED_TAG))
	questions_block = _region(clarification if clarification is not None else body, "questions")
	scan_region = clarification if clarification is not None else body
	tagged = _tagged_questions(scan_region)

	if questions_block is not None:
		fallback_region = questions_block
	elif clarification is not None:
		fallback_region = clarification
	else:
		fallback_region = body
	derived = _fallback_questions(fallback_region, tagged_present=bool(tagged))
	if not tagged:
		_log.debug("No <question> tags found, derived %d question(s) from lines", len(derived))

	questions = _merge_questions(tagged, derived, limit=constants.MAX_CLARIFICATION_QUESTIONS)
	if not questions:
		_log.warning("Clarification reply carried no recoverable questions, using placeholder")
		questions = [PLACEHOLDER_QUESTION]
	return ClarificationNeeded(questions=tuple(questions), thinking=thinking)


def _plan_section(text: str, index: int) -> str:
	tag = _PLAN_SECTIONS[index]
	strict = _block_re(tag).search(text)
	if strict is not None:
		return strict.group(1).strip()
	opening = _open_tag_re(tag).search(text)
	if opening is None:
		return ""
	start = opening.end()
	end = len(text)
	for later in _PLAN_SECTIONS[index + 1 :]:
		match = _open_tag_re(later).search(text, start)
		if match is not None:
			end = min(end, match.start())
	outer_close = _close_tag_re(_FULL_PLAN_TAG).search(text, start)
	if outer_close is not None:
		end = min(end, outer_close.start())
	_log.debug("<%s> has no closing tag, sliced to next boundary", tag)
	return text[start:end].strip()


def _parse_full_plan(text: str, thinking: Optional[str]) -> FullPlan:
	body = _region(text, _FULL_PLAN_TAG, stop_tags=(_CLARIFICATION_TAG, _CANNOT_PROCEED_TAG))
	if body is None:
		body = text
	proposal, content_strategy, sample_ads = (
		_plan_section(body, index) for index in range(len(_PLAN_SECTIONS))
	)
	return FullPlan(
		proposal=proposal,
		content_strategy=content_strategy,
		sample_ads=sample_ads,
		thinking=thinking,
	)


def _parse_cannot_proceed(text: str, thinking: Optional[str]) -> CannotProceed:
	region = _region(text, _CANNOT_PROCEED_TAG) or ""
	strict = _block_re("message").search(region)
	if strict is not None:
		message = strict.group(1).strip()
	else:
		message = (_region(region, "message") or "").strip()
	if not message:
		_log.debug("Cannot-proceed reply has no <message>, using generic refusal")
		message = DEFAULT_REFUSAL_MESSAGE
	return CannotProceed(message=message, thinking=thinking)


def detect_outcome_tag(text: str) -> Optional[str]:
	for tag in _OUTCOME_TAGS:
		if _open_tag_re(tag).search(text):
			return tag
	return None


def parse_model_response(raw: Any) -> ModelOutcome:
	"""Classify a model reply into exactly one outcome. Never raises."""
	text = raw if isinstance(raw, str) else ""
	if not text.strip():
		return ParseError(message=EMPTY_RESPONSE_MESSAGE)

	thinking = extract_thinking(text)
	tag = detect_outcome_tag(_strip_thinking(text))
	if tag == _CLARIFICATION_TAG:
		return _parse_clarification(text, thinking)
	if tag == _FULL_PLAN_TAG:
		return _parse_full_plan(_strip_thinking(text), thinking)
	if tag == _CANNOT_PROCEED_TAG:
		return _parse_cannot_proceed(_strip_thinking(text), thinking)

	_log.warning("Model reply contained none of the outcome tags (%d chars)", len(text))
	return ParseError(message=PARSE_ERROR_MESSAGE)
