from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, List

from strategist.backend import constants
from strategist.backend.services.file_extraction import ExtractedFile, sanitize_label
from strategist.backend.services.text_accounting import count_words, normalize_text_input, split_words


PASTED_TEXT_LABEL = "PASTED_TEXT"
TRUNCATED_MARKER = "[TRUNCATED]"


@dataclass
class ContextBlob:
	text: str
	images: List[ExtractedFile] = field(default_factory=list)
	documents: List[ExtractedFile] = field(default_factory=list)
	word_count: int = 0
	truncated: bool = False


def truncation_warning(max_words: int) -> str:
	return (
		f"[WARNING: INPUT TRUNCATED. The provided data exceeded the {max_words:,}-word limit "
		"and was cut short. Analysis may be incomplete.]\n"
	)


def delimited_block(label: str, content: str) -> str:
	return f"---START_{label}---\n{content}\n---END_{label}---\n\n"


def error_block(label: str, message: str) -> str:
	return f"---ERROR_PARSING_{label}---\nError: {message}\n\n"


def _first_words(text: str, limit: int) -> str:
	return " ".join(split_words(text)[:limit])


def build_context_blob(
	text_input: Any,
	extracted: Iterable[ExtractedFile] = (),
	*,
	max_words: int | None = None,
) -> ContextBlob:
	"""Merge pasted text and extracted files into the delimited client-data document.

	Pasted text is budgeted first, then text files in upload order. The first
	file that would push the running total past ``max_words`` is cut to the
	remaining budget, marked, followed by a warning line, and every later file
	is dropped. Error entries are rendered but never counted. Images and PDF
	documents never enter the text and come back as side lists.
	"""
	limit = constants.MAX_CONTEXT_WORDS if max_words is None else max_words
	files = list(extracted)
	parts: List[str] = []
	word_count = 0
	truncated = False

	pasted = normalize_text_input(text_input)
	if pasted.strip():
		pasted_words = count_words(pasted)
		if pasted_words > limit:
			parts.append(delimited_block(PASTED_TEXT_LABEL, f"{_first_words(pasted, limit)}\n{TRUNCATED_MARKER}"))
			parts.append(truncation_warning(limit))
			word_count = limit
			truncated = True
		else:
			parts.append(delimited_block(PASTED_TEXT_LABEL, pasted))
			word_count = pasted_words

	if not truncated:
		for item in files:
			if item.kind == "text":
				content = item.content or ""
				label = sanitize_label(item.filename)
				file_words = count_words(content)
				if word_count + file_words > limit:
					remaining = max(limit - word_count, 0)
					parts.append(delimited_block(label, f"{_first_words(content, remaining)}\n{TRUNCATED_MARKER}"))
					parts.append(truncation_warning(limit))
					word_count += remaining
					truncated = True
					break
				parts.append(delimited_block(label, content))
				word_count += file_words
			elif item.kind == "error":
				parts.append(error_block(sanitize_label(item.filename), item.error or "Unknown error"))

	return ContextBlob(
		text="".join(parts),
		images=[item for item in files if item.kind == "image"],
		documents=[item for item in files if item.kind == "document"],
		word_count=word_count,
		truncated=truncated,
	)
