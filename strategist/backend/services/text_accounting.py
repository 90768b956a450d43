from __future__ import annotations

from typing import Any, List


def normalize_text_input(value: Any) -> str:
	"""Coerce a form value into plain text.

	Strings pass through untouched. Repeated form fields arrive as a list, in
	which case the first string element wins. Anything else is treated as no
	input at all.
	"""
	if isinstance(value, str):
		return value
	if isinstance(value, (list, tuple)):
		for item in value:
			if isinstance(item, str):
				return item
	return ""


def split_words(text: str) -> List[str]:
	return text.split() if isinstance(text, str) else []


def count_words(text: Any) -> int:
	"""Single word-counting rule shared by validation, display and budgeting."""
	return len(split_words(normalize_text_input(text)))
