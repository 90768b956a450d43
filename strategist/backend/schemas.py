from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ApiError(BaseModel):
	model_config = ConfigDict(extra="forbid")

	code: str
	message: str
	evidence: List[str] = Field(default_factory=list)


class ApiEnvelope(BaseModel):
	model_config = ConfigDict(extra="allow")

	ok: bool
	generated_at: str
	request_id: Optional[str] = None
	data: Optional[Dict[str, Any]] = None
	error: Optional[ApiError] = None


class ChatTurnIn(BaseModel):
	model_config = ConfigDict(extra="ignore")

	role: str = ""
	content: Any = None


class SectionChatRequest(BaseModel):
	model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

	section_content: str = Field(..., min_length=1, max_length=1_000_000, description="Generated section used as ground truth.")
	section_label: Optional[str] = Field(default=None, description="Display name of the section.")
	messages: List[ChatTurnIn] = Field(default_factory=list, description="Prior turns, oldest first.")


class TokenCountData(BaseModel):
	model_config = ConfigDict(extra="forbid")

	tokens: int
	hasFiles: bool
	fileCount: int
	error: Optional[str] = None


class StrategyOutcomeData(BaseModel):
	model_config = ConfigDict(extra="forbid")

	type: Literal["full_plan", "clarification_needed", "cannot_proceed", "error"]
	tokenCount: int = 0
	thinking: Optional[str] = None
	proposal: Optional[str] = None
	contentStrategy: Optional[str] = None
	sampleAds: Optional[str] = None
	questions: Optional[List[str]] = None
	message: Optional[str] = None
