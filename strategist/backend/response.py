from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Request

from strategist.backend.schemas import ApiEnvelope, ApiError


def now_iso() -> str:
	return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def request_id(request: Optional[Request]) -> Optional[str]:
	if request is None:
		return None
	return getattr(request.state, "request_id", None)


def _envelope(envelope: ApiEnvelope, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
	# Only the envelope's own None fields are dropped. ``data`` passes through untouched.
	payload = envelope.model_dump(exclude={"data"}, exclude_none=True)
	if data is not None:
		payload["data"] = data
	return payload


def success_response(
	*,
	request: Optional[Request] = None,
	data: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
	envelope = ApiEnvelope(ok=True, generated_at=now_iso(), request_id=request_id(request) or None)
	return _envelope(envelope, data)


def error_response(
	*,
	code: str,
	message: str,
	request: Optional[Request] = None,
	evidence: Optional[List[str]] = None,
) -> Dict[str, Any]:
	envelope = ApiEnvelope(
		ok=False,
		generated_at=now_iso(),
		request_id=request_id(request) or None,
		error=ApiError(code=code, message=message, evidence=list(evidence or [])),
	)
	return _envelope(envelope)
