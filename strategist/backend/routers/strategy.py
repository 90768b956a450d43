from __future__ import annotations

from typing import List

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile

from strategist.backend.errors import ServiceError
from strategist.backend.log import request_logger
from strategist.backend.response import request_id, success_response
from strategist.backend.schemas import ApiEnvelope, StrategyOutcomeData, TokenCountData
from strategist.backend.services import strategy_service
from strategist.backend.services.upload_staging import staged_uploads


router = APIRouter(prefix="/api/strategy", tags=["strategy"])


def _http_error(exc: ServiceError) -> HTTPException:
	return HTTPException(
		status_code=exc.status_code,
		detail={"code": exc.code, "message": exc.message},
	)


@router.post("", response_model=ApiEnvelope)
def generate(
	request: Request,
	text: List[str] = Form(default=[]),
	files: List[UploadFile] = File(default=[]),
):
	log = request_logger(__name__, request_id(request))
	try:
		with staged_uploads(files, log) as uploads:
			outcome = strategy_service.generate_strategy(
				text_input=text,
				uploads=uploads,
				logger=log,
			)
	except ServiceError as exc:
		raise _http_error(exc) from exc

	data = StrategyOutcomeData.model_validate(outcome).model_dump(exclude_none=True)
	return success_response(request=request, data=data)


@router.post("/token-count", response_model=ApiEnvelope)
def token_count(
	request: Request,
	text: List[str] = Form(default=[]),
	files: List[UploadFile] = File(default=[]),
):
	log = request_logger(__name__, request_id(request))
	try:
		with staged_uploads(files, log) as uploads:
			counted = strategy_service.count_input_tokens(
				text_input=text,
				uploads=uploads,
				logger=log,
			)
	except ServiceError as exc:
		raise _http_error(exc) from exc

	data = TokenCountData.model_validate(counted).model_dump(exclude_none=True)
	return success_response(request=request, data=data)
