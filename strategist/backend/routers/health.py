from __future__ import annotations

from fastapi import APIRouter, Request

from strategist.backend.response import success_response
from strategist.backend.schemas import ApiEnvelope
from strategist.backend.services import health_service


router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("/summary", response_model=ApiEnvelope)
def get_summary(request: Request):
	data = health_service.get_summary()
	return success_response(
		request=request,
		data=data,
	)
