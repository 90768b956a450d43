from __future__ import annotations

import uuid
from collections.abc import AsyncIterator

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from starlette.concurrency import iterate_in_threadpool, run_in_threadpool

from strategist.backend.errors import ServiceError
from strategist.backend.log import request_logger
from strategist.backend.response import request_id
from strategist.backend.schemas import SectionChatRequest
from strategist.backend.services import section_chat_service


router = APIRouter(prefix="/api/section-chat", tags=["section-chat"])


def _conversation_id_from_request(request: Request) -> str:
	conversation_id = request.headers.get("X-Conversation-ID", "").strip()
	return conversation_id or uuid.uuid4().hex


@router.post("")
async def section_chat(request: Request, payload: SectionChatRequest):
	log = request_logger(__name__, request_id(request))
	conversation_id = _conversation_id_from_request(request)
	try:
		reply = await run_in_threadpool(
			section_chat_service.open_reply_stream,
			section_content=payload.section_content,
			section_label=payload.section_label,
			messages=payload.messages,
			conversation_id=conversation_id,
			logger=log,
		)
	except ServiceError as exc:
		raise HTTPException(
			status_code=exc.status_code,
			detail={"code": exc.code, "message": exc.message},
		) from exc
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from exc

	async def generate() -> AsyncIterator[str]:
		try:
			async for chunk in iterate_in_threadpool(iter(reply)):
				if await request.is_disconnected():
					log.info("Client closed connection, aborting stream")
					break
				yield chunk
		except Exception:
			log.error("Section chat stream error", exc_info=True)
		finally:
			reply.cancel()

	return StreamingResponse(
		generate(),
		media_type="text/plain; charset=utf-8",
		headers={
			"Cache-Control": "no-cache, no-transform",
			"X-Accel-Buffering": "no",
			"X-Conversation-ID": conversation_id,
		},
	)
