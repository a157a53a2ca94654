from typing import List

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from duet_service.core.logging import logger
from duet_service.core.types import Role

router = APIRouter(prefix="/chat", tags=["chat"])

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


class ChatHistoryItem(BaseModel):
    role: Role
    content: str


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field("", description="The new user message.")
    model: str = Field("", description="Identifier of the model to generate with.")
    chat_history: List[ChatHistoryItem] = Field(default_factory=list, alias="chatHistory")


@router.post("")
async def chat(request: Request, body: ChatRequest):
    if not body.message:
        return JSONResponse(status_code=400, content={"error": "Message is required"})

    logger.info(f"/chat called: model={body.model}, history_len={len(body.chat_history)}")
    gen_service = request.app.state.gen_svc
    history = [item.model_dump(mode="json") for item in body.chat_history]

    async def event_generator():
        try:
            async for chunk in gen_service.stream(
                message=body.message,
                model_name=body.model,
                history=history,
            ):
                # Check disconnect BEFORE yielding
                if await request.is_disconnected():
                    logger.info(f"Client disconnected: model={body.model}")
                    break
                yield chunk
        except Exception as e:
            logger.exception(f"Error in /chat event_generator: {e}")
            raise

    return StreamingResponse(event_generator(), media_type="text/event-stream", headers=SSE_HEADERS)
