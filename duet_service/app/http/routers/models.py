from typing import List, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

from duet_service.core.logging import logger
from duet_service.protocol.frames import utc_timestamp

router = APIRouter(prefix="/models", tags=["models"])


class ModelsResponse(BaseModel):
    loaded: List[str]
    available: List[str]
    timestamp: str
    error: Optional[str] = None


@router.get("", response_model=ModelsResponse, response_model_exclude_none=True)
async def list_models(request: Request):
    """List loaded and available models."""
    gen_svc = request.app.state.gen_svc
    try:
        models = await gen_svc.list_models()
    except Exception as e:
        logger.exception(f"Failed to fetch models: {e}")
        return ModelsResponse(loaded=[], available=[], timestamp=utc_timestamp(), error="Failed to fetch models")
    return ModelsResponse(
        loaded=models.get("loaded", []),
        available=models.get("available", []),
        timestamp=utc_timestamp(),
    )
