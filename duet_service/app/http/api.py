from typing import Optional

from fastapi import APIRouter, FastAPI

from duet_service.app.http.routers.chat import router as chat_router
from duet_service.app.http.routers.health import router as health_router
from duet_service.app.http.routers.models import router as models_router
from duet_service.protocol.service.generation_service import GenerationService


def create_app(gen_service: Optional[GenerationService] = None) -> FastAPI:
    """Create and configure the FastAPI application with DI"""
    if gen_service is None:
        from duet_service.core.factory import ServiceFactory

        gen_service = ServiceFactory().get_generation_service()

    app = FastAPI(title="Duet", description="Streams thinking and response channels of a chat model")
    # store service on app state
    app.state.gen_svc = gen_service

    v1_router = APIRouter(prefix="/api/v1")
    v1_router.include_router(chat_router)
    v1_router.include_router(health_router)
    v1_router.include_router(models_router)

    app.include_router(v1_router)
    return app
