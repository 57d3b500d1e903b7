import logging
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, get_settings
from .logging_config import configure_logging
from .orchestrator import SessionOrchestrator
from .routes import get_orchestrator
from .routes import router as session_router


configure_logging()
logger = logging.getLogger(__name__)


def create_app(orchestrator: Optional[SessionOrchestrator] = None) -> FastAPI:
    """Build the local host app; the orchestrator is created lazily on first request when omitted."""
    settings = get_settings()
    app = FastAPI(title="Session Guide Backend", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.orchestrator = orchestrator
    app.include_router(session_router)

    @app.get("/healthz")
    def health(
        settings: Settings = Depends(get_settings),
        current: SessionOrchestrator = Depends(get_orchestrator),
    ) -> Dict[str, Any]:
        return {
            "status": "ok",
            "session_phase": current.state.session_phase,
            "tick_interval_seconds": settings.tick_interval_seconds,
        }

    logger.info("Session guide backend configured (data_dir=%s)", settings.resolved_data_dir())
    return app


app = create_app()


def serve() -> None:
    settings = get_settings()

    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    serve()
