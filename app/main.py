import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, settings as default_settings
from .errors import HTTP_STATUS, AppError
from .logging_setup import setup_logging
from .routers import tasks
from .services.runners import TaskRunner, build_runner
from .services.task_service import TaskService
from .storage.repo import TaskStore, build_store

logger = logging.getLogger(__name__)


def _parse_origins(raw: str) -> list[str]:
    origins = [o.strip() for o in (raw or "").split(",") if o.strip()]
    return origins or ["*"]


def create_app(
    cfg: Optional[Settings] = None,
    store: Optional[TaskStore] = None,
    runner: Optional[TaskRunner] = None,
) -> FastAPI:
    cfg = cfg or default_settings
    store = store if store is not None else build_store(cfg)
    runner = runner or build_runner(cfg, store)

    app = FastAPI(title="Video Task Simulator API", version="1.0.0")
    app.state.settings = cfg
    app.state.service = TaskService(store, runner)

    origins = _parse_origins(cfg.cors_allowed_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials="*" not in origins,
    )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return JSONResponse(status_code=HTTP_STATUS.get(exc.code, 500), content={"error": exc.message})

    @app.get("/health")
    def health() -> dict:
        return {"ok": True}

    app.include_router(tasks.router)
    logger.info("app ready", extra={"payload": {"runner": runner.name, "store": type(store).__name__}})
    return app


setup_logging()
app = create_app()
