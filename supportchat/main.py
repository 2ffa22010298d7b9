# supportchat/main.py
import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from supportchat import settings
from supportchat.storage.db import Base, SessionLocal
from supportchat.storage import models  # noqa: F401  (registers tables on Base)

# Realtime
from supportchat.realtime.gateway import ChatGateway
from supportchat.realtime.presence import PresenceTracker
from supportchat.realtime.rooms import RoomRegistry

# Retention
from supportchat.services.cleanup import MessageCleanupService

# Routers
from supportchat.routers.admin import router as admin_router
from supportchat.routers.chat import router as chat_router
from supportchat.routers.realtime import router as realtime_router

from supportchat.util.logger import get_logger


# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logging.basicConfig(level=settings.LOG_LEVEL)
logger = get_logger("supportchat")


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------
def create_app(session_factory: sessionmaker | None = None, *,
               run_cleanup: bool = settings.CLEANUP_ENABLED,
               upload_dir: str | Path = settings.UPLOADS_DIR,
               uploads_enabled: bool = settings.UPLOADS_ENABLED) -> FastAPI:
    session_factory = session_factory or SessionLocal
    Base.metadata.create_all(bind=session_factory.kw["bind"])

    app = FastAPI(title="Support Chat")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # Services live on app.state; nothing chat-related is a module global
    rooms = RoomRegistry()
    presence = PresenceTracker()
    app.state.session_factory = session_factory
    app.state.rooms = rooms
    app.state.presence = presence
    app.state.gateway = ChatGateway(session_factory, rooms, presence)
    app.state.cleanup = MessageCleanupService(session_factory)
    app.state.upload_dir = Path(upload_dir)
    app.state.uploads_enabled = uploads_enabled

    # Static uploads
    app.state.upload_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=str(app.state.upload_dir)), name="uploads")

    # Routers
    app.include_router(chat_router)
    app.include_router(admin_router)
    app.include_router(realtime_router)

    _install_error_handlers(app)

    @app.get("/api/health")
    def health():
        return {"success": True, "message": "Server is running", "env": settings.APP_ENV}

    @app.on_event("startup")
    async def _start_cleanup():
        if run_cleanup:
            app.state.cleanup.start()

    @app.on_event("shutdown")
    async def _stop_cleanup():
        await app.state.cleanup.stop()

    return app


# -----------------------------------------------------------------------------
# Errors → {"success": false, "message": ...}
# -----------------------------------------------------------------------------
def _install_error_handlers(app: FastAPI):
    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        if exc.status_code == 404 and exc.detail == "Not Found":
            message = "API endpoint not found"
        return JSONResponse({"success": False, "message": message}, status_code=exc.status_code,
                            headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        errs = exc.errors()
        first = errs[0] if errs else {}
        where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"Invalid {where}: {first.get('msg')}" if where else "Invalid request"
        return JSONResponse({"success": False, "message": message}, status_code=400)

    @app.exception_handler(Exception)
    async def _server_error(request: Request, exc: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse({"success": False, "message": "Server error"}, status_code=500)


app = create_app()
