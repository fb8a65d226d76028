from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os

from .routers import attachments, comments, tickets
from .models.user import Base
from .db import engine
from .core.config import get_attachment_config
from .core.errors import AttachmentError, ObjectStoreError
from .core.settings import settings
from .services.attachment_reaper import start_attachment_reaper_thread

import supportdesk.models.ticket  # noqa: F401
import supportdesk.models.comment  # noqa: F401
import supportdesk.models.attachment  # noqa: F401

logger = logging.getLogger(__name__)

app = FastAPI(title="Support Desk API")


@app.on_event("startup")
def on_startup():
    if settings.AUTO_DB_BOOTSTRAP:
        # Create tables in dev if missing.
        Base.metadata.create_all(bind=engine)

    # 설정 오류는 기동 시점에 실패시킨다
    cfg = get_attachment_config()
    app.state.reaper_stop = start_attachment_reaper_thread(cfg)


@app.on_event("shutdown")
def on_shutdown():
    stop = getattr(app.state, "reaper_stop", None)
    if stop is not None:
        stop.set()


@app.exception_handler(AttachmentError)
async def attachment_error_handler(request: Request, exc: AttachmentError):
    if isinstance(exc, ObjectStoreError):
        logger.warning("object storage failure on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(tickets.router)
app.include_router(comments.router)
app.include_router(attachments.router)

# CORS: allow local dev origins by default.
raw_origins = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173",
)
allow_origins = [o.strip() for o in raw_origins.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
