"""
FastAPI app entrypoint.

Notification fan-out: send (broadcast / targeted), in-app feed with read state, push subscriptions.
"""
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Load .env from backend/ before any fanout code
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from fanout.api.deps import shutdown_service
from fanout.api.routes import events, notifications, subscriptions
from fanout.config import settings
from fanout.core.errors import STATUS_BAD_REQUEST

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Notification fan-out ready (dispatch workers=%s, sends per dispatch=%s)",
                settings.dispatch_job_workers, settings.dispatch_max_concurrent_sends)
    yield
    # Stop taking dispatch jobs; in-flight sends finish within their own timeouts
    shutdown_service()


app = FastAPI(title="Notification Fan-out", version="0.1.0", lifespan=lifespan)

# CORS: dev origins + optional CORS_ORIGINS env (comma-separated) for production frontend
_cors_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_cors_extra = settings.cors_origins or os.getenv("CORS_ORIGINS", "")
if _cors_extra:
    _cors_origins.extend(o.strip() for o in _cors_extra.split(",") if o.strip())
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_to_400(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are client errors like blank fields; report them as 400, not 422."""
    return JSONResponse(status_code=STATUS_BAD_REQUEST, content={"detail": jsonable_encoder(exc.errors())})


app.include_router(notifications.router, tags=["notifications"])
app.include_router(events.router, tags=["events"])
app.include_router(subscriptions.router, tags=["subscriptions"])


@app.get("/", include_in_schema=False)
def root():
    """Root: point to API docs and health."""
    return {"message": "Notification Fan-out API", "docs": "/docs", "health": "/health"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
