# recipeshare API Main Entry Point
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from .deps import build_services
from .errors import (
    ConflictError,
    InvalidInputError,
    InvalidJobError,
    ModerationWebhookError,
    NotFoundError,
)
from .routers.feed import router as feed_router
from .routers.ready import router as ready_router
from .routers.recipes import router as recipes_router
from .settings import settings

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("recipeshare")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tests install their own services before startup
    owned = getattr(app.state, "services", None) is None
    if owned:
        app.state.services = build_services(settings)
    yield
    if owned:
        app.state.services.close()
        app.state.services = None


# Rate limiter (per-IP)
limiter = Limiter(key_func=get_remote_address, default_limits=["100/minute"])

app = FastAPI(title="recipeshare API", version="0.1.0", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFoundError)
async def _not_found(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc), "code": "not_found"})


@app.exception_handler(InvalidInputError)
async def _invalid_input(request: Request, exc: InvalidInputError):
    return JSONResponse(status_code=400, content={"detail": str(exc), "code": "invalid_request"})


@app.exception_handler(InvalidJobError)
async def _invalid_job(request: Request, exc: InvalidJobError):
    return JSONResponse(status_code=400, content={"detail": str(exc), "code": "invalid_job"})


@app.exception_handler(ConflictError)
async def _conflict(request: Request, exc: ConflictError):
    logger.warning(f"Conflict on {request.url.path}: {exc}")
    return JSONResponse(status_code=409, content={"detail": str(exc), "code": "conflict"})


@app.exception_handler(ModerationWebhookError)
async def _moderation_webhook(request: Request, exc: ModerationWebhookError):
    return JSONResponse(
        status_code=502,
        content={"detail": str(exc), "code": "moderation_webhook_error", "status": exc.status},
    )


app.include_router(ready_router, prefix="/api", tags=["ready"])
app.include_router(recipes_router, prefix="/api/v1", tags=["recipes"])
app.include_router(feed_router, prefix="/api/v1", tags=["feed"])
