import logging

import app.models  # noqa: F401
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.db import SessionLocal
from app.core.errors import ConflictError, DomainError, ForbiddenError, NotFoundError, ValidationFailedError
from app.routers import auth as auth_router
from app.routers import events as events_router
from app.routers import favorites as favorites_router
from app.routers import masjid_users as masjid_users_router
from app.routers import masjids as masjids_router
from app.routers import notifications as notifications_router
from app.routers import prayer_times as prayer_times_router
from app.routers import preferences as preferences_router
from app.routers import questions as questions_router
from app.routers import subscriptions as subscriptions_router
from app.routers import super_admin as super_admin_router
from app.routers import whoami as whoami_router
from app.services.dispatch import NotificationDispatcher
from app.services.push_gateway import build_push_gateway

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="Masjid API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = {
    NotFoundError: 404,
    ForbiddenError: 403,
    ValidationFailedError: 400,
    ConflictError: 409,
}


@app.exception_handler(DomainError)
async def handle_domain_error(request: Request, exc: DomainError) -> JSONResponse:
    status_code = next(
        (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
        400,
    )
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "code": exc.code})


app.include_router(auth_router.router)
app.include_router(whoami_router.router)
app.include_router(masjids_router.router)
app.include_router(masjid_users_router.router)
app.include_router(subscriptions_router.router)
app.include_router(preferences_router.router)
app.include_router(prayer_times_router.router)
app.include_router(notifications_router.router)
app.include_router(events_router.router)
app.include_router(questions_router.router)
app.include_router(favorites_router.router)
app.include_router(super_admin_router.router)


@app.on_event("startup")
def start_dispatcher() -> None:
    app.state.dispatcher = NotificationDispatcher(SessionLocal, build_push_gateway(settings))
    logger.info(
        "dispatcher_started",
        extra={"gateway": type(app.state.dispatcher.gateway).__name__, "environment": settings.ENVIRONMENT},
    )


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok"}
