# Studio Scheduler backend entrypoint: FastAPI app, routers and background supervisor.

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.app.api import admin_bookings
from backend.app.api import admin_settings
from backend.app.api import availability
from backend.app.api import blackouts
from backend.app.api import bookings
from backend.app.api import calendar
from backend.app.api import login
from backend.app.api import makeup
from backend.app.api import payments
from backend.app.api import recurring
from backend.app.api import register
from backend.app.core.dev_seed import ensure_default_dev_data, ensure_policy_defaults
from backend.app.core.exceptions import DomainException
from backend.app.core.logging import configure_logging
from backend.app.core.settings import get_settings
from backend.app.db.base import Base
from backend.app.db.session import SessionLocal, engine
from backend.app.services.supervisor import Supervisor, background_enabled

configure_logging()
logger = logging.getLogger(__name__)

settings = get_settings()
app = FastAPI(title=settings.app_name, version=settings.api_version)

origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainException)
def handle_domain_exception(request: Request, exc: DomainException):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


app.include_router(register.router)
app.include_router(login.router)
app.include_router(availability.router)
app.include_router(bookings.router)
app.include_router(admin_bookings.router)
app.include_router(recurring.router)
app.include_router(blackouts.router)
app.include_router(makeup.router)
app.include_router(payments.router)
app.include_router(admin_settings.router)
app.include_router(calendar.router)

supervisor = Supervisor.default(settings)


@app.get("/")
def read_root():
    return {"app": "Studio Scheduler backend", "status": "ok"}


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.on_event("startup")
async def start_background():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        ensure_policy_defaults(db)
        ensure_default_dev_data(db)
    finally:
        db.close()
    if background_enabled(settings):
        supervisor.start()


@app.on_event("shutdown")
async def stop_background():
    await supervisor.stop()
