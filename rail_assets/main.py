import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from rail_assets.config import get_settings
from rail_assets.db import create_db_and_tables
from rail_assets.routers import (
    assets,
    assignments,
    auth,
    bulk_assets,
    dashboard,
    locations,
    movements,
    tracking,
    unique_assets,
    users,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()
    logger.info("database ready")
    yield
    logger.info("shutting down")


app = FastAPI(title="Rail Asset Register", lifespan=lifespan)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(locations.router)
app.include_router(bulk_assets.router)
app.include_router(unique_assets.router)
app.include_router(assets.router)
app.include_router(assignments.router)
app.include_router(movements.router)
app.include_router(tracking.unique_router)
app.include_router(tracking.bulk_router)
app.include_router(dashboard.router)


@app.get("/health")
def health():
    return {"ok": True}


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "errors": jsonable_encoder(exc.errors()),
        },
    )
