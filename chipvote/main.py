from contextlib import asynccontextmanager
import logging
import traceback

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy import text

from chipvote.database import engine, Base, SessionLocal
import chipvote.models  # noqa: F401  # Ensure all SQLAlchemy models are registered
from chipvote.routers import participants as participants_router
from chipvote.routers import realtime as realtime_router
from chipvote.routers import sessions as sessions_router
from chipvote.routers import voting as voting_router
from chipvote.services.errors import EngineError
from chipvote.services.results_cache import results_refresh
from chipvote.utils.logging_config import setup_logging

logger = logging.getLogger("chipvote")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized.")
    yield
    results_refresh.shutdown()
    logger.info("Application shutdown.")


app = FastAPI(
    title="Chip Vote",
    description="Two-round chip allocation voting sessions",
    lifespan=lifespan,
)

app.include_router(sessions_router.router)
app.include_router(participants_router.router)
app.include_router(voting_router.router)
app.include_router(realtime_router.router)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    if exc.status_code >= 500:
        logger.error(f"Engine error {exc.code}: {exc.detail}")
    else:
        logger.info(f"Engine error {exc.code}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {str(exc)}\n{traceback.format_exc()}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal Server Error. Please check logs."},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    if exc.status_code >= 500:
        logger.error(
            f"HTTP {exc.status_code} error: {exc.detail}\n{traceback.format_exc()}"
        )
    else:
        logger.info(f"HTTP {exc.status_code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Messages only, so the response is always serializable
    error_messages = [err["msg"] for err in exc.errors()]
    logger.warning(f"Validation error: {error_messages}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": error_messages},
    )


@app.get("/health", tags=["healthcheck"])
async def health_check():
    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        db.close()
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        logger.error(
            f"Health check database connection error: {e}"
        )
        raise HTTPException(
            status_code=503, detail=f"Database connection failed: {str(e)}"
        )
