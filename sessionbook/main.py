import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import models so every table is registered with Base before create_all
from . import models  # noqa: F401
from .config import ALLOWED_ORIGINS
from .database import Base, engine
from .domain.availability.router import router as availability_router
from .domain.calls.router import router as calls_router
from .domain.chat.router import router as chat_router
from .domain.requests.router import router as requests_router
from .shared.errors import SessionBookError, ValidationError, field_errors_from_pydantic

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="SessionBook API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(SessionBookError)
async def sessionbook_exception_handler(request: Request, exc: SessionBookError):
    """Render domain errors as {"success": false, "error": ...}"""
    content = {"success": False, "error": exc.message}
    if isinstance(exc, ValidationError) and exc.field_errors:
        content["fieldErrors"] = exc.field_errors

    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Request body/query validation failures use the same shape as domain
    validation errors, with messages grouped per field.
    """
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": "Invalid input",
            "fieldErrors": field_errors_from_pydantic(exc.errors()),
        },
    )


# CORS Configuration
logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

app.include_router(availability_router)
app.include_router(requests_router)
app.include_router(calls_router)
app.include_router(chat_router)


# Routes
@app.get("/")
def root():
    return {"message": "SessionBook API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
