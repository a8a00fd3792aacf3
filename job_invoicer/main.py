import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config
from .database import Base, engine
from .errors import SigningError
from .routers import documents, signing

# Configure logging
logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create database tables on startup"""
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully!")
    yield


app = FastAPI(title="Job Invoicer Signing", lifespan=lifespan)


@app.exception_handler(SigningError)
async def signing_error_handler(request: Request, exc: SigningError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'][1:]) or 'body'}: {err['msg']}"
        for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": problems or "Invalid request"})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Mount API routers
app.include_router(documents.router, prefix="/documents", tags=["documents"])
app.include_router(signing.router, prefix="/sign", tags=["signing"])


@app.get("/health")
def health_check():
    """Health check endpoint for debugging"""
    return {
        "status": "ok",
        "database": "postgres" if config.DATABASE_URL else "sqlite",
        "storage": "vercel_blob" if config.BLOB_READ_WRITE_TOKEN else "local",
    }
