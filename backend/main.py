import logging
import os

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import merge
from core.config import ALLOWED_CORS_ORIGINS, MAX_FILE_SIZE

# Configure logging with environment variable support
# Set LOG_LEVEL=WARNING in production to reduce noise, DEBUG for verbose output
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


tags_metadata = [
    {
        "name": "merge",
        "description": (
            "Collect floor, sector and POI GeoJSON files, arrange them and "
            "download them merged into a single FeatureCollection."
        ),
    },
]

app = FastAPI(
    title="GeoJSON Merge API",
    description="API for merging categorized GeoJSON files",
    version="0.1.0",
    openapi_tags=tags_metadata,
)

# CORS
if ALLOWED_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )
else:
    # Fallback: allow all origins but disable credentials to satisfy CORS spec
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )

# Include API routers
app.include_router(merge.router, prefix="/api")


@app.get("/")
async def root():
    return {"message": "GeoJSON Merge API is running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy", "message": "GeoJSON Merge API is running"}


# Exception handlers


@app.exception_handler(status.HTTP_400_BAD_REQUEST)
async def validation_exception_handler_400(request: Request, exc):
    exc_str = f"{getattr(exc, 'detail', exc)}".replace("\n", " ").replace("   ", " ")
    logging.error(f"{request.url.path}: {exc_str}")
    content = {"status_code": 10400, "message": exc_str, "data": None}
    return JSONResponse(content=content, status_code=status.HTTP_400_BAD_REQUEST)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler_422(request: Request, exc: RequestValidationError):
    exc_str = f"{exc}".replace("\n", " ").replace("   ", " ")
    logging.error(f"{request.url.path}: {exc_str}")
    content = {"status_code": 10422, "message": exc_str, "data": None}
    return JSONResponse(content=content, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


@app.exception_handler(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE)
async def request_entity_too_large_handler(request: Request, exc):
    limit_mb = MAX_FILE_SIZE // (1024 * 1024)
    return JSONResponse(
        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        content={
            "detail": getattr(exc, "detail", None)
            or f"File size exceeds the {limit_mb}MB limit. Please upload a smaller file."
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
