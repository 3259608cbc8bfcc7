import logging
import time
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from config import get_settings
from database import init_db
from file_utils import UploadRejected, ensure_upload_directories
from mailer import init_mailer
from routes.auth import router as auth_router
from routes.memorials import router as memorials_router
from routes.community import router as community_router
from routes.uploads import router as uploads_router

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(_: FastAPI):
    # Tables, upload folders and the mailer are set up once per process
    init_db()
    ensure_upload_directories()
    init_mailer()
    logger.info("Online memorial API started (%s)", get_settings().environment)
    yield

def validation_errors(exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        message = error.get("msg", "Invalid value")
        errors.append(f"{'.'.join(loc)}: {message}" if loc else message)
    return errors

def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Online Memorial API", lifespan=lifespan)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s [%s] -> %s (%.1fms)",
            request.method, request.url.path, request.headers.get("content-type", "-"), response.status_code, (time.perf_counter() - started) * 1000
        )
        return response

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": "Validation failed", "errors": validation_errors(exc)})

    @app.exception_handler(UploadRejected)
    async def handle_upload_rejected(request: Request, exc: UploadRejected):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        content = {"detail": "Internal server error"}
        if get_settings().is_development:
            content["error"] = str(exc)
        return JSONResponse(status_code=500, content=content)

    # Include routers
    app.include_router(auth_router)
    app.include_router(memorials_router)
    app.include_router(community_router)
    app.include_router(uploads_router)

    @app.get("/api/health")
    def health() -> dict:
        return {"status": "ok", "message": "Online memorial API is running"}

    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=get_settings().port, reload=get_settings().is_development)
