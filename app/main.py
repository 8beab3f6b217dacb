import time
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from routers.router import router
from core.lifespan import lifespan
from core.config import settings
from core.logger import logger
from core.rate_limiter import limiter

# CORS configuration
if settings.ENABLE_CORS:
    origins = [
        origin for origin in (settings.FRONTEND_ENDPOINT, settings.BACKEND_ENDPOINT) if origin
    ]
else:
    origins = ["*"]

# Initialize FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="""
    Status read API for asynchronous image generation jobs.

    **GET /api/v1/jobs/{job_id}/status** - Poll the status of a job

    ### Response:
    - `jobId`, `status` (`pending` | `processing` | `completed` | `failed`), `updatedAt`
    - `resultRef` when completed, `errorMessage` when failed
    - 404 when the job is unknown or its status record expired

    **GET /api/v1/health** - Redis / SQS / dead-letter queue checks
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Request/Response logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    log_data = {
        "method": request.method,
        "path": request.url.path,
        "status_code": response.status_code,
        "duration_ms": int(duration * 1000),
        "client": request.client.host if request.client else "unknown"
    }

    # Status polling and health checks are high volume; keep them at debug
    if request.url.path.endswith("/status") or request.url.path.endswith("/health"):
        logger.debug(f"Request: {log_data}")
    else:
        logger.info(f"Request: {log_data}")

    return response

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)

# Include routers
app.include_router(router)

# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    return {
        "service": settings.PROJECT_NAME,
        "version": "1.0.0",
        "status": "running",
        "documentation": "/docs"
    }
