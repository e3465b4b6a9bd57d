from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from datetime import datetime
import logging

from app.core.database import Base, async_engine, close_redis
from app.core.config import settings
from app.core.exceptions import OrbitLendError, ERROR_NAMES_BY_STATUS
from app.core.responses import ok, error_body
from app.integrations.verbwire import close_minting_client
from app.integrations.pinata import close_pinning_client
from app.integrations.gemini import close_ai_client
from app.modules.users.router import auth_router, router as users_router
from app.modules.loans.router import router as loans_router
from app.modules.nfts.router import router as nfts_router
from app.modules.admin.router import router as admin_router
from app.modules.chatbot.router import router as chatbot_router
from app.modules.notifications.router import router as notifications_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)
logger = logging.getLogger("orbitlend")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    # Startup
    async with async_engine.begin() as conn:
        # Create all tables (for development - use Alembic in production)
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} started ({settings.ENVIRONMENT})")

    yield

    # Shutdown
    await close_minting_client()
    await close_pinning_client()
    await close_ai_client()
    await close_redis()
    await async_engine.dispose()


app = FastAPI(
    title="OrbitLend API",
    description="NFT-backed peer-to-peer lending platform",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============ Error envelope ============

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if isinstance(exc, OrbitLendError):
        error, message = exc.error, exc.message
    else:
        error = ERROR_NAMES_BY_STATUS.get(exc.status_code, "Error")
        message = str(exc.detail)
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {error}: {message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(error, message),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        details.append(f"{field}: {err.get('msg')}" if field else err.get("msg", "Invalid value"))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("ValidationError", "; ".join(details) or "Invalid request"),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    message = str(exc) if settings.DEBUG else "Internal server error"
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("InternalError", message),
    )


# Include routers
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(loans_router)
app.include_router(nfts_router)
app.include_router(admin_router)
app.include_router(chatbot_router)
app.include_router(notifications_router)

# Locally stored uploads (profile pictures, KYC documents)
app.mount("/uploads", StaticFiles(directory=settings.LOCAL_STORAGE_PATH, check_dir=False), name="uploads")


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return ok({
        "status": "ok",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "timestamp": datetime.utcnow(),
    })


@app.get("/")
async def root():
    """Root endpoint"""
    return ok({
        "message": "Welcome to OrbitLend API",
        "version": settings.APP_VERSION,
        "docs": "/docs"
    })
