import logging
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.middleware import SlowAPIMiddleware
from slowapi.errors import RateLimitExceeded

from .config import settings
from .database import create_db_engine, create_session_factory, init_models
from .limiter import limiter
from .middleware.security import SecurityHeadersMiddleware
from .routes import otp, sms
from .services.otp_cleanup import OtpCleanupService
from .services.otp_manager import OtpManager, OtpPolicy
from .services.otp_store import OtpStore
from .services.sms_gateway import build_sms_gateway
from .utils.clock import SystemClock

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(
    database_url: str = None,
    gateway=None,
    clock=None,
    run_cleanup: bool = True
) -> FastAPI:
    """
    Build the API application.

    Collaborators default to the production ones from settings; tests pass
    their own gateway, clock and database URL.
    """
    app = FastAPI(
        title=settings.APP_NAME,
        description="Vendor onboarding API - phone OTP verification",
        version="1.0.0",
        docs_url="/api/docs" if settings.ENABLE_API_DOCS else None,
        redoc_url="/api/redoc" if settings.ENABLE_API_DOCS else None
    )

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    # Applies RATELIMIT_DEFAULT to every route without its own limit
    app.add_middleware(SlowAPIMiddleware)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        max_age=3600,
    )
    app.add_middleware(SecurityHeadersMiddleware)

    app.include_router(otp.router, prefix="/api")
    app.include_router(sms.router, prefix="/api")

    @app.on_event("startup")
    async def startup_event():
        """Wire the database, SMS gateway and OTP manager"""
        engine = create_db_engine(database_url or settings.DATABASE_URL)
        init_models(engine)

        store = OtpStore(create_session_factory(engine))
        app_clock = clock or SystemClock()
        app.state.engine = engine
        app.state.sms_gateway = gateway or build_sms_gateway(settings)
        app.state.otp_manager = OtpManager(
            store=store,
            gateway=app.state.sms_gateway,
            clock=app_clock,
            policy=OtpPolicy.from_settings(settings),
            quiet=gateway is None and not settings.sms_enabled
        )
        app.state.otp_cleanup = OtpCleanupService(
            store=store,
            clock=app_clock,
            retention=timedelta(minutes=settings.OTP_RETENTION_MINUTES),
            cleanup_interval=settings.OTP_CLEANUP_INTERVAL_SECONDS
        )
        if run_cleanup:
            await app.state.otp_cleanup.start()

        logger.info(f"✅ {settings.APP_NAME} Started Successfully")
        logger.info(f"📍 Environment: {settings.APP_ENV}")
        logger.info(f"📱 SMS delivery: {'enabled' if settings.sms_enabled else 'disabled (codes logged only)'}")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Stop background work and release clients"""
        await app.state.otp_cleanup.stop()
        app.state.sms_gateway.close()
        app.state.engine.dispose()
        logger.info(f"🛑 {settings.APP_NAME} Shutting Down...")

    @app.get("/")
    async def root():
        return {
            "message": f"Welcome to {settings.APP_NAME}",
            "version": "1.0.0",
            "status": "running",
            "docs": "/api/docs" if settings.ENABLE_API_DOCS else "disabled"
        }

    @app.get("/api/health")
    async def health_check():
        return {
            "status": "healthy",
            "environment": settings.APP_ENV,
            "sms_enabled": settings.sms_enabled
        }

    return app


app = create_app()
