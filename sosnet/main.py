"""
SOSNet - Main Application
FastAPI backend for the SOS signal lifecycle with WebSocket support
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from sosnet.config import settings, configure_logging
from sosnet.database import engine, Base, SessionLocal
from sosnet.errors import register_exception_handlers
from sosnet.services.escalation import EscalationSweeper
from sosnet.ws_handlers.handler import InProcessRelay

# Import routers
from sosnet.routes.auth import router as auth_router
from sosnet.routes.sos_intake import router as sos_intake_router
from sosnet.routes.sos_response import router as sos_response_router
from sosnet.routes.sos_messages import router as sos_messages_router
from sosnet.routes.civilian_responders import router as civilian_responders_router
from sosnet.routes.admin_responders import router as admin_responders_router
from sosnet.routes.missing_persons import router as missing_persons_router
from sosnet.ws_handlers.routes import router as ws_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - create tables and run the escalation sweep"""
    configure_logging()

    # Import all models to register them
    from sosnet.models import db_models  # noqa: F401

    if settings.DROP_TABLES_ON_START:
        logger.warning("DROP_TABLES_ON_START is enabled - dropping all tables...")
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")

    sweeper = None
    if settings.ESCALATION_ENABLED:
        sweeper = EscalationSweeper(
            SessionLocal,
            app.state.relay,
            interval_minutes=settings.ESCALATION_INTERVAL_MINUTES,
            threshold_minutes=settings.ESCALATION_THRESHOLD_MINUTES
        )
        sweeper.start()

    yield

    if sweeper:
        await sweeper.stop()
    logger.info("Application shutdown")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="SOS Signal Lifecycle - Disaster Response Coordination",
        lifespan=lifespan
    )

    # One relay per process; handlers receive it through get_relay
    app.state.relay = InProcessRelay()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"]
    )

    register_exception_handlers(app)

    # Include routers
    app.include_router(auth_router)
    app.include_router(sos_intake_router)
    app.include_router(sos_response_router)
    app.include_router(sos_messages_router)
    app.include_router(civilian_responders_router)
    app.include_router(admin_responders_router)
    app.include_router(missing_persons_router)
    app.include_router(ws_router)

    # ==================== HEALTH CHECK ====================

    @app.get("/")
    async def root():
        """Health check endpoint"""
        return {
            "status": "online",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION
        }

    @app.get("/health")
    async def health_check():
        """Detailed health check"""
        return {
            "status": "healthy",
            "database": "connected",
            "services": {
                "sos": "active",
                "escalation": "active" if settings.ESCALATION_ENABLED else "disabled",
                "websockets": "active"
            },
            "websocket_clients": app.state.relay.connected_count()
        }

    return app


app = create_app()


# ==================== RUN SERVER ====================

if __name__ == "__main__":
    import uvicorn
    logger.info("Starting SOSNet API...")
    uvicorn.run(
        "sosnet.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
