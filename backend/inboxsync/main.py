"""Inboxsync - Notification Reconciliation API."""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from inboxsync.config import get_settings

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup: Create tables and apply topic configs
    from inboxsync.database import Base, engine
    from inboxsync.services.topic_config_loader import load_topic_configs

    # Import all models so they're registered with Base
    from inboxsync import models  # noqa: F401

    # Create tables
    Base.metadata.create_all(bind=engine)

    load_topic_configs()

    yield
    # Shutdown: cleanup if needed


app = FastAPI(
    title=settings.app_name,
    description="Deduplicated, suppressible notification inbox kept in sync with signal sources",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}


# Import and include routers
from inboxsync.api import cron, notifications  # noqa: E402

app.include_router(notifications.router, prefix="/api")
app.include_router(cron.router, prefix="/api")
