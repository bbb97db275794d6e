"""BloodConnect - Blood Donation Request Workflow API."""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bloodconnect.api.errors import install_error_handlers
from bloodconnect.config import get_settings

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Startup: Create tables
    from bloodconnect.database import Base, engine

    # Import all models so they're registered with Base
    from bloodconnect import models  # noqa: F401

    if settings.database_url.startswith("sqlite:///"):
        Path(settings.database_url.removeprefix("sqlite:///")).parent.mkdir(parents=True, exist_ok=True)
    settings.upload_dir.mkdir(parents=True, exist_ok=True)

    Base.metadata.create_all(bind=engine)
    logging.getLogger(__name__).info(f"{settings.app_name} started")

    yield
    # Shutdown: cleanup if needed


app = FastAPI(
    title=settings.app_name,
    description="Coordinate blood donation requests from submission to certificate",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}


# Import and include routers
from bloodconnect.api import certificates, dashboard, donors, notifications, requests  # noqa: E402

app.include_router(requests.router, prefix="/api")
app.include_router(certificates.router, prefix="/api")
app.include_router(donors.router, prefix="/api")
app.include_router(notifications.router, prefix="/api")
app.include_router(dashboard.router, prefix="/api")
