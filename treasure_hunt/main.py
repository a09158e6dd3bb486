"""
Main FastAPI application for the Treasure Hunt game service
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from treasure_hunt.config import settings
from treasure_hunt.api import (
    system,
    games,
    users,
    admin
)
from treasure_hunt.db.database import init_db

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.APP_DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Starting Treasure Hunt service...")
    try:
        init_db()
        logger.info("Database tables ready")
    except Exception as e:
        logger.error(f"Error initializing database: {e}")

    yield

    # Shutdown
    logger.info("Shutting down Treasure Hunt service...")


app = FastAPI(
    title="Treasure Hunt",
    description="Location treasure hunts and battle royale games with daily win limits",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(system.router, tags=["System"])
app.include_router(games.router, prefix="/games", tags=["Games"])
app.include_router(users.router, prefix="/users", tags=["Users"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Treasure Hunt",
        "version": "1.0.0",
        "status": "running"
    }
