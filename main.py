import uvicorn
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from api import api_router
from config.settings import API_HOST, API_PORT, CORS_ORIGINS
from database.connection import create_db_and_tables
from utils.logger import get_logger

# Initialize logger
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - runs on startup and shutdown"""
    logger.info("Starting application...")
    create_db_and_tables()
    logger.info("Database tables created/verified")
    yield
    logger.info("Shutting down application...")


# Create FastAPI app with lifespan
app = FastAPI(
    title="Training Platform Roles",
    version="1.0.0",
    description="Role assignment and authorization API",
    lifespan=lifespan
)

# Include API routes
app.include_router(api_router, prefix="/api")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


if __name__ == "__main__":
    uvicorn.run(app, host=API_HOST, port=API_PORT)
