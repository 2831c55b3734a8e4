"""
Main FastAPI application entry point.
Configures the application, middleware, and includes routers.
"""
from dotenv import load_dotenv

# Load environment variables from .env file first
load_dotenv()

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from .access.registry import SqlAccessGrantRegistry
from .access.router import router as access_router
from .access.seed import seed_demo_grants
from .auth.flow import FlowRegistry
from .auth.router import router as auth_router
from .auth.utils import build_email_transport
from .config import settings
from .core.clock import system_clock
from .core.middleware import setup_middlewares
from .database import Base, SessionLocal, engine
from .exceptions import register_exception_handlers

# Import all models here for creating tables
from .access import models as access_models  # noqa: F401
from .auth import models as auth_models  # noqa: F401
from .core import audit_models  # noqa: F401

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and load demo data before serving."""
    logger.info("Starting Screening Access API...")
    Base.metadata.create_all(bind=engine)
    if settings.seed_demo_data:
        db = SessionLocal()
        try:
            seed_demo_grants(SqlAccessGrantRegistry(db, clock=app.state.clock))
        finally:
            db.close()
    yield

# Create FastAPI application
app = FastAPI(
    title="Screening Access API",
    description="Clinician accounts with email verification and single-use patient access codes",
    version="1.0.0",
    lifespan=lifespan
)

# Core collaborators shared by all requests
app.state.clock = system_clock
app.state.flows = FlowRegistry(build_email_transport(), clock=system_clock)

# Register exception handlers
register_exception_handlers(app)

# Configure CORS middleware
origins = [
    "http://localhost:3000",  # Frontend development server
    "http://localhost:5173",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Setup custom middleware
setup_middlewares(app)

# Include routers
app.include_router(auth_router)
app.include_router(access_router)

# Root endpoint
@app.get("/")
def root():
    """
    Root endpoint for API health check.

    Returns:
        dict: Simple welcome message
    """
    return {"message": "Welcome to Screening Access API", "version": app.version}

# Health check endpoint
@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring.

    Returns:
        dict: Health status information
    """
    return {"status": "healthy", "database": "connected"}
