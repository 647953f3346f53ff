"""PM Board FastAPI application (single-tenant, no authentication)."""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from .. import __version__
from ..config import get_settings
from ..database import engine
from ..models import Base
from .routers import agent, attachments, changelog, features, milestones, projects, subtasks

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("pmboard-core")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.create_tables:
        Base.metadata.create_all(bind=engine)
    Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
    logger.info(f"Starting PM Board API {__version__}")
    yield


# Create FastAPI app
app = FastAPI(
    title="PM Board API",
    description="Kanban board, roadmap and changelog for humans and coding agents",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware - Open for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal database error"})


# Human (board) surface
app.include_router(projects.router, prefix="/api/v1/projects")
app.include_router(features.router, prefix="/api/v1")
app.include_router(subtasks.router, prefix="/api/v1/projects")
app.include_router(attachments.router, prefix="/api/v1/projects")
app.include_router(milestones.router, prefix="/api/v1/projects")
app.include_router(changelog.router, prefix="/api/v1/projects")

# Agent surface
app.include_router(agent.router, prefix="/api/v1/agent")

# Uploaded attachment files
app.mount(
    settings.upload_url_prefix,
    StaticFiles(directory=settings.upload_dir, check_dir=False),
    name="uploads",
)


@app.get("/")
def root():
    """Root endpoint with server info."""
    return {
        "name": "PM Board API",
        "version": __version__,
        "authentication": False,
        "docs": "/docs",
        "agent_api": "/api/v1/agent",
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
