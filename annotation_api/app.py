"""
Occurrence Annotation Rules API - FastAPI Application.

REST API for proposing, voting on and searching annotation rules
on occurrence records.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from annotation_api.config import get_settings
from annotation_api.database import Project, Rule, get_db, init_db
from annotation_api.errors import AnnotationError
from annotation_api.models import HealthResponse
from annotation_api.routes import projects_router, rules_router


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

API_PREFIX = "/occurrence/experimental/annotation"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting Occurrence Annotation Rules API...")
    init_db()
    logger.info("Database initialized")

    yield

    # Shutdown
    logger.info("Shutting down Occurrence Annotation Rules API...")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="""
## Occurrence Annotation Rules

Community-curated rules that flag occurrence records within a scope.

### Key Concepts

- **Rules**: an annotation (NATIVE, INTRODUCED, VAGRANT, ...) for the
  occurrences of a taxon, optionally narrowed by dataset, basis of record,
  year range and a WKT polygon
- **Votes**: users support or contest rules; a user holds at most one of
  the two positions on a rule
- **Projects**: groups of rules with a member list
- **Comments**: discussion on a rule

### Authentication

Mutating endpoints need the caller identity forwarded by the gateway in
`X-Auth-User` (and optionally `X-Auth-Roles`). Listing, lookup and metrics
are public.
    """,
    version=settings.app_version,
    lifespan=lifespan,
)

# Configure CORS
origins = settings.allowed_origins.split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error mapping
@app.exception_handler(AnnotationError)
async def annotation_error_handler(request: Request, exc: AnnotationError):
    """Return domain errors as JSON with the error's status code."""
    logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    """Persistence failures are opaque to the caller."""
    logger.exception(f"Database error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Include routers
app.include_router(rules_router, prefix=API_PREFIX)
app.include_router(projects_router, prefix=API_PREFIX)


# Root endpoint
@app.get("/")
def root():
    """Root endpoint with API information."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Occurrence annotation rules, votes and projects",
        "docs_url": "/docs",
        "openapi_url": "/openapi.json",
        "endpoints": {
            "rules": f"{API_PREFIX}/rule",
            "metrics": f"{API_PREFIX}/rule/metrics",
            "projects": f"{API_PREFIX}/project",
            "health": "/health",
        }
    }


@app.get("/health", response_model=HealthResponse)
def health_check(db: Session = Depends(get_db)):
    """
    Health check endpoint.

    Returns service health status and basic statistics.
    """
    try:
        db.execute(text("SELECT 1"))
        db_connected = True
    except SQLAlchemyError:
        logger.exception("Health check could not reach the database")
        db_connected = False

    rules_count = projects_count = 0
    if db_connected:
        rules_count = db.query(func.count(Rule.id)).filter(Rule.deleted.is_(None)).scalar() or 0
        projects_count = db.query(func.count(Project.id)).filter(
            Project.deleted.is_(None)
        ).scalar() or 0

    return HealthResponse(
        status="healthy" if db_connected else "degraded",
        version=settings.app_version,
        database_connected=db_connected,
        rules_count=rules_count,
        projects_count=projects_count,
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "annotation_api.app:app",
        host="0.0.0.0",
        port=8001,
        reload=settings.debug
    )
