"""
Placement Hub - Main Application

FastAPI backend with:
- MongoDB for every entity (students, companies, opportunities, applications)
- JWT authentication for students and companies
- Application lifecycle with student notifications
- Uploaded resumes and logos served from /uploads

Run: uvicorn app.main:app --reload
"""

import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo.errors import PyMongoError

from app.api.routes import api_router
from app.core.config import get_settings
from app.core.errors import APIError
from app.db import init_mongo_indexes, test_mongo_connection

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Placement Hub",
    description="""
    Students find and apply to opportunities; companies post them and
    review applications.

    ## Features
    - **Authentication**: JWT-based auth for students and companies
    - **Opportunities**: Post, search, filter and save postings
    - **Applications**: Apply, review, interview, accept/reject, withdraw
    - **Notifications**: Students are told about decisions and interviews
    - **Profiles**: Student and company profiles, company logos
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware (allow all for development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    """Every service error leaves as {"error": {"code", "message"}}."""
    if exc.status_code >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": exc.code, "message": exc.message}}
    )


# Include API routes
app.include_router(api_router, prefix="/api")

# Uploaded resumes and logos
os.makedirs(settings.upload_dir, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")


# Startup event
@app.on_event("startup")
async def startup_event():
    """Initialize MongoDB indexes on startup."""
    try:
        init_mongo_indexes()
    except PyMongoError as e:
        logger.warning("MongoDB index initialization failed: %s", e)


@app.get("/", tags=["Health"])
async def root():
    return {"status": "healthy", "app": "Placement Hub"}


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "mongodb": "connected" if test_mongo_connection() else "disconnected"
    }
