"""
API Routes - Combines all route modules into single router.
"""

from fastapi import APIRouter

from app.api.routes.auth_routes import router as auth_router
from app.api.routes.profile_routes import router as profile_router
from app.api.routes.opportunity_routes import router as opportunity_router
from app.api.routes.application_routes import router as application_router

# Main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(auth_router)
api_router.include_router(profile_router)
api_router.include_router(opportunity_router)
api_router.include_router(application_router)
