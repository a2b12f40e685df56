"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from courier.app.api.v1.endpoints import auth, users, admin, parcels

router = APIRouter()

# Include authentication endpoints
router.include_router(auth.router)

# Self-service user endpoints
router.include_router(users.router)

# Include admin endpoints
router.include_router(admin.router)

# Parcel lifecycle endpoints
router.include_router(parcels.router)
