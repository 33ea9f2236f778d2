"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import (
    shipments, public_shipments,
    admin_shipments, api_keys, locations,
    admin_ops
)

router = APIRouter()

# Programmatic API (API key)
router.include_router(shipments.router)

# Receiving page (no auth)
router.include_router(public_shipments.router)

# Admin endpoints (bearer token)
router.include_router(admin_shipments.router)
router.include_router(api_keys.router)
router.include_router(locations.router)
router.include_router(admin_ops.router)
