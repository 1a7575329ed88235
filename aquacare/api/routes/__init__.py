"""API routes."""

from fastapi import APIRouter

from aquacare.api.routes import admin_contracts, admin_tickets, contracts, notifications, service_requests

api_router = APIRouter()

# User portal
api_router.include_router(contracts.router, prefix="/contracts", tags=["contracts"])
api_router.include_router(service_requests.router, prefix="/service-requests", tags=["service-requests"])

# Admin panel
api_router.include_router(admin_contracts.router, prefix="/admin", tags=["admin-contracts"])
api_router.include_router(admin_tickets.router, prefix="/admin", tags=["admin-tickets"])

# Notifications (portal and admin bell)
api_router.include_router(notifications.router, tags=["notifications"])
