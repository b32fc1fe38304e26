"""
API Package - FastAPI Routers

Exports the aggregated router for main app registration.
"""

from slotwise.api.router import api_router

__all__ = ["api_router"]
