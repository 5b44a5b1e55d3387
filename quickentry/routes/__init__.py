"""
FastAPI routers for the quick-entry service.

Each module defines a router for one concern (health, quick-entry sessions,
offline queue).
"""
