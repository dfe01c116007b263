"""API routes for netwatch REST API.

This module exports the route modules of the netwatch API.
"""

from .network import router as network_router

__all__ = [
    "network_router",
]
