"""
API Routes Module

This module provides all REST API endpoints for the scheduling core.
"""

from .actions import router as actions_router
from .appointments import router as appointments_router
from .day_rate import router as day_rate_router


__all__ = [
    "appointments_router",
    "actions_router",
    "day_rate_router",
]
