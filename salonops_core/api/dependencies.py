"""
API Dependencies

This module provides FastAPI dependencies for the scheduling service
and the tenant scope of a request.
"""

from fastapi import Header, Request

from ..scheduling.service import SchedulingService


def get_scheduling_service(request: Request) -> SchedulingService:
    """
    FastAPI dependency for the scheduling service.

    Usage in routes:
        @router.post("/items")
        async def create_item(
            service: SchedulingService = Depends(get_scheduling_service),
        ):
            return await service.actions.create_booking(...)
    """
    return request.app.state.scheduling


async def get_organization_id(
    x_organization_id: str = Header(..., alias="X-Organization-ID"),
) -> str:
    """Tenant the request acts on."""
    return x_organization_id


__all__ = [
    "get_scheduling_service",
    "get_organization_id",
]
