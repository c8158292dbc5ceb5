"""
Scheduled Action API Routes

This module provides REST API endpoints for the assistant confirmation
workflow: propose, confirm, reject and execute.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, Field

from ...database.models import ScheduledAction
from ...scheduling.base import ActionKind, NotFound
from ...scheduling.service import SchedulingService
from ..base import success_response
from ..dependencies import get_organization_id, get_scheduling_service


router = APIRouter(prefix="/actions", tags=["Actions"])


# =============================================================================
# Request/Response Models
# =============================================================================


class ActionProposalRequest(BaseModel):
    """Assistant proposal for a scheduling mutation."""

    kind: ActionKind = Field(..., description="create_booking, reschedule or cancel")
    params: Dict[str, Any] = Field(default_factory=dict, description="Mutation parameters")
    requested_by: Optional[str] = Field(default=None, description="User who asked for it")


# =============================================================================
# Helper Functions
# =============================================================================


async def _get_for_tenant(
    service: SchedulingService,
    action_id: str,
    organization_id: str,
) -> ScheduledAction:
    action = await service.workflow.get(action_id)
    if action.organization_id != organization_id:
        raise NotFound("ScheduledAction", action_id)
    return action


# =============================================================================
# Routes
# =============================================================================


@router.post(
    "",
    status_code=201,
    summary="Propose Action",
    description="Record an assistant proposal with a before/after preview.",
)
async def propose_action(
    request: ActionProposalRequest,
    organization_id: str = Depends(get_organization_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Propose a scheduling action pending confirmation."""
    action = await service.workflow.propose(
        organization_id,
        request.kind,
        request.params,
        requested_by=request.requested_by,
    )
    return success_response(action.to_dict())


@router.get(
    "",
    summary="List Pending Actions",
    description="Proposals still waiting for a human to confirm or reject them.",
)
async def list_pending_actions(
    organization_id: str = Depends(get_organization_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    actions = await service.workflow.list_pending(organization_id)
    return success_response([action.to_dict() for action in actions])


@router.get(
    "/{action_id}",
    summary="Get Action",
)
async def get_action(
    action_id: str = Path(...),
    organization_id: str = Depends(get_organization_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Get a scheduled action by ID."""
    action = await _get_for_tenant(service, action_id, organization_id)
    return success_response(action.to_dict())


@router.post(
    "/{action_id}/confirm",
    summary="Confirm Action",
)
async def confirm_action(
    action_id: str = Path(...),
    organization_id: str = Depends(get_organization_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Confirm a pending action."""
    await _get_for_tenant(service, action_id, organization_id)
    action = await service.workflow.confirm(action_id)
    return success_response(action.to_dict())


@router.post(
    "/{action_id}/reject",
    summary="Reject Action",
)
async def reject_action(
    action_id: str = Path(...),
    organization_id: str = Depends(get_organization_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Reject a pending action. It will never run."""
    await _get_for_tenant(service, action_id, organization_id)
    action = await service.workflow.reject(action_id)
    return success_response(action.to_dict())


@router.post(
    "/{action_id}/execute",
    summary="Execute Action",
    description="Run a confirmed action. Scheduling failures are reported, not raised.",
)
async def execute_action(
    action_id: str = Path(...),
    organization_id: str = Depends(get_organization_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Execute a confirmed action."""
    await _get_for_tenant(service, action_id, organization_id)
    result = await service.workflow.execute(action_id)
    return success_response(result.to_dict())
