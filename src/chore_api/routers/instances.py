from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from ..deps import get_service
from ..schemas import InstanceAction, InstanceOut
from ..services import ChoreService
from ..utils import pagination_envelope

router = APIRouter(
    prefix="/api/v1/instances",
    tags=["instances"],
)


class PaginationEnvelope(BaseModel):
    """
    Envelope for paginated list responses.
    """
    items: List[InstanceOut] = Field(..., description="List of chore instances")
    total: int = Field(..., description="Total number of instances matching the query")
    limit: int = Field(..., description="Limit applied to the query")
    offset: int = Field(..., description="Offset applied to the query")


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=PaginationEnvelope,
    summary="List Instances",
    description=(
        "List chore instances ordered by due date.\n\n"
        "Query parameters:\n"
        "- template_id: only instances of this template\n"
        "- completed: filter by completion status\n"
        "- paid_out: filter by whether a payout settled the instance\n"
        "- limit: max number of items to return (0..1000)\n"
        "- offset: number of items to skip (>=0)"
    ),
)
def list_instances(
    template_id: Optional[int] = Query(None, description="Owning template id"),
    completed: Optional[bool] = Query(None, description="Filter by completion status"),
    paid_out: Optional[bool] = Query(None, description="Filter by payout settlement"),
    limit: int = Query(100, ge=0, le=1000, description="Maximum number of items to return"),
    offset: int = Query(0, ge=0, description="Number of items to skip"),
    service: ChoreService = Depends(get_service),
) -> PaginationEnvelope:
    items, total = service.list_instances(
        template_id=template_id, completed=completed, limit=limit, offset=offset, paid_out=paid_out
    )
    envelope = pagination_envelope(
        items=[InstanceOut(**it) for it in items],
        total=total,
        limit=limit,
        offset=offset,
    )
    return PaginationEnvelope(**envelope)


# PUBLIC_INTERFACE
@router.get(
    "/due",
    response_model=List[InstanceOut],
    summary="Due Instances",
    description="Uncompleted instances due today or earlier, earliest first.",
)
def list_due(service: ChoreService = Depends(get_service)) -> List[InstanceOut]:
    return [InstanceOut(**i) for i in service.due()]


# PUBLIC_INTERFACE
@router.get(
    "/by-date/{day}",
    response_model=List[InstanceOut],
    summary="Instances For Date",
    description="Uncompleted instances due on the given ISO date, ordered by title.",
)
def list_for_date(day: date, service: ChoreService = Depends(get_service)) -> List[InstanceOut]:
    return [InstanceOut(**i) for i in service.by_date(day)]


# PUBLIC_INTERFACE
@router.get(
    "/completed",
    response_model=List[InstanceOut],
    summary="Completed History",
    description=(
        "Completed instances, most recently completed first.\n\n"
        "- filter: all, week, month or 3months (rolling window back from now)\n"
        "- on: ISO date; only instances completed on that day (overrides filter)"
    ),
    responses={400: {"description": "Unknown filter"}},
)
def list_completed(
    window: str = Query("all", alias="filter", description="all, week, month or 3months"),
    on: Optional[date] = Query(None, description="Only completions on this day"),
    service: ChoreService = Depends(get_service),
) -> List[InstanceOut]:
    items = service.completed_on(on) if on is not None else service.completed_history(window)
    return [InstanceOut(**i) for i in items]


# PUBLIC_INTERFACE
@router.get(
    "/{instance_id}",
    response_model=InstanceOut,
    summary="Get Instance",
    responses={404: {"description": "Chore instance not found"}},
)
def get_instance(instance_id: int, service: ChoreService = Depends(get_service)) -> InstanceOut:
    return InstanceOut(**service.get_instance(instance_id))


# PUBLIC_INTERFACE
@router.patch(
    "/{instance_id}",
    response_model=InstanceOut,
    summary="Complete Or Uncomplete Instance",
    description=(
        "Mark an instance completed (stamping completed_at) or clear its completion. "
        "Completing an instance a payout settled returns it unchanged."
    ),
    responses={
        200: {"description": "Instance updated"},
        400: {"description": "Uncomplete requested on an instance already paid out"},
        404: {"description": "Chore instance not found"},
    },
)
def patch_instance(
    instance_id: int, payload: InstanceAction, service: ChoreService = Depends(get_service)
) -> InstanceOut:
    if payload.action == "complete":
        updated = service.complete(instance_id)
    else:
        updated = service.uncomplete(instance_id)
    return InstanceOut(**updated)


# PUBLIC_INTERFACE
@router.delete(
    "/{instance_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Instance",
    responses={
        204: {"description": "Instance deleted"},
        404: {"description": "Chore instance not found"},
    },
)
def delete_instance(instance_id: int, service: ChoreService = Depends(get_service)) -> None:
    service.delete_instance(instance_id)
    return None
