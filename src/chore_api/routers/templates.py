from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ..deps import get_service
from ..schemas import (
    GenerateRequest,
    InstanceOut,
    ScheduleSummaryOut,
    TemplateCreate,
    TemplateCreated,
    TemplateOut,
    TemplateUpdate,
    schedule_to_out,
)
from ..services import ChoreService

router = APIRouter(
    prefix="/api/v1/templates",
    tags=["templates"],
)

_ERRORS = {
    400: {"description": "Validation error"},
    404: {"description": "Template not found"},
}


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[TemplateOut],
    summary="List Templates",
    description="List chore templates, newest first. Inactive templates are hidden unless include_inactive=true.",
)
def list_templates(
    include_inactive: bool = Query(False, description="Include deactivated templates"),
    service: ChoreService = Depends(get_service),
) -> List[TemplateOut]:
    return [TemplateOut(**t) for t in service.list_templates(include_inactive=include_inactive)]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=TemplateCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Create Template",
    description="Create a chore template and generate its first batch of instances from start_date.",
    responses={
        201: {"description": "Template created"},
        400: {"description": "Validation error"},
    },
)
def create_template(payload: TemplateCreate, service: ChoreService = Depends(get_service)) -> TemplateCreated:
    """
    Create a template. One-time templates get a single instance; recurring
    ones get `count` (or the configured default) instances.
    """
    template, instances = service.create_template(
        title=payload.title,
        amount=payload.amount,
        frequency=payload.frequency,
        start_date=payload.start_date,
        count=payload.count,
        created_by=payload.created_by,
    )
    return TemplateCreated(**template, instance_count=len(instances))


# PUBLIC_INTERFACE
@router.get(
    "/schedule",
    response_model=ScheduleSummaryOut,
    summary="Schedule Summary",
    description=(
        "Active templates grouped by frequency with next due date, last completion "
        "time and total earned per template."
    ),
)
def schedule_summary(service: ChoreService = Depends(get_service)) -> ScheduleSummaryOut:
    return schedule_to_out(service.schedule_summary())


# PUBLIC_INTERFACE
@router.get(
    "/{template_id}",
    response_model=TemplateOut,
    summary="Get Template",
    responses={404: {"description": "Template not found"}},
)
def get_template(template_id: int, service: ChoreService = Depends(get_service)) -> TemplateOut:
    return TemplateOut(**service.get_template(template_id))


# PUBLIC_INTERFACE
@router.patch(
    "/{template_id}",
    response_model=TemplateOut,
    summary="Update Template",
    description=(
        "Change a template's amount and/or active flag. A new amount is copied onto "
        "uncompleted instances due after today; past and completed instances keep theirs."
    ),
    responses=_ERRORS,
)
def patch_template(
    template_id: int, payload: TemplateUpdate, service: ChoreService = Depends(get_service)
) -> TemplateOut:
    template = service.get_template(template_id)
    if payload.amount is not None:
        template = service.update_amount(template_id, payload.amount)
    if payload.is_active is not None:
        template = service.set_active(template_id, payload.is_active)
    return TemplateOut(**template)


# PUBLIC_INTERFACE
@router.delete(
    "/{template_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Template",
    description="Delete a template and every instance generated from it.",
    responses={
        204: {"description": "Template deleted"},
        404: {"description": "Template not found"},
    },
)
def delete_template(template_id: int, service: ChoreService = Depends(get_service)) -> None:
    service.delete_template(template_id)
    return None


# PUBLIC_INTERFACE
@router.post(
    "/{template_id}/generate",
    response_model=List[InstanceOut],
    status_code=status.HTTP_201_CREATED,
    summary="Generate Next Batch",
    description="Generate further instances starting one step after the template's latest due date.",
    responses={
        404: {"description": "Template not found"},
        409: {"description": "Template inactive or one-time chore already generated"},
    },
)
def generate_next_batch(
    template_id: int,
    payload: Optional[GenerateRequest] = None,
    service: ChoreService = Depends(get_service),
) -> List[InstanceOut]:
    count = payload.count if payload is not None else None
    return [InstanceOut(**i) for i in service.extend_schedule(template_id, count)]
