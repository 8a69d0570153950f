from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from ..deps import get_service
from ..schemas import PayoutCreate, PayoutOut, StatisticsOut
from ..services import ChoreService

router = APIRouter(
    prefix="/api/v1",
    tags=["payouts"],
)


# PUBLIC_INTERFACE
@router.get(
    "/payouts",
    response_model=List[PayoutOut],
    summary="List Payouts",
    description="Recorded payouts, newest first.",
)
def list_payouts(service: ChoreService = Depends(get_service)) -> List[PayoutOut]:
    return [PayoutOut(**p) for p in service.list_payouts()]


# PUBLIC_INTERFACE
@router.post(
    "/payouts",
    response_model=PayoutOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Payout",
    description=(
        "Record a payout. The amount must be positive and no more than the current "
        "total earned; every completed instance not yet paid out is settled by it."
    ),
    responses={
        201: {"description": "Payout recorded"},
        400: {"description": "Invalid amount or amount exceeds total earned"},
    },
)
def create_payout(payload: PayoutCreate, service: ChoreService = Depends(get_service)) -> PayoutOut:
    payout = service.create_payout(payload.amount, notes=payload.notes, created_by=payload.created_by)
    return PayoutOut(**payout)


# PUBLIC_INTERFACE
@router.get(
    "/stats",
    response_model=StatisticsOut,
    summary="Statistics",
    description="Total earned (unpaid), total paid out, completed and due counts.",
)
def get_statistics(service: ChoreService = Depends(get_service)) -> StatisticsOut:
    return StatisticsOut(**service.statistics())
