from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import Frequency

# Shared type for incoming calendar dates which can be a date, datetime, or ISO8601 string
DateInput = Union[date, datetime, str]


def _parse_date(value: Optional[DateInput]) -> Optional[date]:
    """
    Internal helper to normalize date input into a calendar date.
    - If value is a string, accept 'YYYY-MM-DD' or a full ISO datetime; the time is dropped.
    - If value is a datetime, keep only its date.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value.date()

    if isinstance(value, date):
        return value

    if isinstance(value, str):
        s = value.strip()
        try:
            return date.fromisoformat(s)
        except ValueError:
            try:
                return datetime.fromisoformat(s).date()
            except ValueError as e:
                raise ValueError(
                    "Invalid date format. Use an ISO8601 date or datetime string (e.g., '2025-01-31')."
                ) from e

    raise ValueError("Invalid type for date; expected date, datetime, or ISO8601 string.")


# PUBLIC_INTERFACE
class TemplateCreate(BaseModel):
    """
    Schema for creating a chore template. The first batch of instances is
    generated from start_date.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Take out trash",
                "amount": "2.00",
                "frequency": "daily",
                "start_date": "2024-01-01",
            }
        }
    )

    title: str = Field(..., description="Display text for the chore", min_length=1, max_length=255)
    amount: Decimal = Field(..., description="Reward per completed instance", ge=0, decimal_places=2)
    frequency: Frequency = Field(..., description="daily, weekly, monthly or one-time")
    start_date: date = Field(..., description="Due date of the first instance (ISO8601 date)")
    count: Optional[int] = Field(
        default=None, ge=1, le=366, description="Instances to generate; server default when omitted"
    )
    created_by: str = Field(default="user", max_length=100, description="Author label")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """
        Strip whitespace and enforce 1..255 length.
        """
        s = v.strip()
        if not (1 <= len(s) <= 255):
            raise ValueError("title length must be between 1 and 255 characters")
        return s

    @field_validator("start_date", mode="before")
    @classmethod
    def parse_start_date(cls, v: Optional[DateInput]) -> Optional[date]:
        """
        Normalize start_date from str/date/datetime to date.
        """
        return _parse_date(v)


# PUBLIC_INTERFACE
class TemplateUpdate(BaseModel):
    """
    Schema for updating a template. Only provided fields are changed.
    A new amount also applies to uncompleted instances due after today.
    """

    model_config = ConfigDict(
        json_schema_extra={"example": {"amount": "2.50", "is_active": True}}
    )

    amount: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2, description="New reward")
    is_active: Optional[bool] = Field(default=None, description="False hides the template from schedules")


# PUBLIC_INTERFACE
class GenerateRequest(BaseModel):
    """Schema for extending a template's schedule with another batch."""

    count: Optional[int] = Field(default=None, ge=1, le=366, description="Instances to generate")


# PUBLIC_INTERFACE
class TemplateOut(BaseModel):
    """
    Schema returned by the API for a chore template.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": 1,
                "title": "Take out trash",
                "amount": "2.00",
                "frequency": "daily",
                "created_at": "2024-01-01T08:00:00.000000",
                "is_active": True,
                "created_by": "user",
            }
        }
    )

    id: int = Field(..., description="Unique identifier of the template")
    title: str
    amount: Decimal
    frequency: Frequency
    created_at: datetime
    is_active: bool
    created_by: str


# PUBLIC_INTERFACE
class InstanceOut(BaseModel):
    """
    Schema returned by the API for a chore instance.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": 7,
                "template_id": 1,
                "title": "Take out trash",
                "amount": "2.00",
                "frequency": "daily",
                "due_date": "2024-01-01",
                "completed": True,
                "completed_at": "2024-01-01T18:30:00.000000",
                "paid_out_at": None,
                "payout_id": None,
                "created_at": "2024-01-01T08:00:00.000000",
            }
        }
    )

    id: int
    template_id: int
    title: str
    amount: Decimal
    frequency: Frequency
    due_date: date
    completed: bool
    completed_at: Optional[datetime] = None
    paid_out_at: Optional[datetime] = None
    payout_id: Optional[int] = None
    created_at: datetime


# PUBLIC_INTERFACE
class TemplateCreated(TemplateOut):
    """A newly created template together with the number of instances generated for it."""

    instance_count: int = Field(..., description="Number of instances generated")


# PUBLIC_INTERFACE
class InstanceAction(BaseModel):
    """
    Schema for toggling an instance's completion.
    """

    model_config = ConfigDict(json_schema_extra={"example": {"action": "complete"}})

    action: Literal["complete", "uncomplete"] = Field(..., description="complete or uncomplete")


# PUBLIC_INTERFACE
class PayoutCreate(BaseModel):
    """
    Schema for recording a payout. Positivity and the earned limit are
    checked by the service so they surface as 400s.
    """

    model_config = ConfigDict(
        json_schema_extra={"example": {"amount": "2.00", "notes": "Saturday allowance"}}
    )

    amount: Decimal = Field(..., description="Amount paid out")
    notes: Optional[str] = Field(default=None, max_length=1000, description="Optional free text")
    created_by: str = Field(default="user", max_length=100)


# PUBLIC_INTERFACE
class PayoutOut(BaseModel):
    """
    Schema returned by the API for a payout.
    """

    id: int
    amount: Decimal
    settled_amount: Decimal = Field(..., description="Sum of the instances this payout settled")
    date: datetime
    notes: Optional[str] = None
    created_by: str


# PUBLIC_INTERFACE
class ScheduleEntryOut(BaseModel):
    """One active template in the schedule summary."""

    template: TemplateOut
    next_due_date: Optional[date] = None
    last_completed_at: Optional[datetime] = None
    total_earned: Decimal


# PUBLIC_INTERFACE
class ScheduleSummaryOut(BaseModel):
    """Schedule summary keyed by frequency; every frequency key is present."""

    model_config = ConfigDict(populate_by_name=True)

    daily: List[ScheduleEntryOut] = Field(default_factory=list)
    weekly: List[ScheduleEntryOut] = Field(default_factory=list)
    monthly: List[ScheduleEntryOut] = Field(default_factory=list)
    one_time: List[ScheduleEntryOut] = Field(default_factory=list, alias="one-time")


# PUBLIC_INTERFACE
class StatisticsOut(BaseModel):
    """Aggregates derived from stored instances and payouts."""

    total_earned: Decimal
    total_paid_out: Decimal
    completed_count: int
    due_count: int


def schedule_to_out(summary: Dict[Frequency, list]) -> ScheduleSummaryOut:
    """Build the response model from the service's frequency-keyed summary."""
    payload = {
        frequency.value: [ScheduleEntryOut(**entry) for entry in entries]
        for frequency, entries in summary.items()
    }
    return ScheduleSummaryOut(**payload)
