from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, TypedDict


# PUBLIC_INTERFACE
class Frequency(str, Enum):
    """Recurrence cadence of a chore template."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ONE_TIME = "one-time"


# PUBLIC_INTERFACE
class ChoreTemplateEntity(TypedDict):
    """
    Definition of a recurring or one-time chore and its reward.

    Fields:
    - id: Unique integer identifier assigned by the store
    - title: Display text (trimmed, non-empty)
    - amount: Reward per completed instance, two decimal places
    - frequency: Frequency value; immutable after creation
    - created_at: Creation timestamp
    - is_active: Soft-delete flag; inactive templates are left out of generation and schedules
    - created_by: Free-text author label
    """

    id: int
    title: str
    amount: Decimal
    frequency: Frequency
    created_at: datetime
    is_active: bool
    created_by: str


# PUBLIC_INTERFACE
class InstanceDraft(TypedDict):
    """A generated, not yet stored occurrence of a template."""

    template_id: int
    title: str
    amount: Decimal
    frequency: Frequency
    due_date: date


# PUBLIC_INTERFACE
class ChoreInstanceEntity(TypedDict):
    """
    One dated occurrence of a template.

    title, amount and frequency are copies taken from the template when the
    instance was generated. completed_at is set exactly when completed is
    True. paid_out_at/payout_id are set once a payout settles the instance.
    """

    id: int
    template_id: int
    title: str
    amount: Decimal
    frequency: Frequency
    due_date: date
    completed: bool
    completed_at: Optional[datetime]
    paid_out_at: Optional[datetime]
    payout_id: Optional[int]
    created_at: datetime


# PUBLIC_INTERFACE
class PayoutEntity(TypedDict):
    """
    A recorded settlement of earned money.

    settled_amount is the sum of the instances this payout marked as paid
    out; any difference to amount stays owed.
    """

    id: int
    amount: Decimal
    settled_amount: Decimal
    date: datetime
    notes: Optional[str]
    created_by: str
