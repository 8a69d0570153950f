"""
Instance generation for chore templates.

Due dates are offsets from the start date: occurrence k is due at
start + k * step. Monthly steps use dateutil's relativedelta, which clamps to
the last day of shorter months without losing the original day-of-month
(Jan 31 -> Feb 29 -> Mar 31).
"""
from __future__ import annotations

from datetime import date, datetime
from typing import List, Union

from dateutil.relativedelta import relativedelta

from .errors import ValidationError
from .models import ChoreTemplateEntity, Frequency, InstanceDraft

DEFAULT_GENERATION_COUNT = 30

DateInput = Union[date, datetime]

_STEPS = {
    Frequency.DAILY: relativedelta(days=1),
    Frequency.WEEKLY: relativedelta(weeks=1),
    Frequency.MONTHLY: relativedelta(months=1),
}


# PUBLIC_INTERFACE
def start_of_day(moment: DateInput) -> date:
    """Strip the time-of-day from a date or datetime."""
    if isinstance(moment, datetime):
        return moment.date()
    return moment


# PUBLIC_INTERFACE
def step_for(frequency: Frequency) -> relativedelta:
    """Return the step between two occurrences. One-time chores have none."""
    frequency = Frequency(frequency)
    if frequency is Frequency.ONE_TIME:
        raise ValidationError("one-time chores do not recur")
    return _STEPS[frequency]


# PUBLIC_INTERFACE
def next_due_date(frequency: Frequency, current: DateInput) -> date:
    """Return the due date one step after current."""
    return _shift(start_of_day(current), step_for(frequency), 1)


# PUBLIC_INTERFACE
def due_date_at(frequency: Frequency, start: DateInput, index: int) -> date:
    """Return the due date of occurrence `index` of a series starting at start."""
    first = start_of_day(start)
    if index == 0:
        return first
    return _shift(first, step_for(frequency), index)


def _shift(start: date, step: relativedelta, times: int) -> date:
    # relativedelta raises OverflowError past date.max, ValueError for year 10000
    try:
        return start + step * times
    except (OverflowError, ValueError) as e:
        raise ValidationError("schedule runs past the supported date range") from e


# PUBLIC_INTERFACE
def generate_instances(
    template: ChoreTemplateEntity,
    start_date: DateInput,
    count: int = DEFAULT_GENERATION_COUNT,
    offset: int = 0,
) -> List[InstanceDraft]:
    """
    Expand a template into an ordered list of instance drafts.

    Recurring templates yield exactly `count` drafts; one-time templates yield
    a single draft whatever `count` is. Every draft copies title, amount and
    frequency from the template as they are now. Draft k is due at occurrence
    `offset + k` of the series anchored at start_date.

    Raises:
        ValidationError: if count is less than 1 or a due date falls outside
            the representable calendar.
    """
    if count < 1:
        raise ValidationError("count must be at least 1")

    frequency = Frequency(template["frequency"])
    start = start_of_day(start_date)
    if frequency is Frequency.ONE_TIME:
        indexes = [0]
    else:
        indexes = list(range(offset, offset + count))

    drafts: List[InstanceDraft] = []
    for index in indexes:
        drafts.append(
            {
                "template_id": template["id"],
                "title": template["title"],
                "amount": template["amount"],
                "frequency": frequency,
                "due_date": due_date_at(frequency, start, index),
            }
        )
    return drafts
