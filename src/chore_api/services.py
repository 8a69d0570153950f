"""Chore service: the rules for templates, completion, payouts and schedules.

The service depends only on the Repository interface. It validates input,
enforces invariants and raises domain errors from ``chore_api.errors``;
translating those into HTTP responses is the routers' job.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple, TypedDict

from dateutil.relativedelta import relativedelta

from .errors import (
    InstanceNotFoundError,
    IntegrityError,
    TemplateNotFoundError,
    ValidationError,
)
from .models import ChoreInstanceEntity, ChoreTemplateEntity, Frequency, PayoutEntity
from .repositories import InstanceQuery, Repository
from .scheduling import (
    DEFAULT_GENERATION_COUNT,
    DateInput,
    due_date_at,
    generate_instances,
    start_of_day,
)
from .utils import ZERO, AmountInput, sum_amounts, to_amount

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 255

# Rolling windows for completed history, measured back from now
HISTORY_WINDOWS: Dict[str, Optional[relativedelta]] = {
    "all": None,
    "week": relativedelta(days=7),
    "month": relativedelta(months=1),
    "3months": relativedelta(months=3),
}


class ScheduleEntry(TypedDict):
    template: ChoreTemplateEntity
    next_due_date: Optional[date]
    last_completed_at: Optional[datetime]
    total_earned: Decimal


class Statistics(TypedDict):
    total_earned: Decimal
    total_paid_out: Decimal
    completed_count: int
    due_count: int


# PUBLIC_INTERFACE
class ChoreService:
    """Service for chore templates, instances and payouts."""

    def __init__(
        self,
        repository: Repository,
        clock: Optional[Callable[[], datetime]] = None,
        generation_count: int = DEFAULT_GENERATION_COUNT,
    ) -> None:
        self._repo = repository
        self._clock = clock or datetime.now
        self._generation_count = generation_count

    @property
    def repository(self) -> Repository:
        return self._repo

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> date:
        return start_of_day(self.now())

    # Templates

    def create_template(
        self,
        title: str,
        amount: AmountInput,
        frequency: str,
        start_date: DateInput,
        count: Optional[int] = None,
        created_by: str = "user",
    ) -> Tuple[ChoreTemplateEntity, List[ChoreInstanceEntity]]:
        """
        Create a template and generate its first batch of instances.

        Nothing is left behind if generation fails.

        Raises:
            ValidationError: for an empty title, negative amount, unknown frequency or bad count.
        """
        clean_title = _clean_title(title)
        clean_amount = to_amount(amount)
        if clean_amount < ZERO:
            raise ValidationError("amount must not be negative")
        clean_frequency = _parse_frequency(frequency)
        batch = self._generation_count if count is None else count
        if batch < 1:
            raise ValidationError("count must be at least 1")

        template = self._repo.create_template(clean_title, clean_amount, clean_frequency, created_by)
        try:
            instances = self.generate(template["id"], start_date, batch)
        except Exception:
            self._repo.delete_template(template["id"])
            raise
        logger.info(
            "created template %s (%s, %s) with %d instances",
            template["id"],
            clean_frequency.value,
            clean_amount,
            len(instances),
        )
        return template, instances

    def get_template(self, template_id: int) -> ChoreTemplateEntity:
        template = self._repo.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    def list_templates(self, include_inactive: bool = False) -> List[ChoreTemplateEntity]:
        return self._repo.list_templates(include_inactive=include_inactive)

    def update_amount(self, template_id: int, amount: AmountInput) -> ChoreTemplateEntity:
        """
        Change a template's reward.

        The template always takes the new amount. Its instances take it only
        when they are not completed and due strictly after today; past-due and
        completed instances keep the amount they were generated with.
        """
        clean_amount = to_amount(amount)
        if clean_amount < ZERO:
            raise ValidationError("amount must not be negative")
        updated = self._repo.update_template_amount(template_id, clean_amount, self.today())
        if updated is None:
            raise TemplateNotFoundError(template_id)
        logger.info("template %s amount set to %s", template_id, clean_amount)
        return updated

    def set_active(self, template_id: int, is_active: bool) -> ChoreTemplateEntity:
        updated = self._repo.set_template_active(template_id, is_active)
        if updated is None:
            raise TemplateNotFoundError(template_id)
        logger.info("template %s %s", template_id, "reactivated" if is_active else "deactivated")
        return updated

    def deactivate(self, template_id: int) -> ChoreTemplateEntity:
        return self.set_active(template_id, False)

    def reactivate(self, template_id: int) -> ChoreTemplateEntity:
        return self.set_active(template_id, True)

    def delete_template(self, template_id: int) -> None:
        """Hard delete a template together with all of its instances."""
        if not self._repo.delete_template(template_id):
            raise TemplateNotFoundError(template_id)
        logger.info("deleted template %s", template_id)

    # Generation

    def generate(
        self, template_id: int, start_date: DateInput, count: Optional[int] = None, offset: int = 0
    ) -> List[ChoreInstanceEntity]:
        """
        Expand a stored template into instances of the series anchored at
        start_date, beginning with occurrence `offset`, and store them as one
        batch.

        Raises:
            TemplateNotFoundError: if the template does not exist.
            IntegrityError: if the template is inactive or disappears mid-way.
        """
        template = self.get_template(template_id)
        if not template["is_active"]:
            raise IntegrityError("cannot generate instances for an inactive template")
        drafts = generate_instances(
            template, start_date, self._generation_count if count is None else count, offset
        )
        return self._repo.add_instances(drafts)

    def extend_schedule(self, template_id: int, count: Optional[int] = None) -> List[ChoreInstanceEntity]:
        """
        Generate the next batch for a template, continuing the series anchored
        at its earliest due date, or starting from today when it has no
        instances left.
        """
        template = self.get_template(template_id)
        frequency = template["frequency"]
        first, total = self._repo.list_instances(
            InstanceQuery(template_id=template_id, sort="due_date", limit=1)
        )
        if frequency is Frequency.ONE_TIME and total:
            raise IntegrityError("one-time chores are generated only once")
        if not first:
            instances = self.generate(template_id, self.today(), count)
            logger.info("extended template %s by %d instances from today", template_id, len(instances))
            return instances

        anchor = first[0]["due_date"]
        latest, _ = self._repo.list_instances(
            InstanceQuery(template_id=template_id, sort="-due_date", limit=1)
        )
        # Occurrences deleted from the middle make total undercount the index
        index = total
        while due_date_at(frequency, anchor, index) <= latest[0]["due_date"]:
            index += 1
        instances = self.generate(template_id, anchor, count, offset=index)
        logger.info(
            "extended template %s by %d instances from occurrence %d", template_id, len(instances), index
        )
        return instances

    # Completion ledger

    def get_instance(self, instance_id: int) -> ChoreInstanceEntity:
        instance = self._repo.get_instance(instance_id)
        if instance is None:
            raise InstanceNotFoundError(instance_id)
        return instance

    def complete(self, instance_id: int) -> ChoreInstanceEntity:
        """
        Mark an instance completed now. Completing again refreshes completed_at,
        except on instances a payout settled, which are returned unchanged.
        """
        updated = self._repo.set_completion(instance_id, True, self.now())
        if updated is None:
            raise InstanceNotFoundError(instance_id)
        logger.info("completed instance %s", instance_id)
        return updated

    def uncomplete(self, instance_id: int) -> ChoreInstanceEntity:
        """
        Clear an instance's completion.

        Raises:
            InstanceNotFoundError: if the instance does not exist.
            ValidationError: if a payout already settled the instance.
        """
        updated = self._repo.set_completion(instance_id, False, None)
        if updated is None:
            raise InstanceNotFoundError(instance_id)
        logger.info("uncompleted instance %s", instance_id)
        return updated

    def delete_instance(self, instance_id: int) -> None:
        if not self._repo.delete_instance(instance_id):
            raise InstanceNotFoundError(instance_id)
        logger.info("deleted instance %s", instance_id)

    def total_earned(self) -> Decimal:
        """
        Money earned and not yet paid out, derived from stored state on every call.

        That is the completed instances no payout has settled, plus whatever
        earlier partial payouts left unpaid.
        """
        return self._repo.total_earned()

    # Payouts

    def create_payout(
        self, amount: AmountInput, notes: Optional[str] = None, created_by: str = "user"
    ) -> PayoutEntity:
        """
        Record a payout and settle every completed instance not yet paid out.
        The earned limit is checked by the repository in the same unit that
        writes the payout.

        Raises:
            ValidationError: if amount is not a positive number or exceeds total earned.
        """
        clean_amount = to_amount(amount)
        if clean_amount <= ZERO:
            raise ValidationError("Invalid payout amount")
        clean_notes = notes.strip() if notes and notes.strip() else None
        payout = self._repo.create_payout(clean_amount, clean_notes, self.now(), created_by)
        logger.info(
            "recorded payout %s of %s (settled %s)",
            payout["id"],
            clean_amount,
            payout["settled_amount"],
        )
        return payout

    def list_payouts(self) -> List[PayoutEntity]:
        return self._repo.list_payouts()

    def total_paid_out(self) -> Decimal:
        return sum_amounts(p["amount"] for p in self._repo.list_payouts())

    # Queries

    def list_instances(
        self,
        template_id: Optional[int] = None,
        completed: Optional[bool] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        paid_out: Optional[bool] = None,
    ) -> Tuple[List[ChoreInstanceEntity], int]:
        return self._repo.list_instances(
            InstanceQuery(
                template_id=template_id,
                completed=completed,
                paid_out=paid_out,
                sort="due_date",
                limit=limit,
                offset=offset,
            )
        )

    def by_date(self, day: DateInput) -> List[ChoreInstanceEntity]:
        """Uncompleted instances due on the given day, by title."""
        items, _ = self._repo.list_instances(
            InstanceQuery(completed=False, due_on=start_of_day(day), sort="title")
        )
        return items

    def due(self) -> List[ChoreInstanceEntity]:
        """Uncompleted instances due today or earlier, earliest first."""
        items, _ = self._repo.list_instances(
            InstanceQuery(completed=False, due_until=self.today(), sort="due_date")
        )
        return items

    def completed_history(self, window: str = "all") -> List[ChoreInstanceEntity]:
        """Completed instances, most recently completed first, optionally limited to a rolling window."""
        key = (window or "all").strip().lower()
        if key not in HISTORY_WINDOWS:
            raise ValidationError(f"filter must be one of {', '.join(HISTORY_WINDOWS)}")
        span = HISTORY_WINDOWS[key]
        since = None if span is None else self.now() - span
        items, _ = self._repo.list_instances(
            InstanceQuery(completed=True, completed_since=since, sort="-completed_at")
        )
        return items

    def completed_on(self, day: DateInput) -> List[ChoreInstanceEntity]:
        """Instances whose completion happened on the given calendar day."""
        start = datetime.combine(start_of_day(day), datetime.min.time())
        items, _ = self._repo.list_instances(
            InstanceQuery(
                completed=True,
                completed_since=start,
                completed_before=start + timedelta(days=1),
                sort="-completed_at",
            )
        )
        return items

    def schedule_summary(self) -> Dict[Frequency, List[ScheduleEntry]]:
        """
        Per active template, grouped by frequency: next uncompleted due date,
        latest completion time and everything earned from it so far.
        """
        summary: Dict[Frequency, List[ScheduleEntry]] = {f: [] for f in Frequency}
        for template in self._repo.list_templates(include_inactive=False):
            pending, _ = self._repo.list_instances(
                InstanceQuery(template_id=template["id"], completed=False, sort="due_date", limit=1)
            )
            done, _ = self._repo.list_instances(
                InstanceQuery(template_id=template["id"], completed=True, sort="-completed_at")
            )
            summary[template["frequency"]].append(
                {
                    "template": template,
                    "next_due_date": pending[0]["due_date"] if pending else None,
                    "last_completed_at": done[0]["completed_at"] if done else None,
                    "total_earned": sum_amounts(i["amount"] for i in done),
                }
            )
        return summary

    def statistics(self) -> Statistics:
        _, completed_count = self._repo.list_instances(InstanceQuery(completed=True, limit=0))
        return {
            "total_earned": self.total_earned(),
            "total_paid_out": self.total_paid_out(),
            "completed_count": completed_count,
            "due_count": len(self.due()),
        }


def _clean_title(title: Optional[str]) -> str:
    s = (title or "").strip()
    if not s:
        raise ValidationError("title is required")
    if len(s) > MAX_TITLE_LENGTH:
        raise ValidationError(f"title must be at most {MAX_TITLE_LENGTH} characters")
    return s


def _parse_frequency(value: str) -> Frequency:
    try:
        return Frequency(value)
    except ValueError as e:
        allowed = ", ".join(f.value for f in Frequency)
        raise ValidationError(f"frequency must be one of {allowed}") from e
