from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from threading import RLock
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import IntegrityError, ValidationError
from .models import ChoreInstanceEntity, ChoreTemplateEntity, Frequency, InstanceDraft, PayoutEntity
from .settings import Settings, get_settings
from .utils import sum_amounts

logger = logging.getLogger(__name__)

INSTANCE_SORT_FIELDS = {"due_date", "completed_at", "created_at", "title"}

ALREADY_PAID_OUT = "chore instance has already been paid out"
EXCEEDS_EARNED = "Payout amount exceeds total earned"


@dataclass(frozen=True)
class InstanceQuery:
    """
    Filters for listing chore instances. None means "don't filter".

    Date bounds are inclusive except completed_before, which is exclusive.
    """
    template_id: Optional[int] = None
    completed: Optional[bool] = None
    paid_out: Optional[bool] = None
    due_on: Optional[date] = None
    due_until: Optional[date] = None
    completed_since: Optional[datetime] = None
    completed_before: Optional[datetime] = None
    sort: str = "due_date"  # allowed: due_date, completed_at, created_at, title; '-' prefix for desc
    limit: Optional[int] = None
    offset: int = 0


def parse_sort(sort: Optional[str]) -> Tuple[str, bool]:
    """Split a sort key like '-completed_at' into (field, descending)."""
    key = (sort or "due_date").strip().lower()
    descending = key.startswith("-")
    field = key[1:] if descending else key
    if field not in INSTANCE_SORT_FIELDS:
        field = "due_date"
    return field, descending


# PUBLIC_INTERFACE
class Repository(ABC):
    """Abstract storage contract for templates, instances and payouts."""

    backend_name: str = "abstract"

    # Templates

    @abstractmethod
    def create_template(
        self, title: str, amount: Decimal, frequency: Frequency, created_by: str = "user"
    ) -> ChoreTemplateEntity:
        """Create and return a new active template."""

    @abstractmethod
    def get_template(self, template_id: int) -> Optional[ChoreTemplateEntity]:
        """Return a template by id, or None if not found."""

    @abstractmethod
    def list_templates(self, include_inactive: bool = False) -> List[ChoreTemplateEntity]:
        """Return templates, newest first."""

    @abstractmethod
    def update_template_amount(
        self, template_id: int, amount: Decimal, today: date
    ) -> Optional[ChoreTemplateEntity]:
        """
        Set a template's amount and copy it onto that template's uncompleted
        instances due strictly after `today`. Return None if not found.
        """

    @abstractmethod
    def set_template_active(self, template_id: int, is_active: bool) -> Optional[ChoreTemplateEntity]:
        """Toggle the soft-delete flag. Return None if not found."""

    @abstractmethod
    def delete_template(self, template_id: int) -> bool:
        """Delete a template and all of its instances. Return False if not found."""

    # Instances

    @abstractmethod
    def add_instances(self, drafts: Sequence[InstanceDraft]) -> List[ChoreInstanceEntity]:
        """
        Store a batch of drafts, all or nothing.
        Raises IntegrityError if a draft references a missing template.
        """

    @abstractmethod
    def get_instance(self, instance_id: int) -> Optional[ChoreInstanceEntity]:
        """Return an instance by id, or None if not found."""

    @abstractmethod
    def list_instances(self, query: Optional[InstanceQuery] = None) -> Tuple[List[ChoreInstanceEntity], int]:
        """Return a slice of matching instances and the total match count."""

    @abstractmethod
    def set_completion(
        self, instance_id: int, completed: bool, completed_at: Optional[datetime]
    ) -> Optional[ChoreInstanceEntity]:
        """
        Write the completion flag and timestamp. Return None if not found.

        Instances settled by a payout are never changed: completing one
        returns it as it is, uncompleting one raises ValidationError.
        """

    @abstractmethod
    def delete_instance(self, instance_id: int) -> bool:
        """Delete one instance. Return False if not found."""

    # Payouts

    @abstractmethod
    def create_payout(
        self, amount: Decimal, notes: Optional[str], paid_at: datetime, created_by: str = "user"
    ) -> PayoutEntity:
        """
        Record a payout and mark every completed, unsettled instance as paid
        out by it, in one unit. settled_amount is the sum of those instances.

        Raises ValidationError, writing nothing, if amount exceeds the
        earned total read in that same unit.
        """

    @abstractmethod
    def total_earned(self) -> Decimal:
        """
        Completed, unsettled instance amounts plus the unpaid remainder of
        every payout (settled_amount - amount).
        """

    @abstractmethod
    def list_payouts(self) -> List[PayoutEntity]:
        """Return payouts, newest first."""


def _sort_instances(items: Iterable[ChoreInstanceEntity], sort: str) -> List[ChoreInstanceEntity]:
    field, descending = parse_sort(sort)

    def key(item: ChoreInstanceEntity):
        value = item[field]  # type: ignore[literal-required]
        return (value is not None, value if value is not None else 0)

    # Stable tie-break on id regardless of direction
    by_id = sorted(items, key=lambda i: i["id"])
    return sorted(by_id, key=key, reverse=descending)


def _matches(item: ChoreInstanceEntity, q: InstanceQuery) -> bool:
    if q.template_id is not None and item["template_id"] != q.template_id:
        return False
    if q.completed is not None and item["completed"] != q.completed:
        return False
    if q.paid_out is not None and (item["paid_out_at"] is not None) != q.paid_out:
        return False
    if q.due_on is not None and item["due_date"] != q.due_on:
        return False
    if q.due_until is not None and item["due_date"] > q.due_until:
        return False
    if q.completed_since is not None or q.completed_before is not None:
        at = item["completed_at"]
        if at is None:
            return False
        if q.completed_since is not None and at < q.completed_since:
            return False
        if q.completed_before is not None and at >= q.completed_before:
            return False
    return True


class InMemoryRepository(Repository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    """

    backend_name = "memory"

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._lock = RLock()
        self._clock = clock or datetime.now
        self._templates: Dict[int, ChoreTemplateEntity] = {}
        self._instances: Dict[int, ChoreInstanceEntity] = {}
        self._payouts: Dict[int, PayoutEntity] = {}
        self._next_ids = {"template": 1, "instance": 1, "payout": 1}

    def _now(self) -> datetime:
        return self._clock()

    def _allocate_id(self, kind: str) -> int:
        with self._lock:
            i = self._next_ids[kind]
            self._next_ids[kind] += 1
            return i

    def create_template(
        self, title: str, amount: Decimal, frequency: Frequency, created_by: str = "user"
    ) -> ChoreTemplateEntity:
        entity: ChoreTemplateEntity = {
            "id": self._allocate_id("template"),
            "title": title,
            "amount": amount,
            "frequency": Frequency(frequency),
            "created_at": self._now(),
            "is_active": True,
            "created_by": created_by,
        }
        with self._lock:
            self._templates[entity["id"]] = entity
        return entity.copy()  # type: ignore[return-value]

    def get_template(self, template_id: int) -> Optional[ChoreTemplateEntity]:
        with self._lock:
            item = self._templates.get(template_id)
            return None if item is None else item.copy()  # type: ignore[return-value]

    def list_templates(self, include_inactive: bool = False) -> List[ChoreTemplateEntity]:
        with self._lock:
            items = [t for t in self._templates.values() if include_inactive or t["is_active"]]
            items.sort(key=lambda t: (t["created_at"], t["id"]), reverse=True)
            return [t.copy() for t in items]  # type: ignore[misc]

    def update_template_amount(
        self, template_id: int, amount: Decimal, today: date
    ) -> Optional[ChoreTemplateEntity]:
        with self._lock:
            template = self._templates.get(template_id)
            if template is None:
                return None
            template["amount"] = amount
            changed = 0
            for instance in self._instances.values():
                if (
                    instance["template_id"] == template_id
                    and not instance["completed"]
                    and instance["due_date"] > today
                ):
                    instance["amount"] = amount
                    changed += 1
            logger.debug("template %s amount propagated to %d instances", template_id, changed)
            return template.copy()  # type: ignore[return-value]

    def set_template_active(self, template_id: int, is_active: bool) -> Optional[ChoreTemplateEntity]:
        with self._lock:
            template = self._templates.get(template_id)
            if template is None:
                return None
            template["is_active"] = is_active
            return template.copy()  # type: ignore[return-value]

    def delete_template(self, template_id: int) -> bool:
        with self._lock:
            if self._templates.pop(template_id, None) is None:
                return False
            owned = [i for i, inst in self._instances.items() if inst["template_id"] == template_id]
            for instance_id in owned:
                del self._instances[instance_id]
            return True

    def add_instances(self, drafts: Sequence[InstanceDraft]) -> List[ChoreInstanceEntity]:
        with self._lock:
            # Validate the whole batch before writing anything
            for draft in drafts:
                if draft["template_id"] not in self._templates:
                    raise IntegrityError(f"template {draft['template_id']} does not exist")
            now = self._now()
            created: List[ChoreInstanceEntity] = []
            for draft in drafts:
                entity: ChoreInstanceEntity = {
                    "id": self._allocate_id("instance"),
                    "template_id": draft["template_id"],
                    "title": draft["title"],
                    "amount": draft["amount"],
                    "frequency": Frequency(draft["frequency"]),
                    "due_date": draft["due_date"],
                    "completed": False,
                    "completed_at": None,
                    "paid_out_at": None,
                    "payout_id": None,
                    "created_at": now,
                }
                self._instances[entity["id"]] = entity
                created.append(entity.copy())  # type: ignore[arg-type]
            return created

    def get_instance(self, instance_id: int) -> Optional[ChoreInstanceEntity]:
        with self._lock:
            item = self._instances.get(instance_id)
            return None if item is None else item.copy()  # type: ignore[return-value]

    def list_instances(self, query: Optional[InstanceQuery] = None) -> Tuple[List[ChoreInstanceEntity], int]:
        q = query or InstanceQuery()
        with self._lock:
            items = [i for i in self._instances.values() if _matches(i, q)]
            total = len(items)
            ordered = _sort_instances(items, q.sort)

            start = max(q.offset, 0)
            end = None if q.limit is None else start + max(q.limit, 0)
            page = ordered[start:end]

            # Return copies to avoid external mutation
            return [i.copy() for i in page], total  # type: ignore[misc]

    def set_completion(
        self, instance_id: int, completed: bool, completed_at: Optional[datetime]
    ) -> Optional[ChoreInstanceEntity]:
        with self._lock:
            instance = self._instances.get(instance_id)
            if instance is None:
                return None
            if instance["paid_out_at"] is not None:
                if not completed:
                    raise ValidationError(ALREADY_PAID_OUT)
                return instance.copy()  # type: ignore[return-value]
            instance["completed"] = completed
            instance["completed_at"] = completed_at if completed else None
            return instance.copy()  # type: ignore[return-value]

    def delete_instance(self, instance_id: int) -> bool:
        with self._lock:
            return self._instances.pop(instance_id, None) is not None

    def create_payout(
        self, amount: Decimal, notes: Optional[str], paid_at: datetime, created_by: str = "user"
    ) -> PayoutEntity:
        with self._lock:
            if amount > self._total_earned_locked():
                raise ValidationError(EXCEEDS_EARNED)
            payout_id = self._allocate_id("payout")
            settled = [
                i for i in self._instances.values() if i["completed"] and i["paid_out_at"] is None
            ]
            for instance in settled:
                instance["paid_out_at"] = paid_at
                instance["payout_id"] = payout_id
            entity: PayoutEntity = {
                "id": payout_id,
                "amount": amount,
                "settled_amount": sum_amounts(i["amount"] for i in settled),
                "date": paid_at,
                "notes": notes,
                "created_by": created_by,
            }
            self._payouts[payout_id] = entity
            return entity.copy()  # type: ignore[return-value]

    def list_payouts(self) -> List[PayoutEntity]:
        with self._lock:
            items = sorted(self._payouts.values(), key=lambda p: (p["date"], p["id"]), reverse=True)
            return [p.copy() for p in items]  # type: ignore[misc]

    def total_earned(self) -> Decimal:
        with self._lock:
            return self._total_earned_locked()

    def _total_earned_locked(self) -> Decimal:
        unsettled = sum_amounts(
            i["amount"] for i in self._instances.values() if i["completed"] and i["paid_out_at"] is None
        )
        carried = sum_amounts(p["settled_amount"] - p["amount"] for p in self._payouts.values())
        return unsettled + carried


# PUBLIC_INTERFACE
def get_repository(settings: Optional[Settings] = None) -> Repository:
    """
    Factory to return the configured repository based on settings.
    - memory: InMemoryRepository
    - sqlite: SQLiteRepository
    """
    settings = settings or get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteRepository

        return SQLiteRepository(settings.sqlite_db_path)
    return InMemoryRepository()
