from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Generator, List, Optional, Sequence, Tuple

from .errors import IntegrityError, ValidationError
from .models import ChoreInstanceEntity, ChoreTemplateEntity, Frequency, InstanceDraft, PayoutEntity
from .repositories import ALREADY_PAID_OUT, EXCEEDS_EARNED, InstanceQuery, Repository, parse_sort
from .utils import sum_amounts

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Tables:
    templates: str = "chore_templates"
    instances: str = "chore_instances"
    payouts: str = "payouts"


_T = _Tables()

_SCHEMA = [
    f"""
    CREATE TABLE IF NOT EXISTS {_T.templates} (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        amount TEXT NOT NULL,
        frequency TEXT NOT NULL CHECK (frequency IN ('daily', 'weekly', 'monthly', 'one-time')),
        created_at TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_by TEXT NOT NULL DEFAULT 'user'
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {_T.payouts} (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        amount TEXT NOT NULL,
        settled_amount TEXT NOT NULL,
        date TEXT NOT NULL,
        notes TEXT NULL,
        created_by TEXT NOT NULL DEFAULT 'user'
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {_T.instances} (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        template_id INTEGER NOT NULL REFERENCES {_T.templates}(id) ON DELETE CASCADE,
        title TEXT NOT NULL,
        amount TEXT NOT NULL,
        frequency TEXT NOT NULL,
        due_date TEXT NOT NULL,
        completed INTEGER NOT NULL DEFAULT 0,
        completed_at TEXT NULL,
        paid_out_at TEXT NULL,
        payout_id INTEGER NULL REFERENCES {_T.payouts}(id) ON DELETE SET NULL,
        created_at TEXT NOT NULL
    )
    """,
    f"CREATE INDEX IF NOT EXISTS idx_{_T.instances}_template ON {_T.instances}(template_id)",
    f"CREATE INDEX IF NOT EXISTS idx_{_T.instances}_due_date ON {_T.instances}(due_date)",
    f"CREATE INDEX IF NOT EXISTS idx_{_T.instances}_completed ON {_T.instances}(completed, completed_at)",
]


def _ts(value: Optional[datetime]) -> Optional[str]:
    # Fixed width so lexical order in SQL matches chronological order
    return value.isoformat(timespec="microseconds") if value is not None else None


def _parse_dt(s: Optional[str]) -> Optional[datetime]:
    if s is None:
        return None
    return datetime.fromisoformat(s)


class SQLiteRepository(Repository):
    """
    Lightweight SQLite repository implementing the Repository interface.

    Every public method runs in its own transaction; batch inserts and payout
    settlement either fully apply or roll back.
    """

    backend_name = "sqlite"

    def __init__(self, db_path: str, clock: Optional[Callable[[], datetime]] = None) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._clock = clock or datetime.now
        self._init_db()

    def _now(self) -> datetime:
        return self._clock()

    @contextmanager
    def _conn(self, immediate: bool = False) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            if immediate:
                # Take the write lock up front so reads and writes below see one state
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)

    def _row_to_template(self, row: sqlite3.Row) -> ChoreTemplateEntity:
        return {
            "id": int(row["id"]),
            "title": str(row["title"]),
            "amount": Decimal(row["amount"]),
            "frequency": Frequency(row["frequency"]),
            "created_at": _parse_dt(row["created_at"]),  # type: ignore
            "is_active": bool(row["is_active"]),
            "created_by": str(row["created_by"]),
        }

    def _row_to_instance(self, row: sqlite3.Row) -> ChoreInstanceEntity:
        return {
            "id": int(row["id"]),
            "template_id": int(row["template_id"]),
            "title": str(row["title"]),
            "amount": Decimal(row["amount"]),
            "frequency": Frequency(row["frequency"]),
            "due_date": date.fromisoformat(row["due_date"]),
            "completed": bool(row["completed"]),
            "completed_at": _parse_dt(row["completed_at"]),
            "paid_out_at": _parse_dt(row["paid_out_at"]),
            "payout_id": int(row["payout_id"]) if row["payout_id"] is not None else None,
            "created_at": _parse_dt(row["created_at"]),  # type: ignore
        }

    def _row_to_payout(self, row: sqlite3.Row) -> PayoutEntity:
        return {
            "id": int(row["id"]),
            "amount": Decimal(row["amount"]),
            "settled_amount": Decimal(row["settled_amount"]),
            "date": _parse_dt(row["date"]),  # type: ignore
            "notes": row["notes"],
            "created_by": str(row["created_by"]),
        }

    def _fetch_template(self, conn: sqlite3.Connection, template_id: int) -> Optional[ChoreTemplateEntity]:
        row = conn.execute(f"SELECT * FROM {_T.templates} WHERE id = ?", (template_id,)).fetchone()
        return self._row_to_template(row) if row else None

    def _fetch_instance(self, conn: sqlite3.Connection, instance_id: int) -> Optional[ChoreInstanceEntity]:
        row = conn.execute(f"SELECT * FROM {_T.instances} WHERE id = ?", (instance_id,)).fetchone()
        return self._row_to_instance(row) if row else None

    def create_template(
        self, title: str, amount: Decimal, frequency: Frequency, created_by: str = "user"
    ) -> ChoreTemplateEntity:
        with self._conn() as conn:
            cur = conn.execute(
                f"""
                INSERT INTO {_T.templates} (title, amount, frequency, created_at, is_active, created_by)
                VALUES (?, ?, ?, ?, 1, ?)
                """,
                (title, str(amount), Frequency(frequency).value, _ts(self._now()), created_by),
            )
            template = self._fetch_template(conn, int(cur.lastrowid))
            assert template is not None
            return template

    def get_template(self, template_id: int) -> Optional[ChoreTemplateEntity]:
        with self._conn() as conn:
            return self._fetch_template(conn, template_id)

    def list_templates(self, include_inactive: bool = False) -> List[ChoreTemplateEntity]:
        where_sql = "" if include_inactive else "WHERE is_active = 1"
        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT * FROM {_T.templates} {where_sql} ORDER BY created_at DESC, id DESC"
            ).fetchall()
            return [self._row_to_template(r) for r in rows]

    def update_template_amount(
        self, template_id: int, amount: Decimal, today: date
    ) -> Optional[ChoreTemplateEntity]:
        with self._conn() as conn:
            cur = conn.execute(
                f"UPDATE {_T.templates} SET amount = ? WHERE id = ?", (str(amount), template_id)
            )
            if cur.rowcount == 0:
                return None
            cur = conn.execute(
                f"""
                UPDATE {_T.instances} SET amount = ?
                WHERE template_id = ? AND completed = 0 AND due_date > ?
                """,
                (str(amount), template_id, today.isoformat()),
            )
            logger.debug("template %s amount propagated to %d instances", template_id, cur.rowcount)
            return self._fetch_template(conn, template_id)

    def set_template_active(self, template_id: int, is_active: bool) -> Optional[ChoreTemplateEntity]:
        with self._conn() as conn:
            cur = conn.execute(
                f"UPDATE {_T.templates} SET is_active = ? WHERE id = ?", (1 if is_active else 0, template_id)
            )
            if cur.rowcount == 0:
                return None
            return self._fetch_template(conn, template_id)

    def delete_template(self, template_id: int) -> bool:
        with self._conn() as conn:
            cur = conn.execute(f"DELETE FROM {_T.templates} WHERE id = ?", (template_id,))
            return cur.rowcount > 0

    def add_instances(self, drafts: Sequence[InstanceDraft]) -> List[ChoreInstanceEntity]:
        now = _ts(self._now())
        try:
            with self._conn() as conn:
                ids: List[int] = []
                for draft in drafts:
                    cur = conn.execute(
                        f"""
                        INSERT INTO {_T.instances} (template_id, title, amount, frequency, due_date,
                            completed, completed_at, paid_out_at, payout_id, created_at)
                        VALUES (?, ?, ?, ?, ?, 0, NULL, NULL, NULL, ?)
                        """,
                        (
                            draft["template_id"],
                            draft["title"],
                            str(draft["amount"]),
                            Frequency(draft["frequency"]).value,
                            draft["due_date"].isoformat(),
                            now,
                        ),
                    )
                    ids.append(int(cur.lastrowid))
                created = [self._fetch_instance(conn, i) for i in ids]
                return [c for c in created if c is not None]
        except sqlite3.IntegrityError as e:
            raise IntegrityError("instance batch references a missing template") from e

    def get_instance(self, instance_id: int) -> Optional[ChoreInstanceEntity]:
        with self._conn() as conn:
            return self._fetch_instance(conn, instance_id)

    def list_instances(self, query: Optional[InstanceQuery] = None) -> Tuple[List[ChoreInstanceEntity], int]:
        q = query or InstanceQuery()
        clauses = []
        params: list = []

        if q.template_id is not None:
            clauses.append("template_id = ?")
            params.append(q.template_id)
        if q.completed is not None:
            clauses.append("completed = ?")
            params.append(1 if q.completed else 0)
        if q.paid_out is not None:
            clauses.append("paid_out_at IS NOT NULL" if q.paid_out else "paid_out_at IS NULL")
        if q.due_on is not None:
            clauses.append("due_date = ?")
            params.append(q.due_on.isoformat())
        if q.due_until is not None:
            clauses.append("due_date <= ?")
            params.append(q.due_until.isoformat())
        if q.completed_since is not None:
            clauses.append("completed_at IS NOT NULL AND completed_at >= ?")
            params.append(_ts(q.completed_since))
        if q.completed_before is not None:
            clauses.append("completed_at IS NOT NULL AND completed_at < ?")
            params.append(_ts(q.completed_before))

        where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        field, descending = parse_sort(q.sort)
        # NULLs first ascending, last descending, matching the in-memory ordering
        order_sql = f"ORDER BY {field} IS NOT NULL {'DESC' if descending else 'ASC'}, {field} {'DESC' if descending else 'ASC'}, id ASC"

        page_sql = ""
        page_params: list = []
        if q.limit is not None:
            page_sql = "LIMIT ? OFFSET ?"
            page_params = [max(q.limit, 0), max(q.offset, 0)]
        elif q.offset:
            page_sql = "LIMIT -1 OFFSET ?"
            page_params = [max(q.offset, 0)]

        with self._conn() as conn:
            count_row = conn.execute(
                f"SELECT COUNT(*) as cnt FROM {_T.instances} {where_sql}", params
            ).fetchone()
            total = int(count_row["cnt"]) if count_row else 0

            rows = conn.execute(
                f"""
                SELECT * FROM {_T.instances}
                {where_sql}
                {order_sql}
                {page_sql}
                """,
                [*params, *page_params],
            ).fetchall()
            return [self._row_to_instance(r) for r in rows], total

    def set_completion(
        self, instance_id: int, completed: bool, completed_at: Optional[datetime]
    ) -> Optional[ChoreInstanceEntity]:
        with self._conn(immediate=True) as conn:
            cur = conn.execute(
                f"""
                UPDATE {_T.instances} SET completed = ?, completed_at = ?
                WHERE id = ? AND paid_out_at IS NULL
                """,
                (1 if completed else 0, _ts(completed_at) if completed else None, instance_id),
            )
            current = self._fetch_instance(conn, instance_id)
            if cur.rowcount == 0 and current is not None and not completed:
                raise ValidationError(ALREADY_PAID_OUT)
            return current

    def delete_instance(self, instance_id: int) -> bool:
        with self._conn() as conn:
            cur = conn.execute(f"DELETE FROM {_T.instances} WHERE id = ?", (instance_id,))
            return cur.rowcount > 0

    def create_payout(
        self, amount: Decimal, notes: Optional[str], paid_at: datetime, created_by: str = "user"
    ) -> PayoutEntity:
        with self._conn(immediate=True) as conn:
            if amount > self._total_earned(conn):
                raise ValidationError(EXCEEDS_EARNED)
            rows = conn.execute(
                f"SELECT id, amount FROM {_T.instances} WHERE completed = 1 AND paid_out_at IS NULL"
            ).fetchall()
            settled_amount = sum_amounts(Decimal(r["amount"]) for r in rows)
            cur = conn.execute(
                f"""
                INSERT INTO {_T.payouts} (amount, settled_amount, date, notes, created_by)
                VALUES (?, ?, ?, ?, ?)
                """,
                (str(amount), str(settled_amount), _ts(paid_at), notes, created_by),
            )
            payout_id = int(cur.lastrowid)
            conn.executemany(
                f"UPDATE {_T.instances} SET paid_out_at = ?, payout_id = ? WHERE id = ?",
                [(_ts(paid_at), payout_id, int(r["id"])) for r in rows],
            )
            row = conn.execute(f"SELECT * FROM {_T.payouts} WHERE id = ?", (payout_id,)).fetchone()
            return self._row_to_payout(row)

    def list_payouts(self) -> List[PayoutEntity]:
        with self._conn() as conn:
            rows = conn.execute(f"SELECT * FROM {_T.payouts} ORDER BY date DESC, id DESC").fetchall()
            return [self._row_to_payout(r) for r in rows]

    def total_earned(self) -> Decimal:
        with self._conn() as conn:
            return self._total_earned(conn)

    def _total_earned(self, conn: sqlite3.Connection) -> Decimal:
        unsettled = conn.execute(
            f"SELECT amount FROM {_T.instances} WHERE completed = 1 AND paid_out_at IS NULL"
        ).fetchall()
        payouts = conn.execute(f"SELECT amount, settled_amount FROM {_T.payouts}").fetchall()
        carried = sum_amounts(Decimal(p["settled_amount"]) - Decimal(p["amount"]) for p in payouts)
        return sum_amounts(Decimal(r["amount"]) for r in unsettled) + carried
