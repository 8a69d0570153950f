from datetime import date, datetime
from decimal import Decimal

import pytest

from chore_api.errors import ValidationError
from chore_api.models import Frequency
from chore_api.scheduling import due_date_at, generate_instances, next_due_date, start_of_day, step_for


def make_template(frequency, amount="2.00", title="Take out trash"):
    return {
        "id": 7,
        "title": title,
        "amount": Decimal(amount),
        "frequency": Frequency(frequency),
        "created_at": datetime(2024, 1, 1),
        "is_active": True,
        "created_by": "user",
    }


class TestGenerateInstances:
    def test_daily_example(self):
        drafts = generate_instances(make_template("daily"), date(2024, 1, 1), 3)
        assert [d["due_date"] for d in drafts] == [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)]
        assert all(d["amount"] == Decimal("2.00") for d in drafts)
        assert all(d["template_id"] == 7 and d["title"] == "Take out trash" for d in drafts)

    @pytest.mark.parametrize(
        "frequency,expected_second",
        [
            ("daily", date(2024, 3, 11)),
            ("weekly", date(2024, 3, 17)),
            ("monthly", date(2024, 4, 10)),
        ],
    )
    def test_recurring_returns_count_strictly_increasing(self, frequency, expected_second):
        drafts = generate_instances(make_template(frequency), date(2024, 3, 10), 12)
        assert len(drafts) == 12
        due = [d["due_date"] for d in drafts]
        assert due[0] == date(2024, 3, 10)
        assert due[1] == expected_second
        assert all(a < b for a, b in zip(due, due[1:]))

    def test_default_count_is_thirty(self):
        assert len(generate_instances(make_template("weekly"), date(2024, 1, 1))) == 30

    def test_one_time_ignores_count(self):
        drafts = generate_instances(make_template("one-time"), date(2024, 5, 5), 30)
        assert len(drafts) == 1
        assert drafts[0]["due_date"] == date(2024, 5, 5)
        assert drafts[0]["frequency"] is Frequency.ONE_TIME

    def test_monthly_clamps_and_keeps_day_of_month(self):
        drafts = generate_instances(make_template("monthly"), date(2024, 1, 31), 4)
        assert [d["due_date"] for d in drafts] == [
            date(2024, 1, 31),
            date(2024, 2, 29),
            date(2024, 3, 31),
            date(2024, 4, 30),
        ]

    def test_datetime_start_is_truncated_to_date(self):
        drafts = generate_instances(make_template("daily"), datetime(2024, 1, 1, 23, 59), 2)
        assert drafts[0]["due_date"] == date(2024, 1, 1)
        assert isinstance(drafts[0]["due_date"], date)
        assert not isinstance(drafts[0]["due_date"], datetime)

    def test_drafts_snapshot_template_fields(self):
        template = make_template("daily", amount="1.50")
        drafts = generate_instances(template, date(2024, 1, 1), 2)
        template["amount"] = Decimal("9.99")
        assert all(d["amount"] == Decimal("1.50") for d in drafts)

    def test_offset_continues_the_anchored_series(self):
        drafts = generate_instances(make_template("monthly"), date(2024, 1, 31), 2, offset=2)
        assert [d["due_date"] for d in drafts] == [date(2024, 3, 31), date(2024, 4, 30)]

    @pytest.mark.parametrize(
        "frequency,start",
        [
            ("daily", date(9999, 12, 30)),
            ("weekly", date(9999, 12, 20)),
            ("monthly", date(9999, 11, 15)),
        ],
    )
    def test_dates_past_calendar_end_are_rejected(self, frequency, start):
        with pytest.raises(ValidationError, match="supported date range"):
            generate_instances(make_template(frequency), start, 5)

    @pytest.mark.parametrize("count", [0, -3])
    def test_count_must_be_positive(self, count):
        with pytest.raises(ValidationError):
            generate_instances(make_template("daily"), date(2024, 1, 1), count)


class TestHelpers:
    def test_next_due_date(self):
        assert next_due_date(Frequency.DAILY, date(2024, 12, 31)) == date(2025, 1, 1)
        assert next_due_date(Frequency.WEEKLY, date(2024, 12, 30)) == date(2025, 1, 6)
        assert next_due_date(Frequency.MONTHLY, date(2024, 1, 31)) == date(2024, 2, 29)

    def test_next_due_date_past_calendar_end(self):
        with pytest.raises(ValidationError):
            next_due_date(Frequency.DAILY, date.max)
        with pytest.raises(ValidationError):
            next_due_date(Frequency.MONTHLY, date(9999, 12, 1))

    def test_due_date_at_counts_from_start(self):
        assert due_date_at(Frequency.WEEKLY, date(2024, 1, 1), 0) == date(2024, 1, 1)
        assert due_date_at(Frequency.MONTHLY, datetime(2024, 1, 31, 7, 0), 13) == date(2025, 2, 28)

    def test_one_time_has_no_step(self):
        with pytest.raises(ValidationError):
            step_for(Frequency.ONE_TIME)

    def test_start_of_day(self):
        assert start_of_day(datetime(2024, 6, 1, 17, 30)) == date(2024, 6, 1)
        assert start_of_day(date(2024, 6, 1)) == date(2024, 6, 1)
