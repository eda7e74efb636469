from datetime import date, datetime, timedelta, timezone

import pytest

from payroll import build_payroll_snapshot, dashboard_stats, days_since_joined, is_listed, plan_backfill
from schemas import IncomeRecord

SEPT_PROMOTION = {
    "date": date(2024, 9, 20),
    "from_position": "Developer",
    "to_position": "Senior Developer",
    "from_salary": 50000,
    "to_salary": 60000,
}


def test_snapshot_uses_timeline_and_skips_future_joiners(make_employee):
    promoted = make_employee(basic_salary=60000, position="Senior Developer", promotions=[SEPT_PROMOTION])
    late = make_employee(employee_id="EMP-002", name="Hari", basic_salary=40000, joining_date=date(2024, 10, 1))
    record = IncomeRecord(month=9, year=2024, original_aud_salary=10000, usd_amount=6500, usd_rate=133.5)

    snapshot = build_payroll_snapshot([promoted, late], record)

    assert [line.employee_id for line in snapshot.lines] == ["EMP-001"]
    assert snapshot.lines[0].salary == 50000
    assert snapshot.lines[0].position == "Developer"
    assert snapshot.total_salary == 50000
    assert snapshot.total_salary_aud == pytest.approx(50000 / 86.775)


def test_snapshot_without_rate_has_no_aud_totals(make_employee):
    record = IncomeRecord(month=10, year=2024, npr_received=100000)
    snapshot = build_payroll_snapshot([make_employee()], record)
    assert snapshot.total_salary == 50000
    assert snapshot.total_salary_aud is None
    assert snapshot.lines[0].salary_aud is None


def test_fired_employees_listed_for_a_week(make_employee):
    fired_at = datetime(2024, 9, 1, 12, 0, tzinfo=timezone.utc)
    emp = make_employee(status="fired", status_change_date=fired_at)

    assert is_listed(emp, fired_at + timedelta(days=6))
    assert is_listed(emp, fired_at + timedelta(days=7))
    assert not is_listed(emp, fired_at + timedelta(days=7, seconds=1))


def test_other_statuses_always_listed(make_employee):
    long_ago = datetime(2020, 1, 1, tzinfo=timezone.utc)
    assert is_listed(make_employee(status="resigned", status_change_date=long_ago))
    assert is_listed(make_employee(status="fired"))


def test_naive_status_change_dates_are_treated_as_utc(make_employee):
    emp = make_employee(status="fired", status_change_date=datetime(2024, 9, 1))
    assert not is_listed(emp, datetime(2024, 9, 20, tzinfo=timezone.utc))


def test_backfill_defaults_to_current_salary(make_employee):
    emp = make_employee(basic_salary=60000, promotions=[SEPT_PROMOTION])
    records = plan_backfill(emp, 8, 2024, 11, 2024, date(2024, 12, 1))

    assert [(r.month, r.year) for r in records] == [(8, 2024), (9, 2024), (10, 2024), (11, 2024)]
    assert {r.amount for r in records} == {60000}
    assert all(r.status == "paid" and r.employee_name == "Sita Sharma" for r in records)


def test_backfill_can_follow_the_timeline(make_employee):
    emp = make_employee(basic_salary=60000, promotions=[SEPT_PROMOTION])
    records = plan_backfill(emp, 8, 2024, 11, 2024, date(2024, 12, 1), resolve_salary=True)
    assert [r.amount for r in records] == [50000, 50000, 60000, 60000]


def test_dashboard_stats(make_employee):
    today = date(2024, 12, 31)
    employees = [
        make_employee(status="fulltime", joining_date=date(2024, 12, 1), contract_sent=True),
        make_employee(employee_id="EMP-002", status="probation", joining_date=date(2024, 12, 21)),
    ]
    assert dashboard_stats(employees, today) == {
        "total_employees": 2,
        "fulltime_employees": 1,
        "contracts_pending": 1,
        "average_days_since_joined": 20,
    }
    assert dashboard_stats([], today)["average_days_since_joined"] == 0


def test_days_since_joined_is_absolute():
    assert days_since_joined(date(2025, 1, 10), date(2025, 1, 1)) == 9
