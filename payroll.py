"""Payroll views built on top of the salary timeline."""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Optional

from income_ledger import aud_rate_for_record
from salary_timeline import has_joined_by_month, iter_months, resolve_month
from schemas import Employee, IncomeRecord, SalaryRecord

FIRED_VISIBILITY = timedelta(days=7)


@dataclass
class PayrollLine:
    employee_id: str
    name: str
    position: str
    salary: float
    salary_aud: Optional[float] = None


@dataclass
class PayrollSnapshot:
    month: int
    year: int
    lines: List[PayrollLine] = field(default_factory=list)
    total_salary: float = 0
    total_salary_aud: Optional[float] = None


def build_payroll_snapshot(employees: Iterable[Employee], record: IncomeRecord) -> PayrollSnapshot:
    """Who was on payroll in the record's month, and at what rate."""
    rate = aud_rate_for_record(record)
    snapshot = PayrollSnapshot(month=record.month, year=record.year)

    for employee in employees:
        if not has_joined_by_month(employee, record.month, record.year):
            continue
        salary, position = resolve_month(employee, record.month, record.year)
        snapshot.lines.append(
            PayrollLine(
                employee_id=employee.employee_id,
                name=employee.name,
                position=position,
                salary=salary,
                salary_aud=salary / rate if rate else None,
            )
        )
        snapshot.total_salary += salary

    if rate:
        snapshot.total_salary_aud = snapshot.total_salary / rate
    return snapshot


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def is_listed(employee: Employee, now: Optional[datetime] = None) -> bool:
    """Fired employees drop out of listings a week after the status change."""
    if employee.status != "fired" or employee.status_change_date is None:
        return True
    now = _as_utc(now or datetime.now(timezone.utc))
    return _as_utc(employee.status_change_date) >= now - FIRED_VISIBILITY


def days_since_joined(joining_date: date, today: Optional[date] = None) -> int:
    today = today or date.today()
    return abs((today - joining_date).days)


def dashboard_stats(employees: List[Employee], today: Optional[date] = None) -> dict:
    total = len(employees)
    average_days = 0
    if total:
        average_days = round(sum(days_since_joined(e.joining_date, today) for e in employees) / total)
    return {
        "total_employees": total,
        "fulltime_employees": sum(1 for e in employees if e.status == "fulltime"),
        "contracts_pending": sum(1 for e in employees if not e.contract_sent),
        "average_days_since_joined": average_days,
    }


def plan_backfill(
    employee: Employee,
    start_month: int,
    start_year: int,
    end_month: int,
    end_year: int,
    payment_date: date,
    resolve_salary: bool = False,
) -> List[SalaryRecord]:
    """One paid salary record per month of the range.

    By default every month is booked at the employee's current basic salary,
    which overstates months before a promotion. Pass resolve_salary=True to
    book each month at its timeline salary instead.
    """
    records = []
    for month, year in iter_months(start_month, start_year, end_month, end_year):
        if resolve_salary:
            amount, _ = resolve_month(employee, month, year)
        else:
            amount = employee.basic_salary
        records.append(
            SalaryRecord(
                employee_id=employee.employee_id,
                employee_name=employee.name,
                month=month,
                year=year,
                amount=amount,
                payment_date=payment_date,
                status="paid",
            )
        )
    return records
