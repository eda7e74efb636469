"""
Salary timeline: what an employee was earning in a given calendar month.

The stored `basic_salary`/`position` on an employee always reflect the latest
promotion, so historical months are rebuilt from the promotion list. A
promotion dated in month M still pays the old rate for M; the new rate is paid
from M+1 onwards.
"""
from datetime import date
from typing import Iterator, List, Tuple

from schemas import Employee, Promotion


def month_key(year: int, month: int) -> int:
    return year * 12 + month


def iter_months(start_month: int, start_year: int, end_month: int, end_year: int) -> Iterator[Tuple[int, int]]:
    """Yield (month, year) pairs from start to end, both inclusive."""
    month, year = start_month, start_year
    end = month_key(end_year, end_month)
    while month_key(year, month) <= end:
        yield month, year
        month += 1
        if month > 12:
            month = 1
            year += 1


def has_joined_by_month(employee: Employee, month: int, year: int) -> bool:
    joined: date = employee.joining_date
    return month_key(joined.year, joined.month) <= month_key(year, month)


def sorted_promotions(promotions: List[Promotion]) -> List[Promotion]:
    # sorted() is stable, so same-day promotions keep their insertion order
    return sorted(promotions, key=lambda p: p.date)


def resolve_month(employee: Employee, month: int, year: int) -> Tuple[float, str]:
    """Return the (salary, position) in force for the given month."""
    if not employee.promotions:
        return employee.basic_salary, employee.position

    promotions = sorted_promotions(employee.promotions)
    active_salary = promotions[0].from_salary
    active_position = promotions[0].from_position
    target = month_key(year, month)

    for promotion in promotions:
        promoted = month_key(promotion.date.year, promotion.date.month)
        if promoted < target:
            active_salary = promotion.to_salary
            active_position = promotion.to_position
        elif promoted == target:
            # the month of the promotion still pays the old rate
            active_salary = promotion.from_salary
            active_position = promotion.from_position
            break
        else:
            break

    return active_salary, active_position


def effective_salary_for_month(employee: Employee, month: int, year: int) -> float:
    salary, _ = resolve_month(employee, month, year)
    return salary


def effective_position_for_month(employee: Employee, month: int, year: int) -> str:
    _, position = resolve_month(employee, month, year)
    return position
