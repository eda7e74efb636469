from datetime import date, timedelta

import pytest

from database import now_utc
from errors import AppError
from payroll import plan_backfill
from salary_timeline import effective_salary_for_month
from schemas import EmployeeCreate, EmployeeUpdate, IncomeRecord


@pytest.fixture
def employee(repo):
    return repo.create_employee(
        EmployeeCreate(
            employee_id="EMP-001",
            name="Sita Sharma",
            position="Developer",
            basic_salary=50000,
            joining_date=date(2024, 1, 15),
        )
    )


def test_create_and_read_back(repo, employee):
    assert employee.id
    assert employee.version == 0
    assert employee.promotions == []
    assert employee.created_at is not None

    loaded = repo.get_employee(employee.id)
    assert loaded.joining_date == date(2024, 1, 15)
    assert loaded.status == "probation"


def test_duplicate_employee_id_conflicts(repo, employee):
    with pytest.raises(AppError) as exc:
        repo.create_employee(
            EmployeeCreate(employee_id="EMP-001", name="Other", basic_salary=1, joining_date=date(2024, 1, 1))
        )
    assert exc.value.status_code == 409


def test_unknown_or_malformed_ids_are_not_found(repo):
    for bad in ("not-an-object-id", "65f000000000000000000000"):
        with pytest.raises(AppError) as exc:
            repo.get_employee(bad)
        assert exc.value.status_code == 404


def test_update_only_touches_given_fields(repo, employee):
    updated = repo.update_employee(employee.id, EmployeeUpdate(phone="9800000000"))
    assert updated.phone == "9800000000"
    assert updated.name == "Sita Sharma"
    assert updated.basic_salary == 50000


def test_append_promotion_records_previous_values(repo, employee):
    promoted = repo.append_promotion(employee.id, date(2024, 9, 20), to_position="Senior Developer", to_salary=60000)

    assert promoted.version == 1
    assert promoted.position == "Senior Developer"
    assert promoted.basic_salary == 60000
    assert len(promoted.promotions) == 1
    promotion = promoted.promotions[0]
    assert (promotion.from_position, promotion.from_salary) == ("Developer", 50000)
    assert (promotion.to_position, promotion.to_salary) == ("Senior Developer", 60000)
    assert promotion.date == date(2024, 9, 20)

    assert effective_salary_for_month(promoted, 9, 2024) == 50000
    assert effective_salary_for_month(promoted, 10, 2024) == 60000


def test_successive_promotions_chain(repo, employee):
    repo.append_promotion(employee.id, date(2024, 3, 1), to_position="Senior Developer", to_salary=60000)
    second = repo.append_promotion(employee.id, date(2024, 9, 1), to_position="Lead", to_salary=75000)

    assert second.version == 2
    assert second.promotions[1].from_salary == 60000
    assert second.promotions[1].from_position == "Senior Developer"


def test_concurrent_promotion_is_rejected(repo, employee, monkeypatch):
    stale = repo.get_employee(employee.id)
    repo.append_promotion(employee.id, date(2024, 3, 1), to_position="Senior Developer", to_salary=60000)

    # second writer still holds the pre-promotion read
    monkeypatch.setattr(repo, "get_employee", lambda _id: stale)
    with pytest.raises(AppError) as exc:
        repo.append_promotion(employee.id, date(2024, 4, 1), to_position="Lead", to_salary=70000)
    assert exc.value.status_code == 409

    monkeypatch.undo()
    current = repo.get_employee(employee.id)
    assert len(current.promotions) == 1
    assert current.basic_salary == 60000


def test_status_change_is_stamped_and_fired_drop_out(repo, employee):
    fired = repo.set_status(employee.id, "fired")
    assert fired.status_change_date is not None

    assert [e.id for e in repo.list_employees()] == [employee.id]
    later = now_utc() + timedelta(days=8)
    assert repo.list_employees(now=later) == []
    assert [e.id for e in repo.list_employees(include_departed=True, now=later)] == [employee.id]


def test_contract_flag_sets_and_clears_date(repo, employee):
    sent = repo.set_contract_sent(employee.id, True, on=date(2024, 2, 1))
    assert sent.contract_sent is True
    assert sent.contract_sent_date == date(2024, 2, 1)

    cleared = repo.set_contract_sent(employee.id, False)
    assert cleared.contract_sent is False
    assert cleared.contract_sent_date is None


def test_delete_employee(repo, employee):
    repo.delete_employee(employee.id)
    with pytest.raises(AppError):
        repo.delete_employee(employee.id)


def test_salary_records_sorted_newest_first(repo, employee):
    records = plan_backfill(employee, 11, 2023, 2, 2024, date(2024, 3, 1))
    saved = repo.create_salary_records(records)
    assert all(r.id for r in saved)

    listed = repo.list_salary_records("EMP-001")
    assert [(r.month, r.year) for r in listed] == [(2, 2024), (1, 2024), (12, 2023), (11, 2023)]
    assert repo.list_salary_records("EMP-999") == []
    assert repo.get_salary_record(saved[0].id).amount == 50000


def test_duplicate_income_period_rejected(repo):
    repo.create_income_record(IncomeRecord(month=8, year=2024, usd_amount=6500, usd_rate=133.5))
    with pytest.raises(AppError) as exc:
        repo.create_income_record(IncomeRecord(month=8, year=2024, usd_amount=1, usd_rate=1))
    assert exc.value.status_code == 409
    assert len(repo.list_income_records()) == 1


def test_unique_index_backs_the_duplicate_check(repo, monkeypatch):
    repo.create_income_record(IncomeRecord(month=8, year=2024, usd_amount=6500, usd_rate=133.5))
    # simulate losing the race between the pre-check and the insert
    monkeypatch.setattr(repo, "get_income_record", lambda month, year: None)
    with pytest.raises(AppError) as exc:
        repo.create_income_record(IncomeRecord(month=8, year=2024, usd_amount=1, usd_rate=1))
    assert exc.value.status_code == 409


def test_income_records_filtered_by_period(repo):
    for month, year in [(6, 2024), (7, 2024), (8, 2024), (1, 2025)]:
        repo.create_income_record(IncomeRecord(month=month, year=year, usd_amount=100, usd_rate=130))

    selected = repo.list_income_records([(8, 2024), (6, 2024), (3, 2024)])
    assert [(r.month, r.year) for r in selected] == [(8, 2024), (6, 2024)]
    assert [(r.month, r.year) for r in repo.list_income_records()] == [(1, 2025), (8, 2024), (7, 2024), (6, 2024)]
    assert repo.list_income_records([]) == []


def test_delete_income_record(repo):
    saved = repo.create_income_record(IncomeRecord(month=8, year=2024, usd_amount=6500, usd_rate=133.5))
    repo.delete_income_record(saved.id)
    assert repo.get_income_record(8, 2024) is None
    with pytest.raises(AppError) as exc:
        repo.delete_income_record(saved.id)
    assert exc.value.status_code == 404


def test_promotion_on_document_without_version(repo):
    repo.employees.insert_one(
        {
            "employee_id": "EMP-009",
            "name": "Imported Employee",
            "position": "Developer",
            "basic_salary": 40000,
            "joining_date": "2023-04-01",
            "promotions": [],
        }
    )
    imported = repo.find_employee_by_code("EMP-009")
    assert imported.version == 0

    promoted = repo.append_promotion(imported.id, date(2024, 5, 1), to_position="Senior Developer", to_salary=48000)
    assert promoted.version == 1
    assert promoted.basic_salary == 48000
    assert promoted.promotions[0].from_salary == 40000

    again = repo.append_promotion(imported.id, date(2024, 11, 1), to_position="Lead", to_salary=55000)
    assert again.version == 2


def test_stale_write_on_document_without_version_still_conflicts(repo, monkeypatch):
    repo.employees.insert_one(
        {"employee_id": "EMP-010", "name": "Imported", "basic_salary": 1, "joining_date": "2023-04-01"}
    )
    stale = repo.find_employee_by_code("EMP-010")
    repo.append_promotion(stale.id, date(2024, 1, 1), to_position="Developer", to_salary=2)

    monkeypatch.setattr(repo, "get_employee", lambda _id: stale)
    with pytest.raises(AppError) as exc:
        repo.append_promotion(stale.id, date(2024, 2, 1), to_position="Lead", to_salary=3)
    assert exc.value.status_code == 409


def test_created_records_carry_timestamps(repo, employee):
    record = plan_backfill(employee, 5, 2024, 5, 2024, date(2024, 6, 1))[0]
    saved = repo.create_salary_record(record)
    assert saved.id
    assert saved.created_at is not None
    assert repo.get_salary_record(saved.id).created_at == saved.created_at

    income = repo.create_income_record(IncomeRecord(month=5, year=2024, usd_amount=100, usd_rate=130))
    assert income.id
    assert income.created_at is not None
