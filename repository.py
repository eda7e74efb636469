"""
Document-store access for employees, salary records, income records and users.

This is the only module that builds Mongo queries. Reads return schema models,
missing documents raise a 404 AppError and write conflicts a 409 AppError.
"""
import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from bson.errors import InvalidId
from bson.objectid import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import COLLECTIONS, create_document, from_document, now_utc, to_document
from errors import conflict, not_found
from payroll import is_listed
from schemas import (
    Employee,
    EmployeeCreate,
    EmployeeStatus,
    EmployeeUpdate,
    IncomeRecord,
    Promotion,
    SalaryRecord,
    User,
)

logger = logging.getLogger(__name__)


def _object_id(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


class PayrollRepository:
    def __init__(self, database: Database):
        self.db = database
        self.users = database[COLLECTIONS["users"]]
        self.employees = database[COLLECTIONS["employees"]]
        self.salary_records = database[COLLECTIONS["salary_records"]]
        self.income_records = database[COLLECTIONS["income_records"]]

    # ----------------------
    # Users
    # ----------------------
    def get_user(self, email: str) -> Optional[Dict[str, Any]]:
        doc = self.users.find_one({"email": email.strip().lower()})
        return from_document(doc) if doc else None

    def create_user(self, user: User) -> str:
        user = user.model_copy(update={"email": user.email.strip().lower()})
        try:
            return create_document(COLLECTIONS["users"], user, database=self.db)
        except DuplicateKeyError:
            raise conflict("User already exists", email=user.email)

    def touch_user(self, email: str) -> None:
        self.users.update_one({"email": email.strip().lower()}, {"$set": {"updated_at": now_utc()}})

    # ----------------------
    # Employees
    # ----------------------
    def _employee_filter(self, employee_id: str) -> Dict[str, Any]:
        oid = _object_id(employee_id)
        if oid is None:
            raise not_found("Employee not found", id=employee_id)
        return {"_id": oid}

    def list_employees(self, include_departed: bool = False, now: Optional[datetime] = None) -> List[Employee]:
        cursor = self.employees.find({}).sort("created_at", DESCENDING)
        employees = [Employee(**from_document(d)) for d in cursor]
        if include_departed:
            return employees
        return [e for e in employees if is_listed(e, now)]

    def get_employee(self, employee_id: str) -> Employee:
        doc = self.employees.find_one(self._employee_filter(employee_id))
        if not doc:
            raise not_found("Employee not found", id=employee_id)
        return Employee(**from_document(doc))

    def find_employee_by_code(self, code: str) -> Employee:
        doc = self.employees.find_one({"employee_id": code})
        if not doc:
            raise not_found("Employee not found", employee_id=code)
        return Employee(**from_document(doc))

    def create_employee(self, payload: EmployeeCreate) -> Employee:
        doc = to_document(payload)
        doc.update({"contract_sent": False, "promotions": [], "version": 0})
        try:
            new_id = create_document(COLLECTIONS["employees"], doc, database=self.db)
        except DuplicateKeyError:
            logger.warning("Rejected duplicate employee_id '%s'", payload.employee_id)
            raise conflict("An employee with this employee ID already exists", employee_id=payload.employee_id)
        logger.info("Employee '%s' created with id %s", payload.employee_id, new_id)
        return self.get_employee(new_id)

    def update_employee(self, employee_id: str, updates: EmployeeUpdate) -> Employee:
        changes = updates.model_dump(mode="json", exclude_unset=True)
        return self._set(employee_id, changes)

    def _set(self, employee_id: str, changes: Dict[str, Any]) -> Employee:
        changes = dict(changes, updated_at=now_utc())
        doc = self.employees.find_one_and_update(
            self._employee_filter(employee_id),
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            raise not_found("Employee not found", id=employee_id)
        return Employee(**from_document(doc))

    def delete_employee(self, employee_id: str) -> None:
        result = self.employees.delete_one(self._employee_filter(employee_id))
        if result.deleted_count == 0:
            raise not_found("Employee not found", id=employee_id)
        logger.info("Employee %s deleted", employee_id)

    def set_status(self, employee_id: str, status: EmployeeStatus) -> Employee:
        return self._set(employee_id, {"status": status, "status_change_date": now_utc()})

    def set_contract_sent(self, employee_id: str, sent: bool, on: Optional[date] = None) -> Employee:
        sent_date = (on or date.today()).isoformat() if sent else None
        return self._set(employee_id, {"contract_sent": sent, "contract_sent_date": sent_date})

    def append_promotion(
        self,
        employee_id: str,
        effective: date,
        to_position: str,
        to_salary: float,
        notes: Optional[str] = None,
    ) -> Employee:
        """Append a promotion taken from the employee's current position and salary.

        The write only lands if nobody else promoted the employee since we read
        it; otherwise a conflict is raised and the caller retries with fresh data.
        """
        current = self.get_employee(employee_id)
        promotion = Promotion(
            date=effective,
            from_position=current.position,
            to_position=to_position,
            from_salary=current.basic_salary,
            to_salary=to_salary,
            notes=notes,
            created_at=now_utc(),
        )
        # documents written outside create_employee may carry no version yet
        if current.version:
            version_filter: Dict[str, Any] = {"version": current.version}
        else:
            version_filter = {"$or": [{"version": 0}, {"version": {"$exists": False}}]}
        doc = self.employees.find_one_and_update(
            {"_id": ObjectId(current.id), **version_filter},
            {
                "$push": {"promotions": promotion.model_dump(mode="json", exclude_none=True)},
                "$set": {"position": to_position, "basic_salary": to_salary, "updated_at": now_utc()},
                "$inc": {"version": 1},
            },
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            logger.warning("Promotion for employee %s lost a concurrent update (version %s)", employee_id, current.version)
            raise conflict("Employee was modified concurrently, reload and try again", id=employee_id)
        logger.info(
            "Employee %s promoted %s -> %s (%.2f -> %.2f) effective %s",
            employee_id, current.position, to_position, current.basic_salary, to_salary, effective.isoformat(),
        )
        return Employee(**from_document(doc))

    # ----------------------
    # Salary records
    # ----------------------
    def list_salary_records(self, employee_id: Optional[str] = None) -> List[SalaryRecord]:
        query = {"employee_id": employee_id} if employee_id else {}
        cursor = self.salary_records.find(query).sort([("year", DESCENDING), ("month", DESCENDING)])
        return [SalaryRecord(**from_document(d)) for d in cursor]

    def get_salary_record(self, record_id: str) -> SalaryRecord:
        oid = _object_id(record_id)
        doc = self.salary_records.find_one({"_id": oid}) if oid else None
        if not doc:
            raise not_found("Salary record not found", id=record_id)
        return SalaryRecord(**from_document(doc))

    def create_salary_record(self, record: SalaryRecord) -> SalaryRecord:
        new_id = create_document(COLLECTIONS["salary_records"], record, database=self.db)
        logger.info("Salary record %s created for %s %d-%02d", new_id, record.employee_id, record.year, record.month)
        return self.get_salary_record(new_id)

    def create_salary_records(self, records: Iterable[SalaryRecord]) -> List[SalaryRecord]:
        records = list(records)
        if not records:
            return []
        now = now_utc()
        docs = [dict(to_document(r), created_at=now, updated_at=now) for r in records]
        result = self.salary_records.insert_many(docs)
        logger.info("Inserted %d salary records", len(result.inserted_ids))
        return [r.model_copy(update={"id": str(i)}) for r, i in zip(records, result.inserted_ids)]

    # ----------------------
    # Income records
    # ----------------------
    def list_income_records(self, periods: Optional[Iterable[Tuple[int, int]]] = None) -> List[IncomeRecord]:
        """All income records, or only those for the given (month, year) pairs."""
        query: Dict[str, Any] = {}
        if periods is not None:
            pairs = sorted(set(periods))
            if not pairs:
                return []
            query = {"$or": [{"month": m, "year": y} for m, y in pairs]}
        cursor = self.income_records.find(query).sort([("year", DESCENDING), ("month", DESCENDING)])
        return [IncomeRecord(**from_document(d)) for d in cursor]

    def get_income_record(self, month: int, year: int) -> Optional[IncomeRecord]:
        doc = self.income_records.find_one({"month": month, "year": year})
        return IncomeRecord(**from_document(doc)) if doc else None

    def create_income_record(self, record: IncomeRecord) -> IncomeRecord:
        if self.get_income_record(record.month, record.year) is not None:
            raise conflict("Income record for this month already exists", month=record.month, year=record.year)
        try:
            new_id = create_document(COLLECTIONS["income_records"], record, database=self.db)
        except DuplicateKeyError:
            # another request created the same period between the check and the insert
            raise conflict("Income record for this month already exists", month=record.month, year=record.year)
        logger.info("Income record %s created for %d-%02d", new_id, record.year, record.month)
        return self.get_income_record(record.month, record.year)

    def delete_income_record(self, record_id: str) -> None:
        oid = _object_id(record_id)
        result = self.income_records.delete_one({"_id": oid}) if oid else None
        if result is None or result.deleted_count == 0:
            raise not_found("Income record not found", id=record_id)
        logger.info("Income record %s deleted", record_id)


def ensure_bootstrap_users(repo: PayrollRepository, emails: Iterable[str], password_hash: str) -> int:
    created = 0
    for email in emails:
        if repo.get_user(email) is None:
            repo.create_user(User(email=email, name=email.split("@")[0], password_hash=password_hash))
            created += 1
    return created

