import logging
import logging.config
import os
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import jwt
from fastapi import Depends, FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext

from config import Settings, get_settings, logging_config
from database import db, ensure_indexes
from errors import AppError, register_exception_handlers
from income_ledger import compute_income_ledger, ledger_summary
from payroll import build_payroll_snapshot, dashboard_stats, plan_backfill
from payslip import payslip_filename, render_payslip
from repository import PayrollRepository, ensure_bootstrap_users
from salary_timeline import has_joined_by_month, iter_months, month_key, resolve_month
from schemas import (
    BackfillRequest,
    ContractRequest,
    Employee,
    EmployeeCreate,
    EmployeeUpdate,
    IncomeInputs,
    IncomeRecord,
    IncomeRecordCreate,
    LoginRequest,
    LoginResponse,
    PromotionRequest,
    SalaryRecord,
    SalaryRecordCreate,
    StatusRequest,
)

logging.config.dictConfig(logging_config(get_settings().log_level))
logger = logging.getLogger(__name__)

app = FastAPI(title="Sparkcode Payroll Dashboard API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


# ----------------------
# Utilities & Auth
# ----------------------
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)

ACCESS_DENIED = "Access denied. Only authorized email addresses can sign in."
MAX_PERIODS = 120


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def issue_token(email: str, settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": email,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=settings.token_ttl_minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


def parse_token(token: str, settings: Settings) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def get_repository() -> PayrollRepository:
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return PayrollRepository(db)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
    repo: PayrollRepository = Depends(get_repository),
) -> Dict[str, Any]:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    payload = parse_token(credentials.credentials, settings)
    email = payload.get("sub")
    # The allow-list is re-checked on every request so removing an address revokes access
    if not settings.is_email_allowed(email):
        raise HTTPException(status_code=403, detail=ACCESS_DENIED)
    user = repo.get_user(email)
    if not user or user.get("is_active") is not True:
        raise HTTPException(status_code=401, detail="User not active or not found")
    return {
        "email": user["email"],
        "name": user.get("name", user["email"]),
        "is_founder": settings.is_founder(user["email"]),
    }


def _parse_period(value: str) -> Tuple[int, int]:
    """Parse a "YYYY-MM" period into (month, year)."""
    try:
        year_s, month_s = value.strip().split("-", 1)
        year, month = int(year_s), int(month_s)
    except ValueError:
        raise AppError(422, "validation_error", f"Invalid period '{value}', expected YYYY-MM")
    if not 1 <= month <= 12:
        raise AppError(422, "validation_error", f"Invalid month in period '{value}'")
    return month, year


def _requested_periods(
    months: Optional[str], start: Optional[str], end: Optional[str]
) -> Optional[List[Tuple[int, int]]]:
    if months:
        periods = [_parse_period(m) for m in months.split(",") if m.strip()]
        if len(periods) > MAX_PERIODS:
            raise AppError(422, "validation_error", f"At most {MAX_PERIODS} periods can be requested")
        return periods
    if start or end:
        if not (start and end):
            raise AppError(422, "validation_error", "Both start and end are required for a range")
        start_month, start_year = _parse_period(start)
        end_month, end_year = _parse_period(end)
        if month_key(end_year, end_month) - month_key(start_year, start_month) >= MAX_PERIODS:
            raise AppError(422, "validation_error", f"A range can span at most {MAX_PERIODS} months")
        return list(iter_months(start_month, start_year, end_month, end_year))
    return None


def _income_view(record: IncomeRecord, employees: List[Employee], founder: bool) -> Dict[str, Any]:
    data = record.model_dump(mode="json")
    if not founder:
        data.pop("founder_salary_aud", None)
    data["ledger"] = ledger_summary(record)
    data["payroll"] = asdict(build_payroll_snapshot(employees, record))
    return data


# ----------------------
# Startup: indexes and bootstrap users
# ----------------------
@app.on_event("startup")
def seed_users():
    if db is None:
        return
    settings = get_settings()
    ensure_indexes(db)
    if not settings.bootstrap_password:
        return
    created = ensure_bootstrap_users(
        PayrollRepository(db), settings.allowed_emails, hash_password(settings.bootstrap_password)
    )
    if created:
        logger.info("Seeded %d allow-listed users", created)


# ----------------------
# Basic routes
# ----------------------
@app.get("/")
def root():
    return {"message": "Sparkcode Payroll Dashboard Backend", "status": "ok"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    settings = get_settings()
    if db is not None:
        response["database"] = "✅ Available"
        response["database_url"] = "✅ Set" if settings.database_url else "❌ Not Set"
        response["database_name"] = "✅ Set" if settings.database_name else "❌ Not Set"
        try:
            response["collections"] = db.list_collection_names()
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
        except Exception as e:
            logger.warning("Database diagnostics failed: %s", e)
            response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
    return response


# ----------------------
# Auth endpoints
# ----------------------
@app.post("/auth/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    settings: Settings = Depends(get_settings),
    repo: PayrollRepository = Depends(get_repository),
):
    if not settings.is_email_allowed(payload.email):
        logger.warning("Rejected sign-in for non allow-listed address %s", payload.email)
        raise HTTPException(status_code=403, detail=ACCESS_DENIED)
    user = repo.get_user(payload.email)
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="User is inactive")
    repo.touch_user(user["email"])
    token = issue_token(user["email"], settings)
    return LoginResponse(email=user["email"], name=user.get("name", user["email"]), token=token)


@app.get("/auth/me")
def me(current=Depends(get_current_user)):
    return current


# ----------------------
# Dashboard
# ----------------------
@app.get("/dashboard/stats")
def stats(current=Depends(get_current_user), repo: PayrollRepository = Depends(get_repository)):
    return dashboard_stats(repo.list_employees())


# ----------------------
# Employees
# ----------------------
@app.get("/employees", response_model=List[Employee])
def list_employees(
    include_departed: bool = False,
    current=Depends(get_current_user),
    repo: PayrollRepository = Depends(get_repository),
):
    return repo.list_employees(include_departed=include_departed)


@app.post("/employees", response_model=Employee, status_code=201)
def create_employee(
    payload: EmployeeCreate,
    current=Depends(get_current_user),
    repo: PayrollRepository = Depends(get_repository),
):
    return repo.create_employee(payload)


@app.get("/employees/{employee_id}", response_model=Employee)
def get_employee(employee_id: str, current=Depends(get_current_user), repo: PayrollRepository = Depends(get_repository)):
    return repo.get_employee(employee_id)


@app.patch("/employees/{employee_id}", response_model=Employee)
def update_employee(
    employee_id: str,
    payload: EmployeeUpdate,
    current=Depends(get_current_user),
    repo: PayrollRepository = Depends(get_repository),
):
    return repo.update_employee(employee_id, payload)


@app.delete("/employees/{employee_id}", status_code=204)
def delete_employee(employee_id: str, current=Depends(get_current_user), repo: PayrollRepository = Depends(get_repository)):
    repo.delete_employee(employee_id)
    return Response(status_code=204)


@app.post("/employees/{employee_id}/status", response_model=Employee)
def change_status(
    employee_id: str,
    payload: StatusRequest,
    current=Depends(get_current_user),
    repo: PayrollRepository = Depends(get_repository),
):
    return repo.set_status(employee_id, payload.status)


@app.post("/employees/{employee_id}/contract", response_model=Employee)
def change_contract(
    employee_id: str,
    payload: ContractRequest,
    current=Depends(get_current_user),
    repo: PayrollRepository = Depends(get_repository),
):
    return repo.set_contract_sent(employee_id, payload.contract_sent)


@app.post("/employees/{employee_id}/promotions", response_model=Employee)
def promote(
    employee_id: str,
    payload: PromotionRequest,
    current=Depends(get_current_user),
    repo: PayrollRepository = Depends(get_repository),
):
    return repo.append_promotion(
        employee_id,
        payload.date,
        to_position=payload.to_position,
        to_salary=payload.to_salary,
        notes=payload.notes,
    )


@app.get("/employees/{employee_id}/timeline")
def timeline(
    employee_id: str,
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=1900),
    current=Depends(get_current_user),
    repo: PayrollRepository = Depends(get_repository),
):
    employee = repo.get_employee(employee_id)
    salary, position = resolve_month(employee, month, year)
    return {
        "employee_id": employee.employee_id,
        "month": month,
        "year": year,
        "has_joined": has_joined_by_month(employee, month, year),
        "salary": salary,
        "position": position,
    }


# ----------------------
# Salary records
# ----------------------
@app.get("/salary-records", response_model=List[SalaryRecord])
def list_salary_records(
    employee_id: Optional[str] = None,
    current=Depends(get_current_user),
    repo: PayrollRepository = Depends(get_repository),
):
    return repo.list_salary_records(employee_id)


@app.post("/salary-records", response_model=SalaryRecord, status_code=201)
def create_salary_record(
    payload: SalaryRecordCreate,
    current=Depends(get_current_user),
    repo: PayrollRepository = Depends(get_repository),
):
    employee = repo.find_employee_by_code(payload.employee_id)
    record = SalaryRecord(**payload.model_dump(), employee_name=employee.name)
    return repo.create_salary_record(record)


@app.post("/salary-records/backfill", response_model=List[SalaryRecord], status_code=201)
def backfill_salary_records(
    payload: BackfillRequest,
    current=Depends(get_current_user),
    repo: PayrollRepository = Depends(get_repository),
):
    employee = repo.find_employee_by_code(payload.employee_id)
    records = plan_backfill(
        employee,
        payload.start_month,
        payload.start_year,
        payload.end_month,
        payload.end_year,
        payload.payment_date,
        resolve_salary=payload.resolve_salary,
    )
    return repo.create_salary_records(records)


@app.get("/salary-records/{record_id}/payslip")
def download_payslip(
    record_id: str,
    current=Depends(get_current_user),
    settings: Settings = Depends(get_settings),
    repo: PayrollRepository = Depends(get_repository),
):
    record = repo.get_salary_record(record_id)
    employee = repo.find_employee_by_code(record.employee_id)
    pdf = render_payslip(employee, record, settings.company)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{payslip_filename(employee, record)}"'},
    )


# ----------------------
# Income records
# ----------------------
@app.get("/income-records")
def list_income_records(
    months: Optional[str] = Query(None, description="Comma separated YYYY-MM periods"),
    start: Optional[str] = Query(None, description="First period of a range, YYYY-MM"),
    end: Optional[str] = Query(None, description="Last period of a range, YYYY-MM"),
    current=Depends(get_current_user),
    repo: PayrollRepository = Depends(get_repository),
):
    periods = _requested_periods(months, start, end)
    records = repo.list_income_records(periods)
    employees = repo.list_employees()
    items = [_income_view(r, employees, current["is_founder"]) for r in records]
    return {"count": len(items), "items": items}


@app.post("/income-records/preview")
def preview_income(payload: IncomeInputs, current=Depends(get_current_user)):
    return asdict(compute_income_ledger(payload))


@app.post("/income-records", status_code=201)
def create_income_record(
    payload: IncomeRecordCreate,
    current=Depends(get_current_user),
    repo: PayrollRepository = Depends(get_repository),
):
    ledger = compute_income_ledger(payload)
    record = IncomeRecord(**payload.model_dump(), **ledger.persisted_fields())
    saved = repo.create_income_record(record)
    return _income_view(saved, repo.list_employees(), current["is_founder"])


@app.delete("/income-records/{record_id}", status_code=204)
def delete_income_record(record_id: str, current=Depends(get_current_user), repo: PayrollRepository = Depends(get_repository)):
    repo.delete_income_record(record_id)
    return Response(status_code=204)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
