"""
Database Schemas for the payroll dashboard

Each stored model corresponds to a MongoDB collection. Dates are kept as ISO
strings in the documents and parsed back into `date`/`datetime` on read.
"""
import datetime as dt
from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

EmployeeStatus = Literal["probation", "parttime", "fulltime", "on notice", "fired", "resigned"]
SalaryStatus = Literal["paid", "pending"]


class Document(BaseModel):
    """Base for anything read back from the store. `id` is the stringified _id."""
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = Field(None, description="Document id assigned by the store")


class User(BaseModel):
    """Dashboard users. Collection: "user"""
    email: str = Field(..., min_length=1, description="Login identifier, must be on the allow-list")
    name: str = Field(..., description="Full name to display")
    password_hash: str = Field(..., description="passlib hash of the password")
    is_active: bool = Field(True, description="Whether user can log in")


class Promotion(BaseModel):
    """A position/salary transition, appended to Employee.promotions"""
    date: dt.date = Field(..., description="Effective date; the new salary is paid from the following month")
    from_position: str
    to_position: str
    from_salary: float
    to_salary: float
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class EmployeeBase(BaseModel):
    employee_id: str = Field(..., min_length=1, description="Externally assigned, unique")
    name: str = Field(..., min_length=1)
    address: str = ""
    position: str = ""
    basic_salary: float = Field(..., ge=0, description="Current salary, reflects the latest promotion")
    currency: str = "Rs"
    joining_date: date
    email: Optional[str] = None
    phone: Optional[str] = None


class EmployeeCreate(EmployeeBase):
    status: EmployeeStatus = "probation"


class EmployeeUpdate(BaseModel):
    """Partial update. Position and salary changes go through promotions."""
    name: Optional[str] = Field(None, min_length=1)
    address: Optional[str] = None
    currency: Optional[str] = None
    joining_date: Optional[date] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @model_validator(mode="after")
    def _no_null_required_fields(self):
        # email and phone may be cleared, the rest must stay set on the employee
        cleared = [
            name
            for name in ("name", "address", "currency", "joining_date")
            if name in self.model_fields_set and getattr(self, name) is None
        ]
        if cleared:
            raise ValueError(f"{', '.join(cleared)} cannot be null")
        return self


class Employee(Document, EmployeeBase):
    """Employees. Collection: "employees"""
    status: EmployeeStatus = "probation"
    status_change_date: Optional[datetime] = None
    contract_sent: bool = False
    contract_sent_date: Optional[date] = None
    promotions: List[Promotion] = Field(default_factory=list)
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PromotionRequest(BaseModel):
    date: dt.date
    to_position: str = Field(..., min_length=1)
    to_salary: float = Field(..., ge=0)
    notes: Optional[str] = None


class StatusRequest(BaseModel):
    status: EmployeeStatus


class ContractRequest(BaseModel):
    contract_sent: bool


class SalaryItem(BaseModel):
    description: str
    amount: float


class SalaryRecordCreate(BaseModel):
    employee_id: str
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1900)
    amount: float = 0
    items: Optional[List[SalaryItem]] = None
    payment_date: date
    status: SalaryStatus = "paid"

    @model_validator(mode="after")
    def _amount_from_items(self):
        # Itemised records always carry the item total as their amount
        if self.items:
            self.amount = sum(item.amount for item in self.items)
        return self


class SalaryRecord(Document, SalaryRecordCreate):
    """Salary payments. Collection: "salaryrecords"""
    employee_name: str
    created_at: Optional[datetime] = None


class BackfillRequest(BaseModel):
    employee_id: str
    start_month: int = Field(..., ge=1, le=12)
    start_year: int = Field(..., ge=1900)
    end_month: int = Field(..., ge=1, le=12)
    end_year: int = Field(..., ge=1900)
    payment_date: date
    resolve_salary: bool = Field(
        False,
        description="Use the promotion timeline instead of the current basic salary for each month",
    )

    @model_validator(mode="after")
    def _ordered(self):
        if (self.end_year, self.end_month) < (self.start_year, self.start_month):
            raise ValueError("end period must not be before start period")
        return self


class EmployeePayment(BaseModel):
    employee_name: str = ""
    amount: float = 0
    charges: float = 0


class IncomeInputs(BaseModel):
    """What the user types into the income form"""
    original_aud_salary: float = 0
    usd_amount: float = 0
    usd_rate: float = 0
    npr_received: float = 0
    bank_cuts_known: float = 0
    employee_payments: List[EmployeePayment] = Field(default_factory=list)

    @field_validator("employee_payments")
    @classmethod
    def _drop_blank_payments(cls, payments: List[EmployeePayment]) -> List[EmployeePayment]:
        # Empty rows add nothing to the totals; everything else is kept so the
        # stored list always matches what the ledger was computed from.
        return [
            EmployeePayment(employee_name=p.employee_name.strip(), amount=p.amount, charges=p.charges)
            for p in payments
            if p.amount or p.charges
        ]


class IncomeRecordCreate(IncomeInputs):
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1900)


class IncomeRecord(Document):
    """Monthly income. Collection: "incomerecords"

    Old documents carry the legacy fields instead of the current ones, so
    every amount is optional here.
    """
    month: int
    year: int
    original_aud_salary: Optional[float] = None
    usd_amount: Optional[float] = None
    usd_rate: Optional[float] = None
    npr_received: Optional[float] = None
    bank_cuts_known: Optional[float] = None
    bank_cuts_hidden: Optional[float] = None
    employee_payments: List[EmployeePayment] = Field(default_factory=list)
    profit_loss_npr: Optional[float] = None
    profit_loss_aud: Optional[float] = None
    profit_loss_usd: Optional[float] = None
    # legacy schema
    total_aud_received: Optional[float] = None
    founder_salary_aud: Optional[float] = None
    conversion_rate: Optional[float] = None
    bank_cuts_npr: Optional[float] = None
    total_employee_salaries_npr: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    email: EmailStr
    name: str
    token: str
