"""
Monthly income reconciliation.

Client money arrives in AUD, is paid out through a USD transfer and lands in
NPR. Whatever is missing between the clean USD->NPR conversion and the NPR
actually received is booked as hidden bank cuts. Profit/loss is then reported
in all three currencies. Every ratio falls back to 0 when its denominator is
not positive so a half-filled form still previews.
"""
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Optional

from schemas import EmployeePayment, IncomeInputs, IncomeRecord

LEGACY_FIELDS = (
    "total_aud_received",
    "founder_salary_aud",
    "conversion_rate",
    "bank_cuts_npr",
    "total_employee_salaries_npr",
)


@dataclass(frozen=True)
class IncomeLedger:
    actual_converted_npr: float
    bank_cuts_hidden: float
    total_employee_payments: float
    profit_loss_npr: float
    profit_loss_aud: float
    profit_loss_usd: float

    def persisted_fields(self) -> Dict[str, float]:
        """The derived values stored on the income record."""
        return {
            "bank_cuts_hidden": self.bank_cuts_hidden,
            "profit_loss_npr": self.profit_loss_npr,
            "profit_loss_aud": self.profit_loss_aud,
            "profit_loss_usd": self.profit_loss_usd,
        }


@dataclass(frozen=True)
class LegacyLedger:
    available_npr: float
    profit_loss_npr: float
    profit_loss_aud: float


def total_employee_payments(payments: Iterable[EmployeePayment]) -> float:
    return sum(p.amount + p.charges for p in payments)


def compute_income_ledger(inputs: IncomeInputs) -> IncomeLedger:
    actual_converted_npr = inputs.usd_amount * inputs.usd_rate
    bank_cuts_hidden = actual_converted_npr - inputs.npr_received
    payments_total = total_employee_payments(inputs.employee_payments)

    profit_loss_npr = inputs.npr_received - inputs.bank_cuts_known - bank_cuts_hidden - payments_total

    aud_to_npr_rate = actual_converted_npr / inputs.original_aud_salary if inputs.original_aud_salary > 0 else 0
    profit_loss_aud = profit_loss_npr / aud_to_npr_rate if aud_to_npr_rate > 0 else 0
    profit_loss_usd = profit_loss_npr / inputs.usd_rate if inputs.usd_rate > 0 else 0

    return IncomeLedger(
        actual_converted_npr=actual_converted_npr,
        bank_cuts_hidden=bank_cuts_hidden,
        total_employee_payments=payments_total,
        profit_loss_npr=profit_loss_npr,
        profit_loss_aud=profit_loss_aud,
        profit_loss_usd=profit_loss_usd,
    )


def is_legacy_record(record: IncomeRecord) -> bool:
    if record.usd_amount is not None:
        return False
    return any(getattr(record, name) is not None for name in LEGACY_FIELDS)


def compute_legacy_ledger(record: IncomeRecord) -> LegacyLedger:
    """Old-schema records: AUD received minus the founder's cut, converted at a
    single AUD->NPR rate, minus local bank fees and employee salaries."""
    total_aud = record.total_aud_received or 0
    founder_aud = record.founder_salary_aud or 0
    rate = record.conversion_rate or 0
    bank_cuts_npr = record.bank_cuts_npr or 0

    available_npr = (total_aud - founder_aud) * rate - bank_cuts_npr
    profit_loss_npr = available_npr - (record.total_employee_salaries_npr or 0)
    profit_loss_aud = profit_loss_npr / rate if rate > 0 else 0
    return LegacyLedger(
        available_npr=available_npr,
        profit_loss_npr=profit_loss_npr,
        profit_loss_aud=profit_loss_aud,
    )


def _inputs_from_record(record: IncomeRecord) -> IncomeInputs:
    return IncomeInputs(
        original_aud_salary=record.original_aud_salary or 0,
        usd_amount=record.usd_amount or 0,
        usd_rate=record.usd_rate or 0,
        npr_received=record.npr_received or 0,
        bank_cuts_known=record.bank_cuts_known or 0,
        employee_payments=record.employee_payments,
    )


def aud_rate_for_record(record: IncomeRecord) -> Optional[float]:
    """NPR per AUD for showing salaries in AUD, or None when it can't be derived."""
    if is_legacy_record(record):
        return record.conversion_rate if record.conversion_rate and record.conversion_rate > 0 else None
    if not record.original_aud_salary or record.original_aud_salary <= 0:
        return None
    rate = (record.usd_amount or 0) * (record.usd_rate or 0) / record.original_aud_salary
    return rate if rate > 0 else None


def ledger_summary(record: IncomeRecord) -> Dict[str, Any]:
    if is_legacy_record(record):
        legacy = compute_legacy_ledger(record)
        summary: Dict[str, Any] = {"schema": "legacy", **asdict(legacy)}
        summary["total_aud_received"] = record.total_aud_received or 0
        summary["bank_cuts_npr"] = record.bank_cuts_npr or 0
        summary["total_employee_salaries_npr"] = record.total_employee_salaries_npr or 0
        return summary

    # stored derived values win over recomputed ones
    ledger = compute_income_ledger(_inputs_from_record(record))
    summary = {"schema": "current", **asdict(ledger)}
    for name in ("bank_cuts_hidden", "profit_loss_npr", "profit_loss_aud", "profit_loss_usd"):
        stored = getattr(record, name)
        if stored is not None:
            summary[name] = stored
    return summary
