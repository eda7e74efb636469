from calendar import month_name
from datetime import datetime
from io import BytesIO
from typing import List, Tuple

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from config import CompanyInfo
from salary_timeline import resolve_month
from schemas import Employee, SalaryRecord

MARGIN = 56
ROW_H = 22


def _money(amount: float) -> str:
    return f"Rs. {amount:,.2f}"


def _safe(val) -> str:
    if val is None:
        return "-"
    s = str(val).strip()
    return s if s else "-"


def payslip_filename(employee: Employee, record: SalaryRecord) -> str:
    return f"Payslip_{employee.employee_id}_{record.year}_{record.month:02d}.pdf"


def build_payslip_rows(employee: Employee, record: SalaryRecord) -> List[Tuple[str, str]]:
    """Table rows for the slip. The salary is taken from the promotion timeline
    for the record's month, not from the stored amount."""
    salary, _ = resolve_month(employee, record.month, record.year)
    return [
        ("EARNINGS", ""),
        ("Basic Salary", _money(salary)),
        ("Total Earnings", _money(salary)),
        ("", ""),
        ("DEDUCTIONS", ""),
        ("Total Deductions", _money(0)),
        ("", ""),
        ("NET SALARY", _money(salary)),
    ]


def render_payslip(employee: Employee, record: SalaryRecord, company: CompanyInfo) -> bytes:
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    width, height = A4
    content_w = width - 2 * MARGIN
    _, position = resolve_month(employee, record.month, record.year)

    y = height - MARGIN

    # Company header
    c.setFont("Helvetica-Bold", 22)
    c.drawString(MARGIN, y, company.name)
    y -= 20
    c.setFont("Helvetica", 10)
    for line in (company.address, f"PAN No: {company.pan_no}", f"Email: {company.email}", f"Phone: {company.phone}"):
        c.drawString(MARGIN, y, line)
        y -= 14

    y -= 24
    c.setFont("Helvetica-Bold", 18)
    c.drawCentredString(width / 2, y, "SALARY SLIP")
    y -= 24

    # Employee and period boxes
    box_w = content_w / 2 - 6
    box_h = 78
    c.setFillColorRGB(0.96, 0.96, 0.96)
    c.rect(MARGIN, y - box_h, box_w, box_h, stroke=0, fill=1)
    c.rect(MARGIN + box_w + 12, y - box_h, box_w, box_h, stroke=0, fill=1)
    c.setFillColorRGB(0, 0, 0)

    left = MARGIN + 10
    right = MARGIN + box_w + 22
    c.setFont("Helvetica-Bold", 11)
    c.drawString(left, y - 18, "Employee Information:")
    c.drawString(right, y - 18, "Pay Period:")
    c.setFont("Helvetica", 10)
    c.drawString(left, y - 36, f"Name: {_safe(employee.name)}")
    c.drawString(left, y - 52, f"Address: {_safe(employee.address)}")
    if position:
        c.drawString(left, y - 68, f"Position: {position}")
    c.drawString(right, y - 36, f"Month: {month_name[record.month]} {record.year}")
    c.drawString(right, y - 52, f"Pay Date: {record.payment_date.strftime('%d/%m/%Y')}")
    c.drawString(right, y - 68, f"Employee ID: {employee.employee_id}")
    y -= box_h + 24

    # Earnings / deductions table
    c.setFillColorRGB(0, 0, 0)
    c.rect(MARGIN, y - ROW_H, content_w, ROW_H, stroke=1, fill=1)
    c.setFillColorRGB(1, 1, 1)
    c.setFont("Helvetica-Bold", 10)
    c.drawString(MARGIN + 8, y - 15, "Description")
    c.drawRightString(MARGIN + content_w - 8, y - 15, "Amount")
    y -= ROW_H

    for label, amount in build_payslip_rows(employee, record):
        net = label == "NET SALARY"
        if net:
            c.setFillColorRGB(0.83, 0.93, 0.85)
            c.rect(MARGIN, y - ROW_H, content_w, ROW_H, stroke=0, fill=1)
        c.setFillColorRGB(0, 0, 0)
        c.rect(MARGIN, y - ROW_H, content_w, ROW_H, stroke=1, fill=0)
        bold = net or label in ("EARNINGS", "Total Earnings", "DEDUCTIONS")
        c.setFont("Helvetica-Bold" if bold else "Helvetica", 12 if net else 10)
        c.drawString(MARGIN + 8, y - 15, label)
        c.drawRightString(MARGIN + content_w - 8, y - 15, amount)
        y -= ROW_H

    # Footer
    y -= 30
    c.setFont("Helvetica", 8)
    c.setFillColorRGB(0.4, 0.4, 0.4)
    generated = datetime.now().strftime("%d/%m/%Y %H:%M")
    c.drawCentredString(width / 2, y, f"Generated on: {generated} | This is a computer-generated payslip.")
    c.drawCentredString(width / 2, y - 12, "All amounts are in Nepalese currency unless stated.")

    c.showPage()
    c.save()
    return buf.getvalue()
