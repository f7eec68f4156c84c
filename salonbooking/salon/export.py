"""Spreadsheet export of visit records."""

from __future__ import annotations

import datetime as dt
import io
import logging
from typing import Any, Iterable, Mapping

from openpyxl import Workbook
from openpyxl.utils import get_column_letter

from .system import parse_date, plain_number

log = logging.getLogger(__name__)

SHEET_TITLE = "Salon Visits"
EXPORT_FILENAME = "salon-visits.xlsx"
XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

COLUMNS = [
    "Date",
    "Name",
    "Contact",
    "Age",
    "Gender",
    "Start Time",
    "End Time",
    "Artist",
    "Service Type",
    "Services",
    "Filled By",
    "Subtotal",
    "Discount (%)",
    "Discount (₹)",
    "Final Total",
    "Payment Status",
    "Payment ID",
]


def format_date(value: str | dt.date | None) -> str:
    """Indian short date, ``d/m/yyyy``."""

    if not value:
        return ""
    day = parse_date(value)
    return f"{day.day}/{day.month}/{day.year}"


def visit_row(visit: Mapping[str, Any]) -> list[Any]:
    """Flatten one visit into a spreadsheet row ordered like :data:`COLUMNS`."""

    return [
        format_date(visit.get("date")),
        visit.get("name"),
        visit.get("contact"),
        visit.get("age"),
        visit.get("gender"),
        visit.get("start_time"),
        visit.get("end_time"),
        visit.get("artist"),
        visit.get("service_type"),
        ", ".join(service["name"] for service in visit.get("services") or []),
        visit.get("filled_by"),
        plain_number(visit.get("subtotal")),
        plain_number(visit.get("discount_percent")),
        plain_number(visit.get("discount_amount")),
        plain_number(visit.get("final_total")),
        visit.get("payment_status"),
        visit.get("razorpay_payment_id") or "",
    ]


def build_workbook(visits: Iterable[Mapping[str, Any]]) -> Workbook:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = SHEET_TITLE
    sheet.append(COLUMNS)

    rows = [visit_row(visit) for visit in visits]
    for row in rows:
        sheet.append(row)

    if rows:
        for index, header in enumerate(COLUMNS):
            longest = max(len(str(row[index] if row[index] is not None else "")) for row in rows)
            width = max(len(header), longest) + 2
            sheet.column_dimensions[get_column_letter(index + 1)].width = width
    return workbook


def export_visits(visits: Iterable[Mapping[str, Any]]) -> bytes:
    """Render visits as an ``.xlsx`` document and return its bytes."""

    visits = list(visits)
    buffer = io.BytesIO()
    build_workbook(visits).save(buffer)
    log.info("Exported %s visits to %s", len(visits), EXPORT_FILENAME)
    return buffer.getvalue()
