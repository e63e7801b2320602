# Overview: Human-readable bill number allocation.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Bill
from station.time_utils import day_bounds, utcnow


BILL_PREFIX = "BILL"
SEQUENCE_DIGITS = 4


def format_bill_number(day: datetime, sequence: int) -> str:
    return f"{BILL_PREFIX}-{day:%y%m%d}-{sequence:0{SEQUENCE_DIGITS}d}"


def _parse_sequence(bill_number: str | None) -> int | None:
    if not bill_number:
        return None
    tail = bill_number[-SEQUENCE_DIGITS:]
    return int(tail) if tail.isdigit() else None


def next_bill_number(now: datetime | None = None) -> str:
    """
    Next bill number for the calendar day of `now` (UTC): BILL-YYMMDD-NNNN.

    The sequence is the trailing number of the most recently created bill of
    that day plus one, or 1 for the first bill of the day.

    This is read-latest-then-increment with no lock: two requests that both
    read before either inserts get the same number. bills.bill_number is
    unique, so the second insert fails with IntegrityError and the bill
    workflow retries from scratch (billing_service.create_bill).
    """
    now = now or utcnow()
    start, end = day_bounds(now.date())

    last_bill = (
        db.session.query(Bill)
        .filter(Bill.created_at >= start, Bill.created_at <= end)
        .order_by(Bill.created_at.desc(), Bill.id.desc())
        .first()
    )

    sequence = 1
    if last_bill is not None:
        last_sequence = _parse_sequence(last_bill.bill_number)
        if last_sequence is not None:
            sequence = last_sequence + 1

    return format_bill_number(now, sequence)
