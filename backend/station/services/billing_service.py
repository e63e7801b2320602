# Overview: Service-layer operations for bills; line resolution, totals, numbering and stock side effects.

"""
Bill Workflow

create_bill runs as ONE database transaction:

1. Resolve every requested line into a CatalogLine (backed by a Service /
   Product row) or an AdhocLine (name + price supplied by the caller).
2. Check stock for catalog products, aggregated per product across lines.
3. Compute totals (caller-supplied subtotal / tax / total override them).
4. Allocate the bill number and insert the bill with its line snapshots.
5. For each catalog product line: lock the product, decrement, append one
   `sale` ledger row referencing the bill.
6. Commit.

Any failure before the commit rolls back everything, so a shortfall on the
third product never leaves the first two decremented. A bill-number
collision (unique constraint) reruns the whole workflow with a fresh number.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Union

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Bill, BillLine, Product, Service, PAYMENT_METHODS, PAYMENT_STATUSES
from ..validation import BusinessRuleError, NotFoundError, ValidationError, parse_sort
from .concurrency import run_with_retry
from .document_service import next_bill_number
from .inventory_service import InsufficientStockError, apply_sale
from station.time_utils import utcnow


PAYMENT_STATUS_ALIASES = {"paid": "completed"}

CUSTOMER_FIELDS = ("name", "phone", "email")
VEHICLE_FIELDS = ("license_plate", "make", "model", "year")

BILL_SORTABLE = {
    "created_at": Bill.created_at,
    "createdAt": Bill.created_at,
    "total": Bill.total,
    "bill_number": Bill.bill_number,
    "billNumber": Bill.bill_number,
    "customer_name": Bill.customer_name,
    "payment_status": Bill.payment_status,
}


class ServiceInactiveError(BusinessRuleError):
    def __init__(self, service_name: str):
        super().__init__(f"Service {service_name} is not active")
        self.service_name = service_name


class IncompleteItemError(BusinessRuleError):
    """A line item has neither a catalog id nor an inline name + price."""

    def __init__(self, line_type: str, index: int):
        super().__init__(f"{line_type.capitalize()} information incomplete (item {index + 1})")
        self.line_type = line_type
        self.index = index


@dataclass(frozen=True)
class CatalogLine:
    """A line backed by a persisted Service or Product."""
    line_type: str
    catalog_id: int
    name: str
    price: float
    quantity: int

    @property
    def total(self) -> float:
        return self.price * self.quantity


@dataclass(frozen=True)
class AdhocLine:
    """A caller-described line with no catalog record. Never touches stock."""
    line_type: str
    name: str
    price: float
    quantity: int

    @property
    def total(self) -> float:
        return self.price * self.quantity


ResolvedLine = Union[CatalogLine, AdhocLine]


@dataclass(frozen=True)
class BillTotals:
    subtotal: float
    tax_rate: float
    tax_amount: float
    discount: float
    total: float
    overridden: bool


# --- input parsing ---------------------------------------------------------

def _number(value, field: str, *, minimum: float = 0) -> float | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field_name=field)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field_name=field)
    if number < minimum:
        raise ValidationError(f"{field} must be >= {minimum:g}", field_name=field)
    return number


def _quantity(value, field: str) -> int:
    if value is None or value == "":
        return 1
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a positive integer", field_name=field)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value < 1:
        raise ValidationError(f"{field} must be a positive integer", field_name=field)
    return value


def _catalog_id(value) -> int | None:
    """Integer id from the payload, or None when it can't be one (e.g. "custom")."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _resolve_item(line_type: str, item, index: int) -> ResolvedLine:
    field = f"{line_type}s[{index}]"
    if not isinstance(item, dict):
        raise ValidationError(f"{field} must be an object", field_name=field)

    raw_id = item.get(line_type)
    name = (str(item["name"]).strip() if item.get("name") is not None else "") or None
    price = _number(item.get("price"), f"{field}.price")
    quantity = _quantity(item.get("quantity"), f"{field}.quantity")
    has_inline = name is not None and price is not None

    model = Service if line_type == "service" else Product
    record = None

    if raw_id not in (None, ""):
        catalog_id = _catalog_id(raw_id)
        if catalog_id is not None:
            record = db.session.get(model, catalog_id)
        if record is None:
            if has_inline:
                return AdhocLine(line_type, name, price, quantity)
            raise NotFoundError(f"{line_type.capitalize()} with ID {raw_id} not found")
    elif has_inline:
        return AdhocLine(line_type, name, price, quantity)
    else:
        raise IncompleteItemError(line_type, index)

    if line_type == "service" and not record.is_active:
        raise ServiceInactiveError(record.name)

    return CatalogLine(
        line_type=line_type,
        catalog_id=record.id,
        name=record.name,
        price=price if price is not None else record.price,
        quantity=quantity,
    )


def resolve_lines(services: list | None, products: list | None) -> list[ResolvedLine]:
    """Resolve both sections, services first, preserving request order."""
    lines: list[ResolvedLine] = []
    for line_type, items in (("service", services), ("product", products)):
        if items is None:
            continue
        if not isinstance(items, list):
            raise ValidationError(f"{line_type}s must be a list", field_name=f"{line_type}s")
        lines.extend(_resolve_item(line_type, item, i) for i, item in enumerate(items))
    return lines


def check_stock(lines: list[ResolvedLine]) -> None:
    """Catalog products must have enough stock for the quantity summed over all their lines."""
    requested: dict[int, int] = defaultdict(int)
    for line in lines:
        if isinstance(line, CatalogLine) and line.line_type == "product":
            requested[line.catalog_id] += line.quantity

    for product_id, qty in requested.items():
        product = db.session.get(Product, product_id)
        if product.quantity_in_stock < qty:
            raise InsufficientStockError(product.name, product.quantity_in_stock, qty)


def compute_totals(
    lines: list[ResolvedLine],
    *,
    discount=None,
    subtotal=None,
    tax=None,
    total=None,
    default_tax_rate: float,
) -> BillTotals:
    """
    subtotal = sum of line totals, tax = subtotal * rate, total = subtotal + tax - discount.

    A caller-supplied tax back-derives the rate from the subtotal the bill will
    store (the caller's when supplied, else the computed one). Caller-supplied
    subtotal / tax / total replace the computed values as given, without
    consistency checks, and mark the bill as overridden.
    """
    discount = _number(discount, "discount") or 0.0
    subtotal_in = _number(subtotal, "subtotal")
    tax_in = _number(tax, "tax")
    total_in = _number(total, "total")

    calc_subtotal = sum(line.total for line in lines)
    stored_subtotal = subtotal_in if subtotal_in is not None else calc_subtotal

    if tax_in is not None:
        tax_amount = tax_in
        tax_rate = tax_in / stored_subtotal if stored_subtotal else default_tax_rate
    else:
        tax_rate = default_tax_rate
        tax_amount = calc_subtotal * tax_rate

    calc_total = calc_subtotal + tax_amount - discount

    return BillTotals(
        subtotal=stored_subtotal,
        tax_rate=tax_rate,
        tax_amount=tax_amount,
        discount=discount,
        total=total_in if total_in is not None else calc_total,
        overridden=any(v is not None for v in (subtotal_in, tax_in, total_in)),
    )


def normalize_payment_status(value: str | None, default: str | None = None) -> str | None:
    if value is None or value == "":
        return default
    status = PAYMENT_STATUS_ALIASES.get(value, value)
    if status not in PAYMENT_STATUSES:
        raise ValidationError(
            f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}",
            field_name="payment_status",
        )
    return status


def normalize_payment_method(value: str | None, default: str | None = None) -> str | None:
    if value is None or value == "":
        return default
    if value not in PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}",
            field_name="payment_method",
        )
    return value


def _customer_columns(customer) -> dict:
    if customer is None:
        return {}
    if not isinstance(customer, dict):
        raise ValidationError("customer must be an object", field_name="customer")

    columns = {f"customer_{k}": customer.get(k) or None for k in CUSTOMER_FIELDS}

    vehicle = customer.get("vehicle_info") or {}
    if not isinstance(vehicle, dict):
        raise ValidationError("customer.vehicle_info must be an object", field_name="customer.vehicle_info")
    for k in VEHICLE_FIELDS:
        columns[f"vehicle_{k}"] = vehicle.get(k) or None

    year = columns["vehicle_year"]
    if year is not None:
        try:
            columns["vehicle_year"] = int(year)
        except (TypeError, ValueError):
            raise ValidationError("customer.vehicle_info.year must be an integer", field_name="customer.vehicle_info.year")
    return columns


# --- workflow --------------------------------------------------------------

def create_bill(payload: dict, *, created_by_user_id: int | None = None) -> Bill:
    """
    Run the bill workflow for a JSON payload and return the committed Bill.

    Raises:
        ValidationError: malformed fields
        NotFoundError: catalog id not found and no inline name + price
        IncompleteItemError / ServiceInactiveError / InsufficientStockError
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    customer_columns = _customer_columns(payload.get("customer"))
    payment_method = normalize_payment_method(payload.get("payment_method"), default="cash")
    payment_status = normalize_payment_status(payload.get("payment_status"), default="completed")

    def _op() -> Bill:
        lines = resolve_lines(payload.get("services"), payload.get("products"))
        if not lines:
            raise ValidationError("Bill must contain at least one service or product")
        check_stock(lines)

        totals = compute_totals(
            lines,
            discount=payload.get("discount"),
            subtotal=payload.get("subtotal"),
            tax=payload.get("tax"),
            total=payload.get("total"),
            default_tax_rate=current_app.config["DEFAULT_TAX_RATE"],
        )

        now = utcnow()
        bill = Bill(
            bill_number=next_bill_number(now),
            created_at=now,
            subtotal=totals.subtotal,
            tax_rate=totals.tax_rate,
            tax_amount=totals.tax_amount,
            discount=totals.discount,
            total=totals.total,
            totals_overridden=totals.overridden,
            payment_method=payment_method,
            payment_status=payment_status,
            notes=payload.get("notes"),
            created_by_user_id=created_by_user_id,
            **customer_columns,
        )
        for line in lines:
            bill.lines.append(_bill_line(line))

        db.session.add(bill)
        db.session.flush()  # raises IntegrityError on a duplicate bill_number

        for line in lines:
            if isinstance(line, CatalogLine) and line.line_type == "product":
                apply_sale(
                    product_id=line.catalog_id,
                    quantity=line.quantity,
                    unit_price=line.price,
                    bill_id=bill.id,
                    bill_number=bill.bill_number,
                    performed_by_user_id=created_by_user_id,
                )

        db.session.commit()

        if totals.overridden:
            current_app.logger.warning(
                "Bill %s persisted with caller-supplied totals (subtotal=%s tax=%s total=%s)",
                bill.bill_number, totals.subtotal, totals.tax_amount, totals.total,
            )
        current_app.logger.info("Created bill %s total=%s", bill.bill_number, bill.total)
        return bill

    _op.__name__ = "create_bill"

    try:
        return run_with_retry(_op, retry_on=(IntegrityError,))
    except Exception:
        db.session.rollback()
        raise


def _bill_line(line: ResolvedLine) -> BillLine:
    catalog_id = line.catalog_id if isinstance(line, CatalogLine) else None
    return BillLine(
        line_type=line.line_type,
        service_id=catalog_id if line.line_type == "service" else None,
        product_id=catalog_id if line.line_type == "product" else None,
        name=line.name,
        price=line.price,
        quantity=line.quantity,
        total=line.total,
    )


# --- reads and payment updates ---------------------------------------------

def get_bill(bill_id: int) -> Bill:
    bill = db.session.get(Bill, bill_id)
    if bill is None:
        raise NotFoundError("Bill not found")
    return bill


def list_bills(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    payment_status: str | None = None,
    payment_method: str | None = None,
    license_plate: str | None = None,
    customer_name: str | None = None,
    sort: str | None = None,
) -> list[Bill]:
    q = db.session.query(Bill)
    if start is not None:
        q = q.filter(Bill.created_at >= start)
    if end is not None:
        q = q.filter(Bill.created_at <= end)
    if payment_status:
        q = q.filter(Bill.payment_status == normalize_payment_status(payment_status))
    if payment_method:
        q = q.filter(Bill.payment_method == payment_method)
    if license_plate:
        q = q.filter(Bill.vehicle_license_plate.icontains(license_plate, autoescape=True))
    if customer_name:
        q = q.filter(Bill.customer_name.icontains(customer_name, autoescape=True))

    order = parse_sort(sort, BILL_SORTABLE, default=[Bill.created_at.desc()])
    return q.order_by(*order, Bill.id.desc()).all()


def vehicle_history(license_plate: str) -> list[Bill]:
    """Bills whose plate contains `license_plate` (case-insensitive), newest first."""
    return list_bills(license_plate=license_plate)


def update_payment_status(
    bill_id: int,
    *,
    payment_status: str | None = None,
    payment_method: str | None = None,
) -> Bill:
    """
    Change payment status and/or method. Only supplied fields change.

    No transition rules: any status can follow any other.
    """
    status = normalize_payment_status(payment_status)
    method = normalize_payment_method(payment_method)

    bill = get_bill(bill_id)
    if status is not None:
        bill.payment_status = status
    if method is not None:
        bill.payment_method = method

    db.session.commit()
    current_app.logger.info(
        "Bill %s payment updated: status=%s method=%s",
        bill.bill_number, bill.payment_status, bill.payment_method,
    )
    return bill
