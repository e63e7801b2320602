# Overview: Service-layer operations for reporting; read-only folds over bills and the catalog.

from __future__ import annotations

import calendar
from collections import defaultdict
from datetime import date, datetime, timedelta

from ..extensions import db
from ..models import Bill, Product, Service, PAYMENT_METHODS, PAYMENT_STATUSES
from ..validation import parse_sort
from .products_service import PRODUCT_SORTABLE
from station.time_utils import day_bounds, to_utc_z, utcnow


ANALYTICS_PERIODS = ("week", "month", "year")
DEFAULT_ANALYTICS_DAYS = 30
DEFAULT_TOP_LIMIT = 5


def _histogram(keys: tuple[str, ...]) -> dict[str, int]:
    return {k: 0 for k in keys}


def _bills_between(start: datetime, end: datetime, *, staff_id: int | None = None) -> list[Bill]:
    q = db.session.query(Bill).filter(Bill.created_at >= start, Bill.created_at <= end)
    if staff_id is not None:
        q = q.filter(Bill.created_by_user_id == staff_id)
    return q.order_by(Bill.created_at.asc(), Bill.id.asc()).all()


def _line_categories(bills: list[Bill]) -> tuple[dict[int, str], dict[int, str]]:
    """Current catalog category per referenced service / product id."""
    service_ids = {l.service_id for b in bills for l in b.lines if l.service_id is not None}
    product_ids = {l.product_id for b in bills for l in b.lines if l.product_id is not None}

    service_cats: dict[int, str] = {}
    if service_ids:
        rows = db.session.query(Service.id, Service.category).filter(Service.id.in_(service_ids))
        service_cats = {sid: cat for sid, cat in rows}

    product_cats: dict[int, str] = {}
    if product_ids:
        rows = db.session.query(Product.id, Product.category).filter(Product.id.in_(product_ids))
        product_cats = {pid: cat for pid, cat in rows}

    return service_cats, product_cats


def _category_of(line, service_cats: dict, product_cats: dict) -> str:
    if line.line_type == "service":
        return service_cats.get(line.service_id, "other")
    return product_cats.get(line.product_id, "other")


def daily_report(
    day: date | None = None,
    *,
    staff_id: int | None = None,
    category: str | None = None,
) -> dict:
    """
    Fold every bill created on `day` into totals.

    services:  name -> {count, total, category}
    products:  name -> {quantity, total, category}
    A category filter only narrows the per-line breakdown; bill totals and
    the payment histograms always cover every bill of the day.
    """
    day = day or utcnow().date()
    start, end = day_bounds(day)
    bills = _bills_between(start, end, staff_id=staff_id)
    service_cats, product_cats = _line_categories(bills)

    services: dict[str, dict] = {}
    products: dict[str, dict] = {}
    payment_methods = _histogram(PAYMENT_METHODS)
    payment_status = _histogram(PAYMENT_STATUSES)
    total_amount = 0.0

    for bill in bills:
        total_amount += bill.total
        payment_methods[bill.payment_method] = payment_methods.get(bill.payment_method, 0) + 1
        payment_status[bill.payment_status] = payment_status.get(bill.payment_status, 0) + 1

        for line in bill.lines:
            line_category = _category_of(line, service_cats, product_cats)
            if category and line_category != category:
                continue
            if line.line_type == "service":
                entry = services.setdefault(line.name, {"count": 0, "total": 0.0, "category": line_category})
                entry["count"] += line.quantity
            else:
                entry = products.setdefault(line.name, {"quantity": 0, "total": 0.0, "category": line_category})
                entry["quantity"] += line.quantity
            entry["total"] += line.price * line.quantity

    return {
        "date": day.isoformat(),
        "total_bills": len(bills),
        "total_amount": total_amount,
        "services": services,
        "products": products,
        "services_total": sum(s["total"] for s in services.values()),
        "products_total": sum(p["total"] for p in products.values()),
        "services_array": [{"name": name, **data} for name, data in services.items()],
        "products_array": [{"name": name, **data} for name, data in products.items()],
        "payment_methods": payment_methods,
        "payment_status": payment_status,
    }


def _months_ago(d: date, months: int) -> date:
    month_index = d.year * 12 + (d.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    return date(year, month, min(d.day, calendar.monthrange(year, month)[1]))


def resolve_analytics_range(
    period: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    *,
    today: date | None = None,
) -> tuple[datetime, datetime]:
    """
    Explicit start + end win. Otherwise `period` counts back from today
    (week = 7 days, month = 1 calendar month, year = 1 calendar year), and
    anything else means the last 30 days. The end day is always inclusive.
    """
    if start is not None and end is not None:
        return start, end

    today = today or utcnow().date()
    if period == "week":
        first = today - timedelta(days=7)
    elif period == "month":
        first = _months_ago(today, 1)
    elif period == "year":
        first = _months_ago(today, 12)
    else:
        first = today - timedelta(days=DEFAULT_ANALYTICS_DAYS)

    return day_bounds(first)[0], day_bounds(today)[1]


def _growth_rate(bills: list[Bill], start: datetime, end: datetime) -> float | None:
    """Second-half revenue vs first-half revenue, in percent. None when the first half is empty."""
    midpoint = start + (end - start) / 2
    first = sum(b.total for b in bills if b.created_at < midpoint)
    second = sum(b.total for b in bills if b.created_at >= midpoint)
    if not first:
        return None
    return (second - first) / first * 100


def _top(entries: dict[str, dict], limit: int) -> list[dict]:
    ranked = sorted(entries.items(), key=lambda kv: (-kv[1]["total"], kv[0]))
    return [{"name": name, **data} for name, data in ranked[:limit]]


def sales_analytics(start: datetime, end: datetime, *, limit: int = DEFAULT_TOP_LIMIT) -> dict:
    bills = _bills_between(start, end)
    service_cats, product_cats = _line_categories(bills)

    total_revenue = 0.0
    daily_revenue: dict[str, float] = {}
    daily_counts: dict[str, int] = defaultdict(int)
    monthly: dict[str, dict] = {}
    top_services: dict[str, dict] = {}
    top_products: dict[str, dict] = {}
    payment_methods = _histogram(PAYMENT_METHODS)
    breakdown = {"services": defaultdict(float), "products": defaultdict(float)}

    # zero-filled so charts show quiet days
    cursor = start.date()
    while cursor <= end.date():
        daily_revenue[cursor.isoformat()] = 0.0
        cursor += timedelta(days=1)

    for bill in bills:
        total_revenue += bill.total
        payment_methods[bill.payment_method] = payment_methods.get(bill.payment_method, 0) + 1

        day_key = bill.created_at.date().isoformat()
        daily_revenue[day_key] = daily_revenue.get(day_key, 0.0) + bill.total
        daily_counts[day_key] += 1

        month = monthly.setdefault(bill.created_at.strftime("%Y-%m"), {"revenue": 0.0, "count": 0})
        month["revenue"] += bill.total
        month["count"] += 1

        for line in bill.lines:
            amount = line.price * line.quantity
            line_category = _category_of(line, service_cats, product_cats)
            if line.line_type == "service":
                entry = top_services.setdefault(line.name, {"count": 0, "total": 0.0})
                entry["count"] += line.quantity
                breakdown["services"][line_category] += amount
            else:
                entry = top_products.setdefault(line.name, {"quantity": 0, "total": 0.0})
                entry["quantity"] += line.quantity
                breakdown["products"][line_category] += amount
            entry["total"] += amount

    return {
        "period": {"start": to_utc_z(start), "end": to_utc_z(end)},
        "total_sales": len(bills),
        "total_revenue": total_revenue,
        "average_sale": total_revenue / len(bills) if bills else 0,
        "growth_rate": _growth_rate(bills, start, end),
        "daily_revenue": daily_revenue,
        "daily_revenue_array": [
            {"date": d, "revenue": revenue, "count": daily_counts.get(d, 0)}
            for d, revenue in sorted(daily_revenue.items())
        ],
        "monthly_trends": monthly,
        "top_services": _top(top_services, limit),
        "top_products": _top(top_products, limit),
        "payment_methods": payment_methods,
        "category_breakdown": {k: dict(v) for k, v in breakdown.items()},
    }


def stock_status(product: Product) -> str:
    if product.quantity_in_stock <= 0:
        return "out-of-stock"
    if product.quantity_in_stock <= product.low_stock_threshold:
        return "low-stock"
    return "in-stock"


def inventory_report(
    *,
    category: str | None = None,
    low_stock: bool | None = None,
    sort: str | None = None,
) -> dict:
    """
    Catalog valuation (price x quantity_in_stock).

    The summary (totals, status counts, categories) always covers the whole
    catalog; `products` and filtered_count / filtered_value follow the
    category and lowStock filters. low_stock_count counts products that still
    have stock but are at or under their threshold; empty products are
    counted as out of stock instead.
    """
    catalog = db.session.query(Product).order_by(Product.category.asc(), Product.name.asc()).all()
    q = db.session.query(Product)
    if category:
        q = q.filter(Product.category == category)
    if low_stock:
        q = q.filter(Product.quantity_in_stock <= Product.low_stock_threshold)
    order = parse_sort(sort, PRODUCT_SORTABLE, default=[Product.name.asc()])
    products = q.order_by(*order, Product.id.asc()).all()

    categories: dict[str, dict] = {}
    total_value = 0.0
    low_count = 0
    out_count = 0

    for p in catalog:
        value = p.price * p.quantity_in_stock
        status = stock_status(p)
        if status == "low-stock":
            low_count += 1
        elif status == "out-of-stock":
            out_count += 1
        total_value += value

        cat = categories.setdefault(p.category, {"name": p.category, "count": 0, "value": 0.0})
        cat["count"] += 1
        cat["value"] += value

    rows = []
    for p in products:
        rows.append({
            "id": p.id,
            "name": p.name,
            "category": p.category,
            "price": p.price,
            "quantity_in_stock": p.quantity_in_stock,
            "low_stock_threshold": p.low_stock_threshold,
            "value": p.price * p.quantity_in_stock,
            "status": stock_status(p),
        })

    return {
        "total_products": len(catalog),
        "total_value": total_value,
        "low_stock_count": low_count,
        "out_of_stock_count": out_count,
        "categories": list(categories.values()),
        "products": rows,
        "filtered_count": len(products),
        "filtered_value": sum(r["value"] for r in rows),
    }
