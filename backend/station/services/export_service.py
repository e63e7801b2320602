# Overview: CSV renderings of the product catalog and the stock ledger.

from __future__ import annotations

import csv
import io

from ..extensions import db
from ..models import Product, InventoryTransaction

EXPORT_TYPES = ("products", "transactions")

PRODUCT_HEADERS = [
    "Name", "Description", "Category", "Price", "Quantity In Stock",
    "Low Stock Threshold", "Unit", "Barcode", "Status", "Created At",
]

TRANSACTION_HEADERS = [
    "Product Name", "Product Category", "Transaction Type", "Quantity",
    "Previous Stock", "New Stock", "Unit Price", "Total Price", "Reference",
    "Notes", "Performed By", "Transaction Date", "Transaction Time",
]


def _date(dt) -> str:
    return dt.strftime("%Y-%m-%d") if dt else ""


def _write(headers: list[str], rows) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(headers)
    writer.writerows(rows)
    return buf.getvalue()


def products_csv() -> str:
    products = db.session.query(Product).order_by(Product.name.asc(), Product.id.asc()).all()
    rows = (
        [
            p.name,
            p.description or "",
            p.category,
            p.price,
            p.quantity_in_stock,
            p.low_stock_threshold,
            p.unit,
            p.barcode or "",
            "Active" if p.is_active else "Inactive",
            _date(p.created_at),
        ]
        for p in products
    )
    return _write(PRODUCT_HEADERS, rows)


def transactions_csv() -> str:
    txs = (
        db.session.query(InventoryTransaction)
        .order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
        .all()
    )
    rows = (
        [
            tx.product.name if tx.product else "Unknown",
            tx.product.category if tx.product else "",
            tx.type,
            tx.quantity,
            tx.previous_stock,
            tx.new_stock,
            tx.unit_price if tx.unit_price is not None else "",
            tx.total_price if tx.total_price is not None else "",
            tx.reference or "",
            tx.notes or "",
            tx.performed_by.name if tx.performed_by else "System",
            _date(tx.created_at),
            tx.created_at.strftime("%H:%M:%S") if tx.created_at else "",
        ]
        for tx in txs
    )
    return _write(TRANSACTION_HEADERS, rows)


def export_csv(export_type: str) -> tuple[str, str]:
    """Returns (csv_text, filename). Raises ValueError on unknown type."""
    if export_type == "products":
        return products_csv(), "products.csv"
    if export_type == "transactions":
        return transactions_csv(), "inventory-transactions.csv"
    raise ValueError(f"Invalid export type; must be one of: {', '.join(EXPORT_TYPES)}")
