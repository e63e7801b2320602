# Overview: Service-layer operations for inventory; stock changes and the transaction ledger.

# backend/station/services/inventory_service.py
"""
Inventory Invariants (authoritative)

Stock model:
- Product.quantity_in_stock is the stored on-hand counter.
- Every change to it appends one InventoryTransaction capturing
  previous_stock / new_stock, in the same DB transaction as the product write.
- quantity_in_stock never goes negative: sale / damaged movements larger than
  the current stock fail with InsufficientStockError and change nothing.

Movement types:
- purchase, return: add quantity
- sale, damaged:    remove quantity
- adjustment:       set stock to quantity (absolute, not a delta); the ledger
                    row records |new - previous| as its quantity

Time semantics:
- startDate / endDate filters are inclusive; a date-only endDate covers the whole day.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Product, InventoryTransaction, TRANSACTION_TYPES
from ..validation import BusinessRuleError, NotFoundError, ValidationError, parse_sort
from .concurrency import lock_for_update


INBOUND_TYPES = ("purchase", "return")
OUTBOUND_TYPES = ("sale", "damaged")

TRANSACTION_SORTABLE = {
    "created_at": InventoryTransaction.created_at,
    "createdAt": InventoryTransaction.created_at,
    "type": InventoryTransaction.type,
    "quantity": InventoryTransaction.quantity,
    "total_price": InventoryTransaction.total_price,
}


class InsufficientStockError(BusinessRuleError):
    """Raised when a sale / damaged movement exceeds the stock on hand."""

    def __init__(self, product_name: str, available: int, requested: int):
        super().__init__(f"Not enough stock for {product_name}. Available: {available}")
        self.product_name = product_name
        self.available = available
        self.requested = requested


def compute_new_stock(movement_type: str, previous_stock: int, quantity: int, product_name: str = "product") -> int:
    """Pure stock arithmetic for one movement. Raises on unknown type or shortfall."""
    if movement_type in INBOUND_TYPES:
        return previous_stock + quantity
    if movement_type == "adjustment":
        return quantity
    if movement_type in OUTBOUND_TYPES:
        if previous_stock < quantity:
            raise InsufficientStockError(product_name, previous_stock, quantity)
        return previous_stock - quantity
    raise ValidationError(
        f"Invalid transaction type; must be one of: {', '.join(TRANSACTION_TYPES)}",
        field_name="type",
    )


def _load_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def _record_transaction(
    *,
    product: Product,
    movement_type: str,
    quantity: int,
    previous_stock: int,
    new_stock: int,
    unit_price: float | None,
    performed_by_user_id: int | None,
    reference: str | None = None,
    reference_id: int | None = None,
    reference_model: str | None = None,
    notes: str | None = None,
) -> InventoryTransaction:
    """Append one ledger row without committing."""
    price = unit_price if unit_price is not None else product.price
    tx = InventoryTransaction(
        product_id=product.id,
        type=movement_type,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
        unit_price=price,
        total_price=price * quantity if price is not None else None,
        reference=reference,
        reference_id=reference_id,
        reference_model=reference_model,
        notes=notes,
        performed_by_user_id=performed_by_user_id,
    )
    db.session.add(tx)
    return tx


def adjust_stock(
    *,
    product_id: int,
    quantity: int,
    movement_type: str,
    unit_price: float | None = None,
    notes: str | None = None,
    performed_by_user_id: int | None = None,
) -> tuple[Product, InventoryTransaction]:
    """
    Apply one stock movement to a product and append its ledger row.

    Returns (product, transaction) after commit.

    Raises:
        NotFoundError: unknown product
        ValidationError: negative quantity or unknown type
        InsufficientStockError: sale / damaged larger than stock (nothing written)
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise ValidationError("quantity must be a non-negative integer", field_name="quantity")
    if unit_price is not None and unit_price < 0:
        raise ValidationError("unit_price must be >= 0", field_name="unit_price")

    product = _load_product(product_id, lock=True)
    previous_stock = product.quantity_in_stock
    new_stock = compute_new_stock(movement_type, previous_stock, quantity, product.name)

    product.quantity_in_stock = new_stock
    tx = _record_transaction(
        product=product,
        movement_type=movement_type,
        quantity=abs(new_stock - previous_stock),
        previous_stock=previous_stock,
        new_stock=new_stock,
        unit_price=unit_price,
        performed_by_user_id=performed_by_user_id,
        notes=notes,
    )

    db.session.commit()
    current_app.logger.info(
        "Stock %s for product id=%s: %s -> %s",
        movement_type, product.id, previous_stock, new_stock,
    )
    return product, tx


def record_initial_stock(product: Product, performed_by_user_id: int | None) -> InventoryTransaction | None:
    """Ledger row for the opening stock of a newly created product (no commit)."""
    if not product.quantity_in_stock:
        return None
    return _record_transaction(
        product=product,
        movement_type="purchase",
        quantity=product.quantity_in_stock,
        previous_stock=0,
        new_stock=product.quantity_in_stock,
        unit_price=product.price,
        performed_by_user_id=performed_by_user_id,
        reference="Initial stock",
        notes="Initial stock on product creation",
    )


def apply_sale(
    *,
    product_id: int,
    quantity: int,
    unit_price: float,
    bill_id: int,
    bill_number: str,
    performed_by_user_id: int | None,
) -> InventoryTransaction:
    """
    Decrement stock for one bill line and append its `sale` ledger row.

    Does not commit: the bill workflow commits the bill, its lines, every
    decrement and every ledger row together. The stock check is repeated
    here under the row lock because another bill may have sold the same
    product since validation.
    """
    product = _load_product(product_id, lock=True)
    previous_stock = product.quantity_in_stock
    new_stock = compute_new_stock("sale", previous_stock, quantity, product.name)
    product.quantity_in_stock = new_stock

    return _record_transaction(
        product=product,
        movement_type="sale",
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
        unit_price=unit_price,
        performed_by_user_id=performed_by_user_id,
        reference=f"Bill #{bill_number}",
        reference_id=bill_id,
        reference_model="Bill",
        notes=f"Sale through bill #{bill_number}",
    )


def list_transactions(
    *,
    product_id: int | None = None,
    movement_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    sort: str | None = None,
) -> list[InventoryTransaction]:
    """Ledger rows, newest first unless `sort` says otherwise."""
    q = db.session.query(InventoryTransaction)
    if product_id is not None:
        q = q.filter(InventoryTransaction.product_id == product_id)
    if movement_type:
        q = q.filter(InventoryTransaction.type == movement_type)
    if start is not None:
        q = q.filter(InventoryTransaction.created_at >= start)
    if end is not None:
        q = q.filter(InventoryTransaction.created_at <= end)

    order = parse_sort(sort, TRANSACTION_SORTABLE, default=[InventoryTransaction.created_at.desc()])
    return q.order_by(*order, InventoryTransaction.id.desc()).all()


def stock_history(
    product_id: int,
    *,
    movement_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[InventoryTransaction]:
    _load_product(product_id)
    return list_transactions(
        product_id=product_id,
        movement_type=movement_type,
        start=start,
        end=end,
    )


def low_stock_products(category: str | None = None) -> list[Product]:
    """Products at or below their threshold, emptiest first."""
    q = db.session.query(Product).filter(
        Product.quantity_in_stock <= Product.low_stock_threshold
    )
    if category:
        q = q.filter(Product.category == category)
    return q.order_by(Product.quantity_in_stock.asc(), Product.name.asc()).all()
