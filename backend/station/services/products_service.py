# backend/station/services/products_service.py
"""
Products Service

Catalog CRUD for stocked products. quantity_in_stock is only settable at
creation time (opening stock, recorded in the ledger); afterwards it moves
through inventory_service.adjust_stock and the bill workflow.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, BillLine, InventoryTransaction
from ..validation import ConflictError, NotFoundError, parse_sort
from .inventory_service import record_initial_stock

PRODUCT_MUTABLE_FIELDS = {
    "name", "description", "price", "category", "low_stock_threshold",
    "unit", "barcode", "is_active",
}

PRODUCT_SORTABLE = {
    "name": Product.name,
    "price": Product.price,
    "category": Product.category,
    "quantity_in_stock": Product.quantity_in_stock,
    "quantityInStock": Product.quantity_in_stock,
    "created_at": Product.created_at,
    "createdAt": Product.created_at,
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _require_name_available(name: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Product).filter(func.lower(Product.name) == name.lower())
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("Product with this name already exists")


def list_products(
    *,
    category: str | None = None,
    in_stock: bool | None = None,
    low_stock: bool | None = None,
    active: bool | None = None,
    search: str | None = None,
    sort: str | None = None,
) -> list[Product]:
    """
    Filtered product listing (plain list, no pagination).

    in_stock=True keeps quantity > 0, in_stock=False keeps empty shelves.
    low_stock=True keeps quantity <= threshold.
    """
    q = db.session.query(Product)
    if category:
        q = q.filter(Product.category == category)
    if active is not None:
        q = q.filter(Product.is_active.is_(active))
    if in_stock is True:
        q = q.filter(Product.quantity_in_stock > 0)
    elif in_stock is False:
        q = q.filter(Product.quantity_in_stock <= 0)
    if low_stock:
        q = q.filter(Product.quantity_in_stock <= Product.low_stock_threshold)
    if search:
        q = q.filter(Product.name.icontains(search, autoescape=True))

    order = parse_sort(sort, PRODUCT_SORTABLE, default=[Product.name.asc()])
    return q.order_by(*order, Product.id.asc()).all()


def get_product(product_id: int) -> Product:
    p = db.session.get(Product, product_id)
    if p is None:
        raise NotFoundError("Product not found")
    return p


def create_product(*, patch: dict, created_by_user_id: int | None = None) -> Product:
    """
    Create a product from a validated patch dict.

    Opening stock (quantity_in_stock > 0) is written as a `purchase` ledger row
    in the same commit.

    Raises:
        ConflictError: name already used (advisory check or unique constraint)
    """
    _require_name_available(patch["name"])

    p = Product(created_by_user_id=created_by_user_id)
    apply_product_patch(p, patch)
    p.quantity_in_stock = patch.get("quantity_in_stock") or 0

    db.session.add(p)
    try:
        db.session.flush()  # ensure p.id exists before ledger append
        record_initial_stock(p, created_by_user_id)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Product with this name already exists")

    current_app.logger.info("Created product id=%s name=%r stock=%s", p.id, p.name, p.quantity_in_stock)
    return p


def update_product(*, product_id: int, patch: dict) -> Product:
    """
    Partial update. Stock is not writable here.

    Raises:
        NotFoundError: unknown id
        ConflictError: rename onto an existing product name
    """
    p = get_product(product_id)

    if "name" in patch and patch["name"] != p.name:
        _require_name_available(patch["name"], exclude_id=p.id)

    apply_product_patch(p, patch)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Product with this name already exists")
    return p


def is_product_referenced(product_id: int) -> bool:
    in_bills = db.session.query(BillLine.id).filter(BillLine.product_id == product_id).first()
    if in_bills is not None:
        return True
    in_ledger = (
        db.session.query(InventoryTransaction.id)
        .filter(InventoryTransaction.product_id == product_id)
        .first()
    )
    return in_ledger is not None


def delete_product(*, product_id: int) -> bool:
    """
    Delete a product.

    Unreferenced products are removed. Products that appear on a bill or in
    the stock ledger are deactivated instead so history keeps resolving.

    Returns True when the row was deactivated rather than removed.
    """
    p = get_product(product_id)

    if is_product_referenced(p.id):
        p.is_active = False
        db.session.commit()
        current_app.logger.info("Deactivated referenced product id=%s", p.id)
        return True

    db.session.delete(p)
    db.session.commit()
    current_app.logger.info("Deleted product id=%s", product_id)
    return False
