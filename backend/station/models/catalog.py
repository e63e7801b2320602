from __future__ import annotations

from ..extensions import db
from station.time_utils import to_utc_z, utcnow


PRODUCT_CATEGORIES = ("oil", "filter", "fluid", "part", "accessory", "cleaning", "other")
PRODUCT_UNITS = ("piece", "liter", "kg", "box", "set")
SERVICE_CATEGORIES = ("wash", "maintenance", "repair", "inspection", "other")


class Product(db.Model):
    """
    Stocked catalog item (oil, filters, parts...).

    quantity_in_stock is a stored counter. It is only changed through
    inventory_service.adjust_stock / apply_sale, which append an
    InventoryTransaction row for every change.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category", "category"),
        db.Index("ix_products_quantity", "quantity_in_stock"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Float, nullable=False)
    category = db.Column(db.String(32), nullable=False)

    quantity_in_stock = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=5)
    unit = db.Column(db.String(16), nullable=False, default="piece")
    barcode = db.Column(db.String(64), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    created_by = db.relationship("User", foreign_keys=[created_by_user_id])

    @property
    def is_low_in_stock(self) -> bool:
        return self.quantity_in_stock <= self.low_stock_threshold

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} qty={self.quantity_in_stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "category": self.category,
            "quantity_in_stock": self.quantity_in_stock,
            "low_stock_threshold": self.low_stock_threshold,
            "unit": self.unit,
            "barcode": self.barcode,
            "is_active": self.is_active,
            "is_low_in_stock": self.is_low_in_stock,
            "created_by": self.created_by.to_ref() if self.created_by else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Service(db.Model):
    """Labour catalog item (wash, oil change, inspection...). No stock."""
    __tablename__ = "services"
    __table_args__ = (
        db.Index("ix_services_category", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Float, nullable=False)
    # minutes
    duration = db.Column(db.Integer, nullable=False, default=30)
    category = db.Column(db.String(32), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    created_by = db.relationship("User", foreign_keys=[created_by_user_id])

    def __repr__(self) -> str:
        return f"<Service id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "duration": self.duration,
            "category": self.category,
            "is_active": self.is_active,
            "created_by": self.created_by.to_ref() if self.created_by else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
