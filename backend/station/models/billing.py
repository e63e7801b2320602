from __future__ import annotations

from ..extensions import db
from station.time_utils import to_utc_z, utcnow


PAYMENT_METHODS = ("cash", "card", "online", "other")
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")
LINE_TYPES = ("service", "product")


class Bill(db.Model):
    """
    Customer bill (sales document).

    The customer and vehicle are embedded snapshots rather than foreign keys,
    and every BillLine snapshots name/price at the time of sale, so editing
    the catalog never rewrites historical bills.

    Only payment_status / payment_method change after creation.
    """
    __tablename__ = "bills"
    __table_args__ = (
        db.Index("ix_bills_created_at", "created_at"),
        db.Index("ix_bills_license_plate", "vehicle_license_plate"),
        db.Index("ix_bills_customer_name", "customer_name"),
        db.Index("ix_bills_customer_phone", "customer_phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # BILL-YYMMDD-NNNN, see document_service.next_bill_number
    bill_number = db.Column(db.String(32), nullable=False, unique=True)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    vehicle_license_plate = db.Column(db.String(32), nullable=True)
    vehicle_make = db.Column(db.String(64), nullable=True)
    vehicle_model = db.Column(db.String(64), nullable=True)
    vehicle_year = db.Column(db.Integer, nullable=True)

    subtotal = db.Column(db.Float, nullable=False)
    tax_rate = db.Column(db.Float, nullable=False, default=0.18)
    tax_amount = db.Column(db.Float, nullable=False)
    discount = db.Column(db.Float, nullable=False, default=0)
    total = db.Column(db.Float, nullable=False)
    # True when subtotal/tax/total came from the caller instead of the line items
    totals_overridden = db.Column(db.Boolean, nullable=False, default=False)

    payment_method = db.Column(db.String(16), nullable=False, default="cash", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="completed", index=True)

    notes = db.Column(db.Text, nullable=True)

    # Null for bills created without a bearer token (demo / offline mode)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    created_by = db.relationship("User")
    lines = db.relationship(
        "BillLine",
        back_populates="bill",
        order_by="BillLine.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Bill id={self.id} bill_number={self.bill_number!r} total={self.total}>"

    @property
    def service_lines(self) -> list["BillLine"]:
        return [line for line in self.lines if line.line_type == "service"]

    @property
    def product_lines(self) -> list["BillLine"]:
        return [line for line in self.lines if line.line_type == "product"]

    def customer_dict(self) -> dict:
        return {
            "name": self.customer_name,
            "phone": self.customer_phone,
            "email": self.customer_email,
            "vehicle_info": {
                "license_plate": self.vehicle_license_plate,
                "make": self.vehicle_make,
                "model": self.vehicle_model,
                "year": self.vehicle_year,
            },
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_number": self.bill_number,
            "customer": self.customer_dict(),
            "services": [line.to_dict() for line in self.service_lines],
            "products": [line.to_dict() for line in self.product_lines],
            "subtotal": self.subtotal,
            "tax_rate": self.tax_rate,
            "tax_amount": self.tax_amount,
            "discount": self.discount,
            "total": self.total,
            "totals_overridden": self.totals_overridden,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "created_by": self.created_by.to_ref() if self.created_by else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class BillLine(db.Model):
    """
    One service or product on a bill.

    service_id / product_id are null for ad-hoc lines (name + price supplied
    by the caller without a catalog record).
    """
    __tablename__ = "bill_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id"), nullable=False, index=True)
    line_type = db.Column(db.String(16), nullable=False)

    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Float, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    total = db.Column(db.Float, nullable=False)

    bill = db.relationship("Bill", back_populates="lines")

    @property
    def catalog_id(self) -> int | None:
        return self.service_id if self.line_type == "service" else self.product_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            self.line_type: self.catalog_id if self.catalog_id is not None else "custom",
            "name": self.name,
            "price": self.price,
            "quantity": self.quantity,
            "total": self.total,
        }
