from __future__ import annotations

from ..extensions import db
from station.time_utils import to_utc_z, utcnow


TRANSACTION_TYPES = ("purchase", "sale", "adjustment", "return", "damaged")
REFERENCE_MODELS = ("Bill",)


class InventoryTransaction(db.Model):
    """
    Append-only stock ledger row.

    Every change to Product.quantity_in_stock writes exactly one row that
    snapshots the stock before and after. Rows are never updated or deleted.

    - purchase / return: new_stock = previous_stock + quantity
    - sale / damaged:    new_stock = previous_stock - quantity
    - adjustment:        new_stock is set absolutely; quantity records |new - previous|
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_invtx_product_created", "product_id", "created_at"),
        db.Index("ix_invtx_reference", "reference_model", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    type = db.Column(db.String(16), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    unit_price = db.Column(db.Float, nullable=True)
    total_price = db.Column(db.Float, nullable=True)

    # Free text ("Bill #BILL-240501-0001", "Initial stock") plus a polymorphic link
    reference = db.Column(db.String(255), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    reference_model = db.Column(db.String(32), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    product = db.relationship("Product")
    performed_by = db.relationship("User")

    def __repr__(self) -> str:
        return (
            f"<InventoryTransaction id={self.id} product_id={self.product_id} "
            f"type={self.type} {self.previous_stock}->{self.new_stock}>"
        )

    def to_dict(self) -> dict:
        product = self.product
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": (
                {"id": product.id, "name": product.name, "category": product.category}
                if product else None
            ),
            "type": self.type,
            "quantity": self.quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "unit_price": self.unit_price,
            "total_price": self.total_price,
            "reference": self.reference,
            "reference_id": self.reference_id,
            "reference_model": self.reference_model,
            "notes": self.notes,
            "performed_by": self.performed_by.to_ref() if self.performed_by else None,
            "created_at": to_utc_z(self.created_at),
        }
