from __future__ import annotations

from ..extensions import db
from pharmapos.time_utils import to_utc_z, to_iso_date
from pharmapos.money import format_cents


MOVEMENT_CAUSES = ("sale", "purchase", "adjustment", "return", "damage")


class ProductBatch(db.Model):
    """
    A received lot of one product.

    WHY: Pharmacy stock expires per lot, so quantity, cost, selling price and
    expiry are tracked per batch rather than per product.

    INVARIANT: quantity >= 0 (DB check constraint). quantity only changes
    through inventory_service.apply_movement, which appends the matching
    InventoryMovement in the same transaction.
    """
    __tablename__ = "product_batches"
    __table_args__ = (
        db.UniqueConstraint("product_id", "batch_number", name="uq_product_batches_product_batchno"),
        db.CheckConstraint("quantity >= 0", name="ck_product_batches_quantity_nonnegative"),
        db.CheckConstraint("cost_price_cents >= 0", name="ck_product_batches_cost_nonnegative"),
        db.CheckConstraint("selling_price_cents >= 0", name="ck_product_batches_price_nonnegative"),
        db.Index("ix_product_batches_product_expiry", "product_id", "expiry_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    batch_number = db.Column(db.String(64), nullable=False)
    expiry_date = db.Column(db.Date, nullable=True, index=True)

    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    # Starts at 0; the opening quantity arrives as a 'purchase' movement
    quantity = db.Column(db.Integer, nullable=False, default=0)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    purchase_order_item_id = db.Column(
        db.Integer, db.ForeignKey("purchase_order_items.id"), nullable=True, index=True
    )

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("batches", lazy=True))
    supplier = db.relationship("Supplier")
    purchase_order_item = db.relationship("PurchaseOrderItem", foreign_keys=[purchase_order_item_id])

    def __repr__(self) -> str:
        return f"<ProductBatch id={self.id} product_id={self.product_id} batch={self.batch_number!r} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "batch_number": self.batch_number,
            "expiry_date": to_iso_date(self.expiry_date),
            "cost_price": format_cents(self.cost_price_cents),
            "selling_price": format_cents(self.selling_price_cents),
            "quantity": self.quantity,
            "supplier_id": self.supplier_id,
            "purchase_order_item_id": self.purchase_order_item_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryMovement(db.Model):
    """
    Append-only stock ledger entry.

    Every change to ProductBatch.quantity has exactly one movement with the
    same signed delta, so a batch's quantity always equals the sum of its
    movement deltas.

    IMMUTABLE: guarded by ORM listeners (see pharmapos.immutability).
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.CheckConstraint(
            "change_type IN ('sale', 'purchase', 'adjustment', 'return', 'damage')",
            name="ck_inventory_movements_change_type",
        ),
        db.CheckConstraint("quantity_delta <> 0", name="ck_inventory_movements_nonzero"),
        db.Index("ix_invmov_product_created", "product_id", "created_at"),
        db.Index("ix_invmov_batch_created", "batch_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("product_batches.id"), nullable=False, index=True)

    quantity_delta = db.Column(db.Integer, nullable=False)
    change_type = db.Column(db.String(16), nullable=False, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    remarks = db.Column(db.String(255), nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    batch = db.relationship("ProductBatch", backref=db.backref("movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "batch_id": self.batch_id,
            "quantity_delta": self.quantity_delta,
            "change_type": self.change_type,
            "user_id": self.user_id,
            "remarks": self.remarks,
            "sale_id": self.sale_id,
            "purchase_order_id": self.purchase_order_id,
            "created_at": to_utc_z(self.created_at),
        }
