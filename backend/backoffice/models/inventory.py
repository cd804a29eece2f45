from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z, to_iso_date


class StockCorrection(db.Model):
    """
    Manual stock adjustment document.

    LIFECYCLE: tracked by the Form row with documentable_type="StockCorrection".
    Lines carry signed quantities in the smallest unit. Stock only moves
    once the form is approved.
    """
    __tablename__ = "stock_corrections"
    __table_args__ = {"sqlite_autoincrement": True}

    TYPE_IN = "in"
    TYPE_OUT = "out"

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    type_correction = db.Column(db.String(8), nullable=True)
    qc_passed = db.Column(db.Boolean, nullable=False, default=False)

    warehouse = db.relationship("Warehouse")
    items = db.relationship(
        "StockCorrectionItem",
        backref="stock_correction",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="StockCorrectionItem.id",
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "warehouse_id": self.warehouse_id,
            "type_correction": self.type_correction,
            "qc_passed": self.qc_passed,
        }
        if include_items:
            data["items"] = [line.to_dict() for line in self.items]
        return data


class StockCorrectionItem(db.Model):
    """
    Stock correction line.

    initial_stock/final_stock are projected when the request is built and
    rewritten from the ledger when the form is approved. Both
    satisfy final_stock = initial_stock + quantity >= 0.
    """
    __tablename__ = "stock_correction_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    stock_correction_id = db.Column(db.Integer, db.ForeignKey("stock_corrections.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit = db.Column(db.String(64), nullable=False)
    converter = db.Column(db.Integer, nullable=False, default=1)

    expiry_date = db.Column(db.Date, nullable=True)
    production_number = db.Column(db.String(64), nullable=True)

    initial_stock = db.Column(db.Integer, nullable=True)
    final_stock = db.Column(db.Integer, nullable=True)

    allocation_id = db.Column(db.Integer, db.ForeignKey("allocations.id"), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    item = db.relationship("Item")
    allocation = db.relationship("Allocation")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stock_correction_id": self.stock_correction_id,
            "item_id": self.item_id,
            "item_name": self.item.name if self.item else None,
            "quantity": self.quantity,
            "unit": self.unit,
            "converter": self.converter,
            "expiry_date": to_iso_date(self.expiry_date),
            "production_number": self.production_number,
            "initial_stock": self.initial_stock,
            "final_stock": self.final_stock,
            "allocation_id": self.allocation_id,
            "notes": self.notes,
        }


class Inventory(db.Model):
    """
    Inventory ledger entry.

    DESIGN:
    - Append-only; current stock is the sum of quantity up to a date
    - quantity is signed and already multiplied by the line converter
    - date is copied from the form date, not the posting time
    - rows are deleted only when their form is reversed (cancel or edit)
    """
    __tablename__ = "inventories"
    __table_args__ = (
        db.Index("ix_inventories_item_warehouse_date", "item_id", "warehouse_id", "date"),
        db.Index("ix_inventories_form", "form_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    form_id = db.Column(db.Integer, db.ForeignKey("forms.id"), nullable=False)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False)

    expiry_date = db.Column(db.Date, nullable=True)
    production_number = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    form = db.relationship("Form", backref=db.backref("inventories", lazy=True))
    item = db.relationship("Item")

    def __repr__(self) -> str:
        return f"<Inventory id={self.id} item_id={self.item_id} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "form_id": self.form_id,
            "warehouse_id": self.warehouse_id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "date": to_utc_z(self.date),
            "expiry_date": to_iso_date(self.expiry_date),
            "production_number": self.production_number,
        }
