from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class Item(db.Model):
    """
    Stock item master data.

    Quantities on every ledger row are stored in the item's smallest unit.
    Lot tracking is opt-in per item: when require_expiry_date or
    require_production_number is set, stock is tracked per lot.

    chart_of_account_id is the inventory (asset) account journals for this
    item are posted against.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_items_code"),
        db.Index("ix_items_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    chart_of_account_id = db.Column(db.Integer, db.ForeignKey("chart_of_accounts.id"), nullable=True, index=True)
    require_expiry_date = db.Column(db.Boolean, nullable=False, default=False)
    require_production_number = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("ChartOfAccount")

    def __repr__(self) -> str:
        return f"<Item id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "chart_of_account_id": self.chart_of_account_id,
            "require_expiry_date": self.require_expiry_date,
            "require_production_number": self.require_production_number,
            "created_at": to_utc_z(self.created_at),
        }


class ItemUnit(db.Model):
    """Sellable unit of an item; converter = smallest units per one of this unit."""
    __tablename__ = "item_units"
    __table_args__ = (
        db.UniqueConstraint("item_id", "label", name="uq_item_units_item_label"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    label = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(64), nullable=True)
    converter = db.Column(db.Integer, nullable=False, default=1)

    item = db.relationship("Item", backref=db.backref("units", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "label": self.label,
            "name": self.name,
            "converter": self.converter,
        }


class Customer(db.Model):
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "created_at": to_utc_z(self.created_at),
        }


class Allocation(db.Model):
    """Cost allocation tag a form line may carry (project, department)."""
    __tablename__ = "allocations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}
