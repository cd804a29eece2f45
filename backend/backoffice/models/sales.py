from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_iso_date


class SalesInvoice(db.Model):
    """
    Sales invoice raised against an upstream form (delivery note, sales order).

    MONEY: all amounts are integer cents; percentages are basis points.

    TAX (type_of_tax):
    - "non": no tax
    - "exclude": tax added on top of the discounted subtotal
    - "include": tax is carved out of the discounted subtotal
    amount_cents is what the customer owes.
    """
    __tablename__ = "sales_invoices"
    __table_args__ = {"sqlite_autoincrement": True}

    TAX_NON = "non"
    TAX_INCLUDE = "include"
    TAX_EXCLUDE = "exclude"

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    customer_name = db.Column(db.String(255), nullable=True)
    reference_form_id = db.Column(db.Integer, db.ForeignKey("forms.id"), nullable=True, index=True)

    due_date = db.Column(db.Date, nullable=True)
    type_of_tax = db.Column(db.String(16), nullable=False, default="non")

    discount_percent_bps = db.Column(db.Integer, nullable=False, default=0)
    discount_value_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_cents = db.Column(db.Integer, nullable=False, default=0)

    warehouse = db.relationship("Warehouse")
    customer = db.relationship("Customer")
    reference_form = db.relationship("Form", foreign_keys=[reference_form_id])
    items = db.relationship(
        "SalesInvoiceItem",
        backref="sales_invoice",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SalesInvoiceItem.id",
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "warehouse_id": self.warehouse_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "reference_form_id": self.reference_form_id,
            "due_date": to_iso_date(self.due_date),
            "type_of_tax": self.type_of_tax,
            "discount_percent_bps": self.discount_percent_bps,
            "discount_value_cents": self.discount_value_cents,
            "tax_cents": self.tax_cents,
            "amount_cents": self.amount_cents,
        }
        if include_items:
            data["items"] = [line.to_dict() for line in self.items]
        return data


class SalesInvoiceItem(db.Model):
    """
    Sales invoice line. quantity is in `unit`; converter maps it to the
    smallest unit. Snapshots are in the smallest unit.
    """
    __tablename__ = "sales_invoice_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sales_invoice_id = db.Column(db.Integer, db.ForeignKey("sales_invoices.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit = db.Column(db.String(64), nullable=False)
    converter = db.Column(db.Integer, nullable=False, default=1)

    price_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_percent_bps = db.Column(db.Integer, nullable=False, default=0)
    discount_value_cents = db.Column(db.Integer, nullable=False, default=0)

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
            "sales_invoice_id": self.sales_invoice_id,
            "item_id": self.item_id,
            "item_name": self.item.name if self.item else None,
            "quantity": self.quantity,
            "unit": self.unit,
            "converter": self.converter,
            "price_cents": self.price_cents,
            "discount_percent_bps": self.discount_percent_bps,
            "discount_value_cents": self.discount_value_cents,
            "expiry_date": to_iso_date(self.expiry_date),
            "production_number": self.production_number,
            "initial_stock": self.initial_stock,
            "final_stock": self.final_stock,
            "allocation_id": self.allocation_id,
            "notes": self.notes,
        }
