# Overview: Inventory ledger reads and writes; current stock, ledger insertion, and unit cost.

"""
Stock Ledger Invariants & Time Semantics

Canonical time handling:
- All internal datetimes are UTC-naive (tzinfo=None).
- Ledger rows carry the date of the form that produced them.

As-of semantics:
- All "as of" filters are inclusive: Inventory.date <= date.

Inventory model:
- Stock is ledger-derived from Inventory rows; never stored as a mutable
  quantity field.
- Current stock is SUM(quantity) over rows for item + warehouse, narrowed
  to a lot (expiry date / production number) only when the item tracks it.

Cost model:
- Unit cost (COGS) is the net debit of the item's own inventory account,
  for journals whose subject is the item, divided by the units on hand.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import Inventory, Journal


def _lot_filters(query, item, expiry_date=None, production_number=None):
    if item.require_expiry_date:
        query = query.filter(Inventory.expiry_date == expiry_date)
    if item.require_production_number:
        query = query.filter(Inventory.production_number == production_number)
    return query


def get_current_stock(
    item,
    warehouse_id: int,
    date: datetime | None = None,
    *,
    expiry_date=None,
    production_number: str | None = None,
    exclude_form_id: int | None = None,
) -> int:
    """
    On-hand quantity of item in warehouse as of date (inclusive).

    Returns 0 when there are no rows. date=None means "all entries".
    exclude_form_id drops the rows written by one form, so a posting can read
    the stock it is about to change without seeing its own entries.
    """
    query = db.session.query(func.coalesce(func.sum(Inventory.quantity), 0)).filter(
        Inventory.item_id == item.id,
        Inventory.warehouse_id == warehouse_id,
    )
    if date is not None:
        query = query.filter(Inventory.date <= date)
    if exclude_form_id is not None:
        query = query.filter(Inventory.form_id != exclude_form_id)
    query = _lot_filters(query, item, expiry_date, production_number)

    return int(query.scalar() or 0)


def get_form_stock_movement(
    form_id: int,
    item,
    warehouse_id: int,
    *,
    expiry_date=None,
    production_number: str | None = None,
) -> int:
    """Net quantity the given form's ledger rows contributed to one item/lot."""
    query = db.session.query(func.coalesce(func.sum(Inventory.quantity), 0)).filter(
        Inventory.form_id == form_id,
        Inventory.item_id == item.id,
        Inventory.warehouse_id == warehouse_id,
    )
    query = _lot_filters(query, item, expiry_date, production_number)
    return int(query.scalar() or 0)


def insert_inventory_record(
    form,
    warehouse_id: int,
    item,
    quantity: int,
    converter: int = 1,
    *,
    expiry_date=None,
    production_number: str | None = None,
) -> Inventory:
    """
    Append one ledger row of quantity * converter (smallest unit).

    Does not commit; the caller owns the transaction.
    """
    row = Inventory(
        form_id=form.id,
        warehouse_id=warehouse_id,
        item_id=item.id,
        quantity=quantity * converter,
        date=form.date,
        expiry_date=expiry_date if item.require_expiry_date else None,
        production_number=production_number if item.require_production_number else None,
    )
    db.session.add(row)
    return row


def get_item_journal_value_cents(item) -> int:
    """Net debit (debit - credit) on the item's inventory account for this item."""
    if not item.chart_of_account_id:
        return 0

    value = (
        db.session.query(
            func.coalesce(func.sum(Journal.debit_cents), 0) - func.coalesce(func.sum(Journal.credit_cents), 0)
        )
        .filter(
            Journal.journalable_type == "Item",
            Journal.journalable_id == item.id,
            Journal.chart_of_account_id == item.chart_of_account_id,
        )
        .scalar()
    )
    return int(value or 0)


def calculate_cogs(item, warehouse_id: int | None = None) -> int:
    """
    Unit cost in cents, rounded half up. 0 when nothing is on hand.

    warehouse_id narrows the units on hand to one warehouse; the value side
    is always item-wide because journals are not kept per warehouse.
    """
    query = db.session.query(func.coalesce(func.sum(Inventory.quantity), 0)).filter(
        Inventory.item_id == item.id,
    )
    if warehouse_id is not None:
        query = query.filter(Inventory.warehouse_id == warehouse_id)
    units = int(query.scalar() or 0)
    if units <= 0:
        return 0

    value = get_item_journal_value_cents(item)
    if value <= 0:
        return 0

    return (value + units // 2) // units
