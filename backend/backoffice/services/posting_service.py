# Overview: Posting engine; applies and reverses a form's inventory ledger and journal side effects.

"""
Posting Engine

approve_form() is the only place stock and journals move. In one
transaction it:
1. locks the form row and re-checks the approval guards
2. snapshots initial/final stock on every line (ledger as of the form date,
   excluding this form, plus earlier lines of the same form)
3. appends one Inventory row per line with a non-zero movement
4. writes a balanced journal pair per line at cogs * |movement|:
   stock increase debits the item account and credits the setting account,
   a decrease does the opposite
5. writes the document's extra legs (e.g. receivable/revenue for invoices)
6. marks the form approved

Any failure rolls everything back and the form stays pending.

reverse_postings() removes every Inventory and Journal row of a form. It
runs inside the caller's transaction (cancellation approval, edit).
"""

from __future__ import annotations

from collections import defaultdict

from sqlalchemy import func

from ..extensions import db
from ..errors import SettingJournalMissing, StockWouldGoNegative
from ..models import Inventory, Item, Journal, SettingJournal
from backoffice.time_utils import get_clock
from . import notification_service
from .concurrency import run_in_transaction
from .document_types import DocumentType
from .form_service import form_error_data, get_form_for_update, guard_approve, mark_approved
from .stock_service import calculate_cogs, get_current_stock, insert_inventory_record


def get_setting_account_id(feature: str, name: str) -> int:
    setting = db.session.query(SettingJournal).filter_by(feature=feature, name=name).first()
    if not setting or not setting.chart_of_account_id:
        raise SettingJournalMissing(f"Journal {feature} account - {name} not found")
    return setting.chart_of_account_id


def _lot_key(line) -> tuple:
    item = line.item
    return (
        item.id,
        line.expiry_date if item.require_expiry_date else None,
        line.production_number if item.require_production_number else None,
    )


def _add_journal(form, account_id: int, side: str, amount: int, journalable_type=None, journalable_id=None) -> None:
    if amount <= 0:
        return
    db.session.add(
        Journal(
            form_id=form.id,
            journalable_type=journalable_type,
            journalable_id=journalable_id,
            chart_of_account_id=account_id,
            debit_cents=amount if side == "debit" else 0,
            credit_cents=amount if side == "credit" else 0,
        )
    )


def snapshot_lines(document_type: DocumentType, form, document) -> None:
    """Write initial/final stock on every line; raise if any would go negative."""
    pending: dict[tuple, int] = defaultdict(int)

    for line in document_type.lines(document):
        key = _lot_key(line)
        delta = document_type.line_delta(line)
        base = get_current_stock(
            line.item,
            document.warehouse_id,
            form.date,
            expiry_date=line.expiry_date,
            production_number=line.production_number,
            exclude_form_id=form.id,
        )
        initial = base + pending[key]
        if delta < 0 and initial + delta < 0:
            raise StockWouldGoNegative("Stock can not be minus", form_error_data(form))

        line.initial_stock = initial
        line.final_stock = initial + delta
        pending[key] += delta


def post_form(document_type: DocumentType, form, document) -> None:
    """Ledger rows and journals for an approved form. No commit."""
    counter_account_id = get_setting_account_id(document_type.stock_feature, document_type.stock_account_name)
    lines = document_type.lines(document)

    # unit cost is read before this form moves any stock
    cogs_by_item = {}
    for line in lines:
        if line.item_id not in cogs_by_item:
            cogs_by_item[line.item_id] = calculate_cogs(line.item)

    snapshot_lines(document_type, form, document)

    for line in lines:
        delta = document_type.line_delta(line)
        if delta == 0:
            continue

        item = line.item
        insert_inventory_record(
            form,
            document.warehouse_id,
            item,
            document_type.line_quantity(line),
            line.converter or 1,
            expiry_date=line.expiry_date,
            production_number=line.production_number,
        )

        if not item.chart_of_account_id:
            raise SettingJournalMissing(f"Journal account of item {item.name} not found", form_error_data(form))

        amount = cogs_by_item[item.id] * abs(delta)
        is_decrement = delta < 0
        _add_journal(form, item.chart_of_account_id, "credit" if is_decrement else "debit", amount, "Item", item.id)
        _add_journal(form, counter_account_id, "debit" if is_decrement else "credit", amount, "Item", item.id)

    if document_type.extra_journal_legs:
        for leg in document_type.extra_journal_legs(form, document):
            if leg.amount_cents <= 0:
                continue
            account_id = get_setting_account_id(leg.feature, leg.name)
            _add_journal(form, account_id, leg.side, leg.amount_cents, leg.journalable_type, leg.journalable_id)

    db.session.flush()


def approve_form(document_type: DocumentType, document_id: int, approver, *, clock=None):
    """
    Approve a pending form and apply its postings atomically.

    Returns the document. Approving an already approved form returns it
    unchanged.
    """
    clock = clock or get_clock()

    def _op():
        document = document_type.get_document(document_id)
        form = get_form_for_update(document_type.get_form(document).id)

        if guard_approve(form, approver):
            return document

        post_form(document_type, form, document)
        mark_approved(form, approver, clock.now())
        notification_service.cancel_reminders(form.id, notification_service.KIND_EDIT)
        return document

    return run_in_transaction(_op)


def check_reversal(form, message: str = "Stock will minus if you delete this form") -> None:
    """
    Removing this form's ledger rows must not leave any item/lot negative.

    Compares against all ledger rows (no date bound).
    """
    movements = (
        db.session.query(
            Inventory.item_id,
            Inventory.warehouse_id,
            Inventory.expiry_date,
            Inventory.production_number,
            func.sum(Inventory.quantity),
        )
        .filter(Inventory.form_id == form.id)
        .group_by(
            Inventory.item_id,
            Inventory.warehouse_id,
            Inventory.expiry_date,
            Inventory.production_number,
        )
        .all()
    )

    for item_id, warehouse_id, expiry_date, production_number, quantity in movements:
        item = db.session.get(Item, item_id)
        current = get_current_stock(
            item,
            warehouse_id,
            expiry_date=expiry_date,
            production_number=production_number,
        )
        if current - int(quantity or 0) < 0:
            raise StockWouldGoNegative(message, form_error_data(form))


def reverse_postings(form) -> None:
    """Delete every journal and ledger row of the form. No commit."""
    db.session.query(Journal).filter(Journal.form_id == form.id).delete(synchronize_session=False)
    db.session.query(Inventory).filter(Inventory.form_id == form.id).delete(synchronize_session=False)
    db.session.expire(form, ["journals", "inventories"])
