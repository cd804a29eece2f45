# Overview: Sales invoice requests; reference form consumption, pricing and tax, and lifecycle entry points.

"""
Sales Invoice Service

An invoice is raised from a reference form (delivery note, sales order)
that is not yet done; creating the invoice marks the reference done, and an
approved cancellation releases it again.

MONEY: integer cents; percentages are basis points (1000 = 10%).

Totals:
- line net    = quantity * (price - discount value - price * discount %)
- subtotal    = sum(line net)
- tax base    = subtotal - invoice discount value - subtotal * invoice discount %
- tax         = non: 0 | exclude: base * rate | include: base * rate / (1 + rate)
- amount      = exclude: base + tax | otherwise: base
"""

from __future__ import annotations

from collections import defaultdict

from flask import current_app

from ..extensions import db
from ..errors import InvalidData, NotFound, StockWouldGoNegative
from ..models import Allocation, Customer, Form, Item, ItemUnit, SalesInvoice, SalesInvoiceItem, Warehouse
from backoffice.time_utils import get_clock, parse_iso_date
from . import lifecycle_service, notification_service, posting_service
from .concurrency import run_in_transaction
from .document_types import SALES_INVOICE
from .form_service import form_error_data, next_form_number, normalize_notes
from .stock_service import get_current_stock


VALID_TAX_TYPES = {SalesInvoice.TAX_NON, SalesInvoice.TAX_INCLUDE, SalesInvoice.TAX_EXCLUDE}
BPS = 10000


def _is_integer(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _round_div(numerator: int, denominator: int) -> int:
    """Integer division rounded half up (non-negative inputs)."""
    return (numerator + denominator // 2) // denominator


def _non_negative_int(raw: dict, key: str, default: int = 0) -> int:
    value = raw.get(key, default)
    if value is None:
        value = default
    if not _is_integer(value) or value < 0:
        raise InvalidData("Invalid data")
    return value


def line_total_cents(quantity: int, price_cents: int, discount_percent_bps: int = 0, discount_value_cents: int = 0) -> int:
    unit_net = price_cents - discount_value_cents - _round_div(price_cents * discount_percent_bps, BPS)
    return quantity * unit_net


def calculate_totals(
    line_totals: list[int],
    *,
    type_of_tax: str,
    discount_percent_bps: int = 0,
    discount_value_cents: int = 0,
    tax_rate_bps: int = 1000,
) -> tuple[int, int]:
    """Returns (tax_cents, amount_cents)."""
    subtotal = sum(line_totals)
    tax_base = subtotal - discount_value_cents - _round_div(subtotal * discount_percent_bps, BPS)
    if tax_base < 0:
        raise InvalidData("Discount exceeds invoice subtotal")

    if type_of_tax == SalesInvoice.TAX_EXCLUDE:
        tax = _round_div(tax_base * tax_rate_bps, BPS)
        return tax, tax_base + tax
    if type_of_tax == SalesInvoice.TAX_INCLUDE:
        tax = _round_div(tax_base * tax_rate_bps, BPS + tax_rate_bps)
        return tax, tax_base
    return 0, tax_base


def _apply_header(invoice: SalesInvoice, payload: dict) -> None:
    type_of_tax = payload.get("type_of_tax")
    if type_of_tax not in VALID_TAX_TYPES:
        raise InvalidData("Invalid data")
    try:
        due_date = parse_iso_date(payload.get("due_date"))
    except ValueError:
        raise InvalidData("Invalid data")
    if not due_date:
        raise InvalidData("Invalid data")

    discount_percent_bps = _non_negative_int(payload, "discount_percent_bps")
    if discount_percent_bps > BPS:
        raise InvalidData("Invalid data")

    invoice.type_of_tax = type_of_tax
    invoice.due_date = due_date
    invoice.discount_percent_bps = discount_percent_bps
    invoice.discount_value_cents = _non_negative_int(payload, "discount_value_cents")


def build_lines(invoice: SalesInvoice, form: Form, payload: dict, now) -> list[SalesInvoiceItem]:
    """
    Validate payload["items"], attach lines, and recompute invoice totals.

    Units are resolved through ItemUnit; snapshots are projected in the
    smallest unit.
    """
    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise InvalidData("Invalid data")

    pending: dict[tuple, int] = defaultdict(int)
    lines = []
    for raw in items:
        if not isinstance(raw, dict) or not _is_integer(raw.get("item_id")) or not raw.get("unit"):
            raise InvalidData("Invalid data")
        quantity = _non_negative_int(raw, "quantity", default=None)
        price_cents = _non_negative_int(raw, "price_cents", default=None)
        discount_percent_bps = _non_negative_int(raw, "discount_percent_bps")
        discount_value_cents = _non_negative_int(raw, "discount_value_cents")
        if discount_percent_bps > BPS:
            raise InvalidData("Invalid data")
        try:
            expiry_date = parse_iso_date(raw.get("expiry_date"))
        except ValueError:
            raise InvalidData("Invalid data")
        production_number = raw.get("production_number")

        item = db.session.get(Item, raw["item_id"])
        if not item:
            raise NotFound("Item is not exist")
        unit = db.session.query(ItemUnit).filter_by(item_id=item.id, label=raw["unit"]).first()
        if not unit:
            raise NotFound(f"Item unit {raw['unit']} not found")
        allocation_id = raw.get("allocation_id")
        if allocation_id is not None and not db.session.get(Allocation, allocation_id):
            raise NotFound("Allocation is not exist")

        delta = -(quantity * unit.converter)
        key = (
            item.id,
            expiry_date if item.require_expiry_date else None,
            production_number if item.require_production_number else None,
        )
        stock = get_current_stock(
            item,
            invoice.warehouse_id,
            form.date,
            expiry_date=expiry_date,
            production_number=production_number,
            exclude_form_id=form.id,
        ) + pending[key]
        if stock + delta < 0:
            raise StockWouldGoNegative(f"Insufficient {item.name} stock", form_error_data(form))
        pending[key] += delta

        line = SalesInvoiceItem(
            item_id=item.id,
            quantity=quantity,
            unit=unit.label,
            converter=unit.converter,
            price_cents=price_cents,
            discount_percent_bps=discount_percent_bps,
            discount_value_cents=discount_value_cents,
            expiry_date=expiry_date,
            production_number=production_number,
            initial_stock=stock,
            final_stock=stock + delta,
            allocation_id=allocation_id,
            notes=normalize_notes(raw.get("notes")) or None,
        )
        invoice.items.append(line)
        lines.append(line)

    invoice.tax_cents, invoice.amount_cents = calculate_totals(
        [
            line_total_cents(line.quantity, line.price_cents, line.discount_percent_bps, line.discount_value_cents)
            for line in lines
        ],
        type_of_tax=invoice.type_of_tax,
        discount_percent_bps=invoice.discount_percent_bps,
        discount_value_cents=invoice.discount_value_cents,
        tax_rate_bps=current_app.config.get("SALES_TAX_RATE_BPS", 1000),
    )
    return lines


def _get_open_reference_form(form_id) -> Form:
    reference = db.session.get(Form, form_id) if _is_integer(form_id) else None
    if not reference or reference.done or reference.is_cancelled:
        raise NotFound("Form reference without done status not found")
    return reference


def create_form_request(maker, payload: dict, *, clock=None) -> SalesInvoice:
    """Validate and persist a pending invoice, consume its reference, notify the approver."""
    clock = clock or get_clock()
    payload = payload or {}

    def _op():
        if not _is_integer(payload.get("warehouse_id")) or not _is_integer(payload.get("customer_id")):
            raise InvalidData("Invalid data")
        approver = lifecycle_service.get_approver(payload.get("request_approval_to"))
        reference = _get_open_reference_form(payload.get("form_id"))

        warehouse = db.session.get(Warehouse, payload["warehouse_id"])
        if not warehouse:
            raise NotFound("Warehouse is not exist")
        customer = db.session.get(Customer, payload["customer_id"])
        if not customer:
            raise NotFound("Customer is not exist")
        lifecycle_service.require_request_gate(SALES_INVOICE, warehouse, maker, approver.id, "create")

        now = clock.now()
        invoice = SalesInvoice(
            warehouse_id=warehouse.id,
            customer_id=customer.id,
            customer_name=customer.name,
            reference_form_id=reference.id,
        )
        _apply_header(invoice, payload)
        db.session.add(invoice)
        db.session.flush()

        form = Form(
            branch_id=warehouse.branch_id,
            documentable_type=SALES_INVOICE.name,
            documentable_id=invoice.id,
            number=next_form_number(SALES_INVOICE.prefix, SALES_INVOICE.name, now),
            date=now,
            notes=normalize_notes(payload.get("notes")),
            created_by=maker.id,
            updated_by=maker.id,
            request_approval_to=approver.id,
            approval_status=Form.APPROVAL_PENDING,
            done=False,
        )
        db.session.add(form)
        db.session.flush()

        build_lines(invoice, form, payload, now)
        reference.done = True
        db.session.flush()
        return invoice, form.id

    invoice, form_id = run_in_transaction(_op)
    notification_service.send_after_commit(form_id, notification_service.KIND_APPROVAL, clock=clock)
    return invoice


def approve_form_request(sales_invoice_id: int, approver, *, clock=None) -> SalesInvoice:
    return posting_service.approve_form(SALES_INVOICE, sales_invoice_id, approver, clock=clock)


def reject_form_request(sales_invoice_id: int, approver, reason: str | None = None, *, clock=None) -> SalesInvoice:
    return lifecycle_service.reject_form_request(SALES_INVOICE, sales_invoice_id, approver, reason, clock=clock)


def update_form(sales_invoice_id: int, maker, payload: dict, *, clock=None) -> SalesInvoice:
    """Replace lines and pricing. Customer and reference form stay."""
    payload = payload or {}

    def _rebuild(invoice, form, data, now):
        _apply_header(invoice, data)
        build_lines(invoice, form, data, now)

    return lifecycle_service.update_form(SALES_INVOICE, sales_invoice_id, maker, payload, _rebuild, clock=clock)


def request_cancellation(sales_invoice_id: int, maker, reason: str | None, *, clock=None) -> SalesInvoice:
    return lifecycle_service.request_cancellation(SALES_INVOICE, sales_invoice_id, maker, reason, clock=clock)


def approve_cancellation(sales_invoice_id: int, approver, reason: str | None = None, *, clock=None) -> SalesInvoice:
    return lifecycle_service.approve_cancellation(SALES_INVOICE, sales_invoice_id, approver, reason, clock=clock)


def reject_cancellation(sales_invoice_id: int, approver, reason: str | None = None, *, clock=None) -> SalesInvoice:
    return lifecycle_service.reject_cancellation(SALES_INVOICE, sales_invoice_id, approver, reason, clock=clock)


def find_one(sales_invoice_id: int) -> dict:
    return lifecycle_service.find_one(SALES_INVOICE, sales_invoice_id)


def find_all(filters: dict | None = None, *, clock=None) -> dict:
    return lifecycle_service.find_all(SALES_INVOICE, filters, clock=clock)
