# Overview: Stock correction requests; validation, line building, and the lifecycle entry points.

"""
Stock Correction Service

A stock correction adjusts on-hand quantity by signed amounts in the item's
smallest unit. Creating one only records the request; stock and journals
move when the approver approves it (posting_service.approve_form).

Line rules:
- converter must be 1 (smallest unit only)
- quantity must be an integer; strings are rejected
- projected stock (ledger + earlier lines of the same request) must not go
  negative
"""

from __future__ import annotations

from collections import defaultdict

from ..extensions import db
from ..errors import InvalidData, NotFound, OnlySmallestUnitAllowed, StockWouldGoNegative
from ..models import Allocation, Form, Item, StockCorrection, StockCorrectionItem, Warehouse
from backoffice.time_utils import get_clock, parse_iso_date
from . import lifecycle_service, notification_service, posting_service
from .concurrency import run_in_transaction
from .document_types import STOCK_CORRECTION
from .form_service import form_error_data, next_form_number, normalize_notes
from .stock_service import get_current_stock


VALID_TYPE_CORRECTIONS = {StockCorrection.TYPE_IN, StockCorrection.TYPE_OUT}


def _is_integer(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _as_quantity(value) -> int | None:
    """Numbers with no fractional part (10, 10.0) become ints; anything else is None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _validate_header(payload: dict) -> None:
    if payload.get("type_correction") not in VALID_TYPE_CORRECTIONS:
        raise InvalidData("Invalid data")
    if not _is_integer(payload.get("warehouse_id")):
        raise InvalidData("Invalid data")
    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise InvalidData("Invalid data")


def _parse_line(raw) -> dict:
    if not isinstance(raw, dict):
        raise InvalidData("Invalid data")
    if not _is_integer(raw.get("item_id")) or not raw.get("unit"):
        raise InvalidData("Invalid data")

    converter = raw.get("converter", 1)
    if converter != 1:
        raise OnlySmallestUnitAllowed("Only can use smallest item unit")

    quantity = _as_quantity(raw.get("quantity"))
    if quantity is None:
        raise InvalidData("Invalid data")

    try:
        expiry_date = parse_iso_date(raw.get("expiry_date"))
    except ValueError:
        raise InvalidData("Invalid data")

    return {
        "item_id": raw["item_id"],
        "quantity": quantity,
        "unit": raw["unit"],
        "converter": 1,
        "expiry_date": expiry_date,
        "production_number": raw.get("production_number"),
        "allocation_id": raw.get("allocation_id"),
        "notes": normalize_notes(raw.get("notes")) or None,
    }


def build_lines(correction: StockCorrection, form: Form, payload: dict, now) -> list[StockCorrectionItem]:
    """
    Validate payload["items"] and attach new lines to the correction.

    Lines carry a projected initial/final stock; approval rewrites them from
    the ledger.
    """
    pending: dict[tuple, int] = defaultdict(int)
    lines = []

    for raw in payload.get("items") or []:
        data = _parse_line(raw)

        item = db.session.get(Item, data["item_id"])
        if not item:
            raise NotFound("Item is not exist")
        if item.require_expiry_date and not data["expiry_date"]:
            raise InvalidData(f"Expiry date of {item.name} is required")
        if item.require_production_number and not data["production_number"]:
            raise InvalidData(f"Production number of {item.name} is required")
        if data["allocation_id"] is not None and not db.session.get(Allocation, data["allocation_id"]):
            raise NotFound("Allocation is not exist")

        key = (
            item.id,
            data["expiry_date"] if item.require_expiry_date else None,
            data["production_number"] if item.require_production_number else None,
        )
        stock = get_current_stock(
            item,
            correction.warehouse_id,
            form.date,
            expiry_date=data["expiry_date"],
            production_number=data["production_number"],
            exclude_form_id=form.id,
        ) + pending[key]
        if stock + data["quantity"] < 0:
            raise StockWouldGoNegative("Stock can not be minus", form_error_data(form))
        pending[key] += data["quantity"]

        line = StockCorrectionItem(
            item_id=item.id,
            quantity=data["quantity"],
            unit=data["unit"],
            converter=data["converter"],
            expiry_date=data["expiry_date"],
            production_number=data["production_number"],
            initial_stock=stock,
            final_stock=stock + data["quantity"],
            allocation_id=data["allocation_id"],
            notes=data["notes"],
        )
        correction.items.append(line)
        lines.append(line)

    if not lines:
        raise InvalidData("Invalid data")
    return lines


def create_form_request(maker, payload: dict, *, clock=None) -> StockCorrection:
    """
    Validate and persist a pending stock correction, then notify the approver.

    Validation order: required fields, approver, default branch/warehouse,
    permissions, then lines.
    """
    clock = clock or get_clock()
    payload = payload or {}

    def _op():
        _validate_header(payload)
        approver = lifecycle_service.get_approver(payload.get("request_approval_to"))

        warehouse = db.session.get(Warehouse, payload["warehouse_id"])
        if not warehouse:
            raise NotFound("Warehouse is not exist")
        lifecycle_service.require_request_gate(STOCK_CORRECTION, warehouse, maker, approver.id, "create")

        now = clock.now()
        correction = StockCorrection(
            warehouse_id=warehouse.id,
            type_correction=payload["type_correction"],
            qc_passed=bool(payload.get("qc_passed", False)),
        )
        db.session.add(correction)
        db.session.flush()

        form = Form(
            branch_id=warehouse.branch_id,
            documentable_type=STOCK_CORRECTION.name,
            documentable_id=correction.id,
            number=next_form_number(STOCK_CORRECTION.prefix, STOCK_CORRECTION.name, now),
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

        build_lines(correction, form, payload, now)
        db.session.flush()
        return correction, form.id

    correction, form_id = run_in_transaction(_op)
    notification_service.send_after_commit(form_id, notification_service.KIND_APPROVAL, clock=clock)
    return correction


def approve_form_request(stock_correction_id: int, approver, *, clock=None) -> StockCorrection:
    return posting_service.approve_form(STOCK_CORRECTION, stock_correction_id, approver, clock=clock)


def reject_form_request(stock_correction_id: int, approver, reason: str | None = None, *, clock=None) -> StockCorrection:
    return lifecycle_service.reject_form_request(STOCK_CORRECTION, stock_correction_id, approver, reason, clock=clock)


def update_form(stock_correction_id: int, maker, payload: dict, *, clock=None) -> StockCorrection:
    """Replace lines; the correction goes back to pending under the same number."""
    payload = payload or {}

    def _rebuild(correction, form, data, now):
        if not isinstance(data.get("items"), list) or not data["items"]:
            raise InvalidData("Invalid data")
        if data.get("type_correction") is not None:
            if data["type_correction"] not in VALID_TYPE_CORRECTIONS:
                raise InvalidData("Invalid data")
            correction.type_correction = data["type_correction"]
        build_lines(correction, form, data, now)

    return lifecycle_service.update_form(STOCK_CORRECTION, stock_correction_id, maker, payload, _rebuild, clock=clock)


def request_cancellation(stock_correction_id: int, maker, reason: str | None, *, clock=None) -> StockCorrection:
    return lifecycle_service.request_cancellation(STOCK_CORRECTION, stock_correction_id, maker, reason, clock=clock)


def approve_cancellation(stock_correction_id: int, approver, reason: str | None = None, *, clock=None) -> StockCorrection:
    return lifecycle_service.approve_cancellation(STOCK_CORRECTION, stock_correction_id, approver, reason, clock=clock)


def reject_cancellation(stock_correction_id: int, approver, reason: str | None = None, *, clock=None) -> StockCorrection:
    return lifecycle_service.reject_cancellation(STOCK_CORRECTION, stock_correction_id, approver, reason, clock=clock)


def find_one(stock_correction_id: int) -> dict:
    return lifecycle_service.find_one(STOCK_CORRECTION, stock_correction_id)


def find_all(filters: dict | None = None, *, clock=None) -> dict:
    return lifecycle_service.find_all(STOCK_CORRECTION, filters, clock=clock)
