# Overview: Form lifecycle transitions shared by every document type (reject, cancel, edit, read).

"""
Form Lifecycle Service

WHY: Rejecting, cancelling, editing and listing behave the same for every
document type; only names, permissions and line building differ. These
functions take a DocumentType and are wrapped by the per-type services.

Gating order for maker requests (cancellation, edit):
1. document exists
2. actor is the maker
3. form is not done (and not already cancelled)
4. actor's default branch, then default warehouse
5. actor holds "<action> <type>", approver holds "approve <type>"

Notifications go out after the transaction commits.
"""

from __future__ import annotations

import json
import math
from datetime import datetime, time, timedelta

from sqlalchemy import or_

from ..extensions import db
from ..errors import InvalidData, ReasonRequired
from ..models import Form, Item, User, Warehouse
from backoffice.time_utils import get_clock, parse_iso_date
from . import notification_service
from .concurrency import run_in_transaction
from .document_types import DocumentType
from .form_service import (
    get_form_for_update,
    guard_cancellation_decision,
    guard_cancellation_requestable,
    guard_editable,
    guard_maker,
    guard_reject,
    mark_cancellation_decided,
    mark_cancellation_requested,
    mark_rejected,
    normalize_notes,
    reset_for_edit,
)
from .permission_service import check_permission, require_default_location
from .posting_service import check_reversal, reverse_postings


DEFAULT_LIMIT = 10
DEFAULT_PAGE = 1
DEFAULT_DATE_RANGE_DAYS = 30

DONE_FILTERS = {"pending", "done", "cancellationApproved", "null"}
APPROVAL_FILTERS = {
    "approvalPending": Form.APPROVAL_PENDING,
    "approvalApproved": Form.APPROVAL_APPROVED,
    "approvalRejected": Form.APPROVAL_REJECTED,
}


def serialize(document, form: Form) -> dict:
    data = document.to_dict()
    data["form"] = form.to_dict()
    return data


def get_approver(approver_id) -> User:
    approver = db.session.get(User, approver_id) if approver_id else None
    if not approver:
        raise InvalidData("Approver is not exist")
    return approver


def require_request_gate(document_type: DocumentType, warehouse: Warehouse, maker: User, approver_id: int, action: str) -> None:
    """Default location for the maker, action permission for the maker, approve for the approver."""
    require_default_location(maker, warehouse)
    check_permission(maker.id, document_type.permission(action))
    check_permission(approver_id, document_type.permission("approve"))


# =============================================================================
# Approval decisions
# =============================================================================

def reject_form_request(document_type: DocumentType, document_id: int, approver: User, reason: str | None = None, *, clock=None):
    """Reject a pending form. Rejecting twice is a no-op."""
    clock = clock or get_clock()

    def _op():
        document = document_type.get_document(document_id)
        form = get_form_for_update(document_type.get_form(document).id)
        if guard_reject(form, approver):
            return document
        mark_rejected(form, approver, reason, clock.now())
        notification_service.cancel_reminders(form.id, notification_service.KIND_EDIT)
        return document

    return run_in_transaction(_op)


# =============================================================================
# Cancellation
# =============================================================================

def request_cancellation(document_type: DocumentType, document_id: int, maker: User, reason: str | None, *, clock=None):
    """
    Ask the approver to cancel (delete) a form.

    Removing the form's ledger rows must not drive any stock negative, even
    before the approver decides.
    """
    clock = clock or get_clock()

    def _op():
        document = document_type.get_document(document_id)
        form = get_form_for_update(document_type.get_form(document).id)

        guard_maker(form, maker, f"Forbidden - You are not the maker of the {document_type.module}")
        guard_cancellation_requestable(form, f"Can not delete already referenced {document_type.module}")
        require_request_gate(document_type, document.warehouse, maker, form.request_approval_to, "delete")

        if not reason or not reason.strip():
            raise ReasonRequired("reason cannot empty")

        check_reversal(form)
        mark_cancellation_requested(form, maker, reason.strip(), clock.now())
        return document, form.id

    document, form_id = run_in_transaction(_op)
    notification_service.send_after_commit(
        form_id, notification_service.KIND_CANCELLATION, with_reminder=True, clock=clock
    )
    return document


def approve_cancellation(document_type: DocumentType, document_id: int, approver: User, reason: str | None = None, *, clock=None):
    """Approve a pending cancellation: reverse postings and release references."""
    clock = clock or get_clock()

    def _op():
        document = document_type.get_document(document_id)
        form = get_form_for_update(document_type.get_form(document).id)

        guard_cancellation_decision(form, approver)
        check_reversal(form)
        reverse_postings(form)
        mark_cancellation_decided(form, approver, True, reason, clock.now())
        if document_type.release:
            document_type.release(form, document)
        notification_service.cancel_reminders(form.id)
        return document

    return run_in_transaction(_op)


def reject_cancellation(document_type: DocumentType, document_id: int, approver: User, reason: str | None = None, *, clock=None):
    clock = clock or get_clock()

    def _op():
        document = document_type.get_document(document_id)
        form = get_form_for_update(document_type.get_form(document).id)

        guard_cancellation_decision(form, approver)
        mark_cancellation_decided(form, approver, False, reason, clock.now())
        notification_service.cancel_reminders(form.id, notification_service.KIND_CANCELLATION)
        return document

    return run_in_transaction(_op)


# =============================================================================
# Edit
# =============================================================================

def update_form(document_type: DocumentType, document_id: int, maker: User, payload: dict, rebuild_lines, *, clock=None):
    """
    Replace a form's lines and send it back for approval.

    rebuild_lines(document, form, payload, now) validates and creates the new
    lines. The number is kept; postings of a previous approval are reversed.
    """
    clock = clock or get_clock()
    payload = payload or {}

    def _op():
        document = document_type.get_document(document_id)
        form = get_form_for_update(document_type.get_form(document).id)

        guard_maker(form, maker, f"Forbidden - Only maker can update the {document_type.module}")
        guard_editable(form, f"Can not update already referenced {document_type.module}")
        approver = get_approver(payload.get("request_approval_to"))
        require_request_gate(document_type, document.warehouse, maker, approver.id, "update")

        now = clock.now()
        check_reversal(form, "Stock will minus if you update this form")
        reverse_postings(form)
        reset_for_edit(form, maker, approver.id, normalize_notes(payload.get("notes")), now)
        notification_service.cancel_reminders(form.id)

        for line in list(document.items):
            db.session.delete(line)
        db.session.flush()
        db.session.expire(document, ["items"])

        rebuild_lines(document, form, payload, now)
        db.session.flush()
        return document, form.id

    document, form_id = run_in_transaction(_op)
    notification_service.send_after_commit(
        form_id, notification_service.KIND_EDIT, with_reminder=True, clock=clock
    )
    return document


# =============================================================================
# Reads
# =============================================================================

def find_one(document_type: DocumentType, document_id: int) -> dict:
    document = document_type.get_document(document_id)
    return serialize(document, document_type.get_form(document))


def _parse_positive_int(value, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _date_range(filters: dict, now: datetime) -> tuple[datetime, datetime]:
    try:
        min_date = parse_iso_date(filters.get("filter_date_min")) or (now - timedelta(days=DEFAULT_DATE_RANGE_DAYS)).date()
        max_date = parse_iso_date(filters.get("filter_date_max")) or now.date()
    except ValueError:
        raise InvalidData("Invalid data")
    return datetime.combine(min_date, time.min), datetime.combine(max_date + timedelta(days=1), time.min)


def _status_conditions(filter_form: str | None) -> list:
    if not filter_form:
        return []

    done_status, _, approval_status = filter_form.partition(";")
    approval_status = approval_status or "null"
    if done_status not in DONE_FILTERS or (approval_status != "null" and approval_status not in APPROVAL_FILTERS):
        raise InvalidData("Invalid data")

    conditions = []
    if done_status == "cancellationApproved":
        conditions.append(Form.cancellation_status == Form.CANCELLATION_APPROVED)
    elif done_status != "null":
        conditions.append(
            or_(Form.cancellation_status.is_(None), Form.cancellation_status != Form.CANCELLATION_APPROVED)
        )
        conditions.append(Form.done == (done_status == "done"))

    if approval_status != "null":
        conditions.append(Form.approval_status == APPROVAL_FILTERS[approval_status])
    return conditions


def _like_conditions(document_type: DocumentType, filter_like) -> list:
    if not filter_like:
        return []
    if isinstance(filter_like, str):
        try:
            filter_like = json.loads(filter_like)
        except ValueError:
            raise InvalidData("Invalid data")
    if not isinstance(filter_like, dict):
        raise InvalidData("Invalid data")

    model, line_model = document_type.model, document_type.line_model
    conditions = []
    for key, value in filter_like.items():
        if key not in document_type.search_fields:
            raise InvalidData(f"Unknown filter field: {key}")
        value = str(value or "")
        if key == "form.number":
            conditions.append(Form.number.contains(value, autoescape=True))
        elif key == "form.notes":
            conditions.append(Form.notes.contains(value, autoescape=True))
        elif key == "item.name":
            conditions.append(model.items.any(line_model.item.has(Item.name.contains(value, autoescape=True))))
    return [or_(*conditions)] if conditions else []


def find_all(document_type: DocumentType, filters: dict | None = None, *, clock=None) -> dict:
    """
    Paginated listing.

    filters: limit, page, filter_date_min, filter_date_max,
    filter_form ("<done>;<approval>"), filter_like (JSON object).
    """
    clock = clock or get_clock()
    filters = filters or {}
    limit = _parse_positive_int(filters.get("limit"), DEFAULT_LIMIT)
    page = _parse_positive_int(filters.get("page"), DEFAULT_PAGE)
    date_min, date_max = _date_range(filters, clock.now())

    model = document_type.model
    query = (
        db.session.query(model, Form)
        .join(Form, (Form.documentable_id == model.id) & (Form.documentable_type == document_type.name))
        .filter(Form.date >= date_min, Form.date < date_max)
    )
    for condition in _status_conditions(filters.get("filter_form")):
        query = query.filter(condition)
    for condition in _like_conditions(document_type, filters.get("filter_like")):
        query = query.filter(condition)

    total = query.count()
    rows = (
        query.order_by(Form.created_at.desc(), Form.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "total": total,
        "data": [serialize(document, form) for document, form in rows],
        "max_item": limit,
        "current_page": page,
        "total_page": math.ceil(total / limit),
    }
