# Overview: Form approval state machine; transition guards, notes normalization, and form numbering.

"""
Form Approval State Machine

APPROVAL:
- 0 pending -> 1 approved | -1 rejected; approved and rejected are final
- only the requested approver may decide
- approving an approved form is a no-op; rejecting a rejected one too

CANCELLATION (only meaningful once a request exists):
- None -> 0 pending (requested by the maker)
- 0 pending -> 1 approved | -1 rejected (decided by request_cancellation_to)
- a rejected cancellation may be requested again

done=True blocks edits and cancellation requests.
"""

from __future__ import annotations

import re
from datetime import datetime

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import AlreadyApproved, AlreadyRejected, Forbidden, FormAlreadyReferenced, InvalidData, NotFound
from ..models import Form, FormSequence
from .concurrency import lock_for_update

_WHITESPACE_RE = re.compile(r"\s+")


def form_error_data(form: Form) -> dict:
    """Structured payload attached to errors raised about a specific form."""
    return {
        "form_number": form.number,
        "form_status": form.approval_status,
        "form_type": form.documentable_type,
    }


def normalize_notes(notes: str | None, max_length: int | None = None) -> str:
    """Strip, collapse whitespace runs to one space, truncate."""
    if max_length is None:
        max_length = current_app.config.get("FORM_NOTES_MAX_LENGTH", 255)
    if not notes:
        return ""
    return _WHITESPACE_RE.sub(" ", notes.strip())[:max_length]


def get_form_for_update(form_id: int) -> Form:
    form = lock_for_update(db.session.query(Form).filter_by(id=form_id)).first()
    if not form:
        raise NotFound("Form is not exist")
    return form


def next_form_number(prefix: str, document_type: str, date: datetime) -> str:
    """
    Allocate the next number for document_type in the month of date.

    Format: <prefix><yymm><nnn>, e.g. SC2101001. Runs inside the caller's
    transaction; the sequence row update is atomic, and a concurrent first
    insert for the same month falls back to the update path.
    """
    if not document_type:
        raise InvalidData("document_type is required")

    period = date.strftime("%y%m")
    stmt = (
        update(FormSequence)
        .where(
            FormSequence.document_type == document_type,
            FormSequence.period == period,
        )
        .values(next_number=FormSequence.next_number + 1)
    )

    def _allocated() -> int:
        current = (
            db.session.query(FormSequence.next_number)
            .filter_by(document_type=document_type, period=period)
            .scalar()
        )
        return current - 1

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _allocated()
    else:
        try:
            with db.session.begin_nested():
                db.session.add(FormSequence(document_type=document_type, period=period, next_number=2))
            next_num = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _allocated()

    return f"{prefix}{period}{next_num:03d}"


# =============================================================================
# Transition guards
# =============================================================================

def guard_approve(form: Form, actor) -> bool:
    """
    Returns True when the form is already approved (caller returns early).

    Rejection and cancellation are checked before identity.
    """
    if form.is_rejected:
        raise AlreadyRejected("Form already rejected", form_error_data(form))
    if form.is_cancelled:
        raise AlreadyApproved("Form already cancelled", form_error_data(form))
    if form.request_approval_to != actor.id:
        raise Forbidden("Forbidden")
    return form.is_approved


def guard_reject(form: Form, actor) -> bool:
    """Returns True when the form is already rejected (caller returns early)."""
    if form.is_approved:
        raise AlreadyApproved("Form already approved", form_error_data(form))
    if form.is_cancelled:
        raise AlreadyApproved("Form already cancelled", form_error_data(form))
    if form.request_approval_to != actor.id:
        raise Forbidden("Forbidden")
    return form.is_rejected


def guard_maker(form: Form, actor, message: str) -> None:
    if form.created_by != actor.id:
        raise Forbidden(message)


def guard_cancellation_requestable(form: Form, message: str) -> None:
    """done forms cannot be cancelled; an approved cancellation is final."""
    if form.done:
        raise FormAlreadyReferenced(message, form_error_data(form))
    if form.is_cancelled:
        raise AlreadyApproved("Form already cancelled", form_error_data(form))


def guard_editable(form: Form, message: str) -> None:
    if form.done:
        raise FormAlreadyReferenced(message, form_error_data(form))
    if form.is_cancelled:
        raise InvalidData("Can not update cancelled form", form_error_data(form))


def guard_cancellation_decision(form: Form, actor) -> None:
    """Cancellation must be pending, and the actor must be its addressee."""
    if form.cancellation_status == Form.CANCELLATION_APPROVED:
        raise AlreadyApproved("Cancellation already approved", form_error_data(form))
    if form.cancellation_status == Form.CANCELLATION_REJECTED:
        raise AlreadyRejected("Cancellation already rejected", form_error_data(form))
    if form.cancellation_status != Form.CANCELLATION_PENDING:
        raise InvalidData("Form has no pending cancellation request", form_error_data(form))
    if form.request_cancellation_to != actor.id:
        raise Forbidden("Forbidden")


# =============================================================================
# Transitions (state fields only; side effects belong to the posting engine)
# =============================================================================

def mark_approved(form: Form, actor, now: datetime) -> None:
    form.approval_status = Form.APPROVAL_APPROVED
    form.approval_by = actor.id
    form.approval_at = now


def mark_rejected(form: Form, actor, reason: str | None, now: datetime) -> None:
    form.approval_status = Form.APPROVAL_REJECTED
    form.approval_by = actor.id
    form.approval_at = now
    form.approval_reason = reason


def mark_cancellation_requested(form: Form, actor, reason: str, now: datetime) -> None:
    form.cancellation_status = Form.CANCELLATION_PENDING
    form.request_cancellation_by = actor.id
    form.request_cancellation_to = form.request_approval_to
    form.request_cancellation_reason = reason
    form.request_cancellation_at = now


def mark_cancellation_decided(form: Form, actor, approved: bool, reason: str | None, now: datetime) -> None:
    form.cancellation_status = Form.CANCELLATION_APPROVED if approved else Form.CANCELLATION_REJECTED
    form.cancellation_approval_by = actor.id
    form.cancellation_approval_at = now
    form.cancellation_approval_reason = reason


def reset_for_edit(form: Form, actor, approver_id: int, notes: str, now: datetime) -> None:
    """Editing sends the form back to pending and clears any cancellation request."""
    form.date = now
    form.notes = notes
    form.updated_by = actor.id
    form.request_approval_to = approver_id
    form.done = False
    form.approval_status = Form.APPROVAL_PENDING
    form.approval_by = None
    form.approval_at = None
    form.approval_reason = None
    form.cancellation_status = None
    form.request_cancellation_by = None
    form.request_cancellation_to = None
    form.request_cancellation_reason = None
    form.request_cancellation_at = None
    form.cancellation_approval_by = None
    form.cancellation_approval_at = None
    form.cancellation_approval_reason = None
