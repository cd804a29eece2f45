from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class Form(db.Model):
    """
    Approval envelope shared by every document type.

    WHY: Stock corrections, sales invoices and the upstream documents they
    reference all go through the same maker-checker workflow. The workflow
    state lives here; the typed payload lives in the documentable row named
    by (documentable_type, documentable_id).

    APPROVAL:
    - approval_status: 0 pending, 1 approved, -1 rejected
    - pending -> approved | rejected, never back

    CANCELLATION (layered on top of approval):
    - cancellation_status: None (never requested), 0 pending, 1 approved, -1 rejected
    - done=True means a downstream document consumed this form; it blocks
      edits and cancellation requests
    """
    __tablename__ = "forms"
    __table_args__ = (
        db.UniqueConstraint("documentable_type", "number", name="uq_forms_type_number"),
        db.Index("ix_forms_documentable", "documentable_type", "documentable_id"),
        db.Index("ix_forms_type_date", "documentable_type", "date"),
        {"sqlite_autoincrement": True},
    )

    APPROVAL_PENDING = 0
    APPROVAL_APPROVED = 1
    APPROVAL_REJECTED = -1

    CANCELLATION_PENDING = 0
    CANCELLATION_APPROVED = 1
    CANCELLATION_REJECTED = -1

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    documentable_type = db.Column(db.String(64), nullable=False)
    documentable_id = db.Column(db.Integer, nullable=True)

    # Human-readable number, e.g. "SC2101001"
    number = db.Column(db.String(64), nullable=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False)
    notes = db.Column(db.String(255), nullable=True)
    done = db.Column(db.Boolean, nullable=False, default=False)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    request_approval_to = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    approval_status = db.Column(db.Integer, nullable=False, default=0, index=True)
    approval_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approval_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approval_reason = db.Column(db.String(255), nullable=True)

    cancellation_status = db.Column(db.Integer, nullable=True, index=True)
    request_cancellation_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    request_cancellation_to = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    request_cancellation_reason = db.Column(db.String(255), nullable=True)
    request_cancellation_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_approval_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancellation_approval_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_approval_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    branch = db.relationship("Branch")
    created_by_user = db.relationship("User", foreign_keys=[created_by])
    approver = db.relationship("User", foreign_keys=[request_approval_to])

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Form id={self.id} type={self.documentable_type} number={self.number!r}>"

    @property
    def is_approved(self) -> bool:
        return self.approval_status == self.APPROVAL_APPROVED

    @property
    def is_rejected(self) -> bool:
        return self.approval_status == self.APPROVAL_REJECTED

    @property
    def is_cancelled(self) -> bool:
        return self.cancellation_status == self.CANCELLATION_APPROVED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "documentable_type": self.documentable_type,
            "documentable_id": self.documentable_id,
            "number": self.number,
            "date": to_utc_z(self.date),
            "notes": self.notes,
            "done": self.done,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "request_approval_to": self.request_approval_to,
            "approval_status": self.approval_status,
            "approval_by": self.approval_by,
            "approval_at": to_utc_z(self.approval_at),
            "approval_reason": self.approval_reason,
            "cancellation_status": self.cancellation_status,
            "request_cancellation_by": self.request_cancellation_by,
            "request_cancellation_to": self.request_cancellation_to,
            "request_cancellation_reason": self.request_cancellation_reason,
            "request_cancellation_at": to_utc_z(self.request_cancellation_at),
            "cancellation_approval_by": self.cancellation_approval_by,
            "cancellation_approval_at": to_utc_z(self.cancellation_approval_at),
            "cancellation_approval_reason": self.cancellation_approval_reason,
            "version_id": self.version_id,
        }


class FormSequence(db.Model):
    """
    Atomic per-type, per-period form numbering.

    WHY: Prevent two concurrent requests from allocating the same number.
    period is "yymm" of the form date; numbering restarts every month.
    """
    __tablename__ = "form_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "period", name="uq_form_sequences_type_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(64), nullable=False, index=True)
    period = db.Column(db.String(8), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "period": self.period,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
