from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class FormNotification(db.Model):
    """
    Outbound approval message addressed to a user about a form.

    kind: "approval" (new or edited form), "cancellation", "reminder".
    Delivery transport is outside this service; rows are the outbox.
    """
    __tablename__ = "form_notifications"
    __table_args__ = (
        db.Index("ix_form_notifications_recipient", "recipient_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    form_id = db.Column(db.Integer, db.ForeignKey("forms.id"), nullable=False, index=True)
    recipient_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    kind = db.Column(db.String(32), nullable=False)
    subject = db.Column(db.String(255), nullable=False)
    job_key = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    form = db.relationship("Form")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "form_id": self.form_id,
            "recipient_id": self.recipient_id,
            "kind": self.kind,
            "subject": self.subject,
            "job_key": self.job_key,
            "created_at": to_utc_z(self.created_at),
        }


class ReminderJob(db.Model):
    """
    Repeating reminder series.

    WHY: An approver who ignores a cancellation or edit request gets
    reminded every interval until the request is resolved or max_runs
    reminders went out. job_key is unique so a re-request does not start a
    second series.
    """
    __tablename__ = "reminder_jobs"
    __table_args__ = (
        db.UniqueConstraint("job_key", name="uq_reminder_jobs_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    job_key = db.Column(db.String(128), nullable=False)
    form_id = db.Column(db.Integer, db.ForeignKey("forms.id"), nullable=False, index=True)
    recipient_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    kind = db.Column(db.String(32), nullable=False)

    interval_hours = db.Column(db.Integer, nullable=False, default=24)
    max_runs = db.Column(db.Integer, nullable=False, default=6)
    run_count = db.Column(db.Integer, nullable=False, default=0)
    next_run_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    form = db.relationship("Form")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_key": self.job_key,
            "form_id": self.form_id,
            "recipient_id": self.recipient_id,
            "kind": self.kind,
            "interval_hours": self.interval_hours,
            "max_runs": self.max_runs,
            "run_count": self.run_count,
            "next_run_at": to_utc_z(self.next_run_at),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
