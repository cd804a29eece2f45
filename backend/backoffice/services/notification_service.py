# Overview: Approver notifications and reminder series for pending form requests.

"""
Notification Service

WHY: Approvers must hear about requests waiting on them, and keep hearing
about cancellation and edit requests until they decide.

Notifications are rows in an outbox table (FormNotification). A reminder
series is a ReminderJob keyed "<delete|update>-email-approval-<form id>";
the unique key keeps one series per request. dispatch_due_reminders() sends
whatever is due and retires a series once it hits its run limit or the
request is resolved.
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import Form, FormNotification, ReminderJob
from backoffice.time_utils import get_clock


KIND_APPROVAL = "approval"
KIND_CANCELLATION = "cancellation"
KIND_EDIT = "edit"
KIND_REMINDER = "reminder"

# Reminder series prefixes; the job key is "<prefix>-email-approval-<form id>"
REMINDER_PREFIXES = {
    KIND_CANCELLATION: "delete",
    KIND_EDIT: "update",
}

_SUBJECTS = {
    KIND_APPROVAL: "Approval request for {number}",
    KIND_CANCELLATION: "Cancellation request for {number}",
    KIND_EDIT: "Approval request for edited {number}",
    KIND_REMINDER: "Reminder: {number} is waiting for your approval",
}


def reminder_job_key(kind: str, form_id: int) -> str:
    return f"{REMINDER_PREFIXES[kind]}-email-approval-{form_id}"


def _recipient_for(form: Form, kind: str) -> int | None:
    if kind == KIND_CANCELLATION:
        return form.request_cancellation_to or form.request_approval_to
    return form.request_approval_to


def notify_approver(form: Form, kind: str, *, clock=None, job_key: str | None = None) -> FormNotification | None:
    """Persist one outbound message to the form's approver."""
    clock = clock or get_clock()
    recipient_id = _recipient_for(form, kind)
    if not recipient_id:
        return None

    notification = FormNotification(
        form_id=form.id,
        recipient_id=recipient_id,
        kind=kind,
        subject=_SUBJECTS[kind].format(number=form.number),
        job_key=job_key,
        created_at=clock.now(),
    )
    db.session.add(notification)
    db.session.commit()
    return notification


def schedule_reminder(form: Form, kind: str, *, clock=None) -> ReminderJob | None:
    """
    Start (or restart) the reminder series for a pending request.

    Idempotent by job key: an active series is returned untouched; a
    finished one is reset.
    """
    clock = clock or get_clock()
    recipient_id = _recipient_for(form, kind)
    if not recipient_id:
        return None

    interval_hours = current_app.config.get("REMINDER_INTERVAL_HOURS", 24)
    max_runs = current_app.config.get("REMINDER_MAX_OCCURRENCES", 6)
    now = clock.now()
    job_key = reminder_job_key(kind, form.id)

    job = db.session.query(ReminderJob).filter_by(job_key=job_key).first()
    if job and job.is_active:
        return job

    if job:
        job.recipient_id = recipient_id
        job.run_count = 0
        job.interval_hours = interval_hours
        job.max_runs = max_runs
        job.next_run_at = now + timedelta(hours=interval_hours)
        job.is_active = True
    else:
        job = ReminderJob(
            job_key=job_key,
            form_id=form.id,
            recipient_id=recipient_id,
            kind=kind,
            interval_hours=interval_hours,
            max_runs=max_runs,
            run_count=0,
            next_run_at=now + timedelta(hours=interval_hours),
            is_active=True,
            created_at=now,
        )
        db.session.add(job)

    db.session.commit()
    return job


def cancel_reminders(form_id: int, kind: str | None = None) -> None:
    """Stop the reminder series of a form, or only those of one kind. No commit."""
    query = db.session.query(ReminderJob).filter_by(form_id=form_id, is_active=True)
    if kind:
        query = query.filter_by(kind=kind)
    query.update(
        {"is_active": False}, synchronize_session=False
    )


def _request_resolved(job: ReminderJob) -> bool:
    form = db.session.get(Form, job.form_id)
    if not form:
        return True
    if job.kind == KIND_CANCELLATION:
        return form.cancellation_status != Form.CANCELLATION_PENDING
    return form.approval_status != Form.APPROVAL_PENDING


def dispatch_due_reminders(*, clock=None) -> int:
    """
    Send every reminder whose next_run_at has passed.

    A series stops after max_runs reminders or as soon as its request is
    resolved. Returns the number of reminders sent.
    """
    clock = clock or get_clock()
    now = clock.now()

    jobs = (
        db.session.query(ReminderJob)
        .filter(ReminderJob.is_active.is_(True), ReminderJob.next_run_at <= now)
        .order_by(ReminderJob.next_run_at.asc(), ReminderJob.id.asc())
        .all()
    )

    sent = 0
    for job in jobs:
        if _request_resolved(job):
            job.is_active = False
            continue

        form = db.session.get(Form, job.form_id)
        db.session.add(
            FormNotification(
                form_id=form.id,
                recipient_id=job.recipient_id,
                kind=KIND_REMINDER,
                subject=_SUBJECTS[KIND_REMINDER].format(number=form.number),
                job_key=job.job_key,
                created_at=now,
            )
        )
        job.run_count += 1
        job.next_run_at = job.next_run_at + timedelta(hours=job.interval_hours)
        if job.run_count >= job.max_runs:
            job.is_active = False
        sent += 1

    db.session.commit()
    if sent:
        current_app.logger.info("Dispatched %s approval reminder(s)", sent)
    return sent


def send_after_commit(form_id: int, kind: str, *, with_reminder: bool = False, clock=None) -> None:
    """
    Notify the approver once the transition has committed.

    Failures are logged and swallowed: the form transition already
    committed and must not be reported as failed.
    """
    try:
        form = db.session.get(Form, form_id)
        if not form:
            return
        job_key = reminder_job_key(kind, form.id) if with_reminder else None
        notify_approver(form, kind, clock=clock, job_key=job_key)
        if with_reminder:
            schedule_reminder(form, kind, clock=clock)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to notify approver for form %s", form_id)
