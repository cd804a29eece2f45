# Overview: Pytest coverage for stock correction cancellation requests and decisions.

from datetime import timedelta

import pytest

from backoffice.errors import (
    AlreadyApproved,
    AlreadyRejected,
    Forbidden,
    FormAlreadyReferenced,
    InvalidData,
    ReasonRequired,
    StockWouldGoNegative,
)
from backoffice.models import Form, FormNotification, Inventory, Journal, ReminderJob
from backoffice.services import permission_service, sales_invoice_service, stock_correction_service
from backoffice.services.document_types import SALES_INVOICE, STOCK_CORRECTION
from backoffice.services.stock_service import get_current_stock


def _form_of(correction):
    return STOCK_CORRECTION.get_form(correction)


@pytest.fixture
def approved_correction(db_session, maker, approver, opening_stock, sc_payload):
    """Approved +10 correction (stock 110)."""
    correction = stock_correction_service.create_form_request(maker, sc_payload(10))
    stock_correction_service.approve_form_request(correction.id, approver)
    return correction


class TestRequestCancellation:

    def test_marks_pending_and_addresses_approver(self, db_session, maker, approver, approved_correction, clock):
        stock_correction_service.request_cancellation(approved_correction.id, maker, "  duplicate entry ")

        form = _form_of(approved_correction)
        assert form.cancellation_status == Form.CANCELLATION_PENDING
        assert form.request_cancellation_by == maker.id
        assert form.request_cancellation_to == approver.id
        assert form.request_cancellation_reason == "duplicate entry"
        assert form.request_cancellation_at == clock.now()
        # postings stay until the approver decides
        assert db_session.query(Inventory).filter_by(form_id=form.id).count() == 1

    def test_notifies_and_schedules_reminders(self, db_session, maker, approver, approved_correction, clock):
        stock_correction_service.request_cancellation(approved_correction.id, maker, "duplicate")

        form = _form_of(approved_correction)
        notification = db_session.query(FormNotification).filter_by(form_id=form.id, kind="cancellation").one()
        assert notification.recipient_id == approver.id

        job = db_session.query(ReminderJob).filter_by(form_id=form.id).one()
        assert job.job_key == f"delete-email-approval-{form.id}"
        assert job.is_active is True
        assert job.max_runs == 6
        assert job.next_run_at == clock.now() + timedelta(hours=24)

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reason_required(self, db_session, maker, approved_correction, reason):
        with pytest.raises(ReasonRequired) as exc:
            stock_correction_service.request_cancellation(approved_correction.id, maker, reason)
        assert exc.value.message == "reason cannot empty"

    def test_only_maker(self, db_session, approver, approved_correction):
        with pytest.raises(Forbidden):
            stock_correction_service.request_cancellation(approved_correction.id, approver, "not mine")

    def test_done_form_is_blocked(self, db_session, maker, approved_correction):
        _form_of(approved_correction).done = True
        db_session.commit()

        with pytest.raises(FormAlreadyReferenced):
            stock_correction_service.request_cancellation(approved_correction.id, maker, "duplicate")

    def test_maker_needs_delete_permission(self, db_session, maker, approved_correction):
        permission_service.revoke_permission_from_role("manager", "delete stock correction")

        with pytest.raises(Forbidden):
            stock_correction_service.request_cancellation(approved_correction.id, maker, "duplicate")

    def test_reversal_must_not_drive_stock_negative(self, db_session, maker, approver, approved_correction, sc_payload):
        drain = stock_correction_service.create_form_request(maker, sc_payload(-105))
        stock_correction_service.approve_form_request(drain.id, approver)

        with pytest.raises(StockWouldGoNegative) as exc:
            stock_correction_service.request_cancellation(approved_correction.id, maker, "duplicate")
        assert exc.value.message == "Stock will minus if you delete this form"
        assert _form_of(approved_correction).cancellation_status is None

    def test_repeated_request_keeps_one_reminder_series(self, db_session, maker, approver, approved_correction):
        stock_correction_service.request_cancellation(approved_correction.id, maker, "duplicate")
        stock_correction_service.reject_cancellation(approved_correction.id, approver, "keep it")

        stock_correction_service.request_cancellation(approved_correction.id, maker, "really duplicate")

        form = _form_of(approved_correction)
        assert form.cancellation_status == Form.CANCELLATION_PENDING
        jobs = db_session.query(ReminderJob).filter_by(form_id=form.id).all()
        assert len(jobs) == 1
        assert jobs[0].is_active is True
        assert jobs[0].run_count == 0


class TestApproveCancellation:

    def test_reverses_postings(self, db_session, maker, approver, approved_correction, item, warehouse):
        stock_correction_service.request_cancellation(approved_correction.id, maker, "duplicate")

        stock_correction_service.approve_cancellation(approved_correction.id, approver, "ok")

        form = _form_of(approved_correction)
        assert form.cancellation_status == Form.CANCELLATION_APPROVED
        assert form.cancellation_approval_by == approver.id
        assert form.cancellation_approval_reason == "ok"
        assert db_session.query(Inventory).filter_by(form_id=form.id).count() == 0
        assert db_session.query(Journal).filter_by(form_id=form.id).count() == 0
        assert get_current_stock(item, warehouse.id) == 100

    def test_stops_reminders(self, db_session, maker, approver, approved_correction):
        stock_correction_service.request_cancellation(approved_correction.id, maker, "duplicate")

        stock_correction_service.approve_cancellation(approved_correction.id, approver)

        job = db_session.query(ReminderJob).filter_by(form_id=_form_of(approved_correction).id).one()
        assert job.is_active is False

    def test_only_addressee(self, db_session, maker, approved_correction):
        stock_correction_service.request_cancellation(approved_correction.id, maker, "duplicate")

        with pytest.raises(Forbidden):
            stock_correction_service.approve_cancellation(approved_correction.id, maker)

    def test_requires_pending_request(self, db_session, approver, approved_correction):
        with pytest.raises(InvalidData):
            stock_correction_service.approve_cancellation(approved_correction.id, approver)

    def test_cannot_decide_twice(self, db_session, maker, approver, approved_correction):
        stock_correction_service.request_cancellation(approved_correction.id, maker, "duplicate")
        stock_correction_service.approve_cancellation(approved_correction.id, approver)

        with pytest.raises(AlreadyApproved):
            stock_correction_service.approve_cancellation(approved_correction.id, approver)
        with pytest.raises(AlreadyApproved):
            stock_correction_service.request_cancellation(approved_correction.id, maker, "again")

    def test_pending_form_can_be_cancelled(self, db_session, maker, approver, opening_stock, sc_payload):
        correction = stock_correction_service.create_form_request(maker, sc_payload(10))
        stock_correction_service.request_cancellation(correction.id, maker, "typo")

        stock_correction_service.approve_cancellation(correction.id, approver)

        form = _form_of(correction)
        assert form.is_cancelled
        assert form.approval_status == Form.APPROVAL_PENDING

    def test_cancelled_pending_form_cannot_be_approved(self, db_session, maker, approver, opening_stock,
                                                        sc_payload, item, warehouse):
        correction = stock_correction_service.create_form_request(maker, sc_payload(-10))
        stock_correction_service.request_cancellation(correction.id, maker, "typo")
        stock_correction_service.approve_cancellation(correction.id, approver)

        with pytest.raises(AlreadyApproved) as exc:
            stock_correction_service.approve_form_request(correction.id, approver)

        assert exc.value.message == "Form already cancelled"
        assert db_session.query(Inventory).filter_by(form_id=_form_of(correction).id).count() == 0
        assert get_current_stock(item, warehouse.id) == 100
        assert _form_of(correction).approval_status == Form.APPROVAL_PENDING

    def test_cancelled_pending_form_cannot_be_rejected(self, db_session, maker, approver, opening_stock, sc_payload):
        correction = stock_correction_service.create_form_request(maker, sc_payload(10))
        stock_correction_service.request_cancellation(correction.id, maker, "typo")
        stock_correction_service.approve_cancellation(correction.id, approver)

        with pytest.raises(AlreadyApproved):
            stock_correction_service.reject_form_request(correction.id, approver, "late")

        assert _form_of(correction).approval_status == Form.APPROVAL_PENDING

    def test_cancelled_pending_invoice_cannot_be_approved(self, db_session, maker, approver, opening_stock,
                                                          si_payload, reference_form, item, warehouse):
        invoice = sales_invoice_service.create_form_request(maker, si_payload())
        sales_invoice_service.request_cancellation(invoice.id, maker, "wrong customer")
        sales_invoice_service.approve_cancellation(invoice.id, approver)

        with pytest.raises(AlreadyApproved) as exc:
            sales_invoice_service.approve_form_request(invoice.id, approver)

        assert exc.value.message == "Form already cancelled"
        invoice_form = SALES_INVOICE.get_form(invoice)
        assert db_session.query(Journal).filter_by(form_id=invoice_form.id).count() == 0
        assert get_current_stock(item, warehouse.id) == 100
        assert db_session.get(Form, reference_form.id).done is False


class TestRejectCancellation:

    def test_keeps_postings(self, db_session, maker, approver, approved_correction):
        stock_correction_service.request_cancellation(approved_correction.id, maker, "duplicate")

        stock_correction_service.reject_cancellation(approved_correction.id, approver, "needed")

        form = _form_of(approved_correction)
        assert form.cancellation_status == Form.CANCELLATION_REJECTED
        assert form.cancellation_approval_reason == "needed"
        assert db_session.query(Journal).filter_by(form_id=form.id).count() == 2

    def test_cannot_reject_twice(self, db_session, maker, approver, approved_correction):
        stock_correction_service.request_cancellation(approved_correction.id, maker, "duplicate")
        stock_correction_service.reject_cancellation(approved_correction.id, approver)

        with pytest.raises(AlreadyRejected):
            stock_correction_service.reject_cancellation(approved_correction.id, approver)
