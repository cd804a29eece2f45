# Overview: Pytest coverage for stock correction requests; validation, gating, numbering, projections.

import pytest

from backoffice.errors import Forbidden, InvalidData, NotFound, OnlySmallestUnitAllowed, StockWouldGoNegative
from backoffice.models import BranchUser, Form, FormNotification, Inventory, Journal, StockCorrection
from backoffice.services import stock_correction_service
from backoffice.services.document_types import STOCK_CORRECTION


def _form_of(correction):
    return STOCK_CORRECTION.get_form(correction)


class TestCreateStockCorrection:

    def test_creates_pending_form(self, db_session, maker, approver, opening_stock, sc_payload):
        correction = stock_correction_service.create_form_request(maker, sc_payload(10))

        form = _form_of(correction)
        assert form.number == "SC2101001"
        assert form.approval_status == Form.APPROVAL_PENDING
        assert form.created_by == maker.id
        assert form.request_approval_to == approver.id
        assert form.branch_id == correction.warehouse.branch_id
        assert form.done is False
        assert correction.type_correction == "in"

    def test_numbers_are_sequential(self, db_session, maker, opening_stock, sc_payload):
        first = stock_correction_service.create_form_request(maker, sc_payload(1))
        second = stock_correction_service.create_form_request(maker, sc_payload(2))

        assert _form_of(first).number == "SC2101001"
        assert _form_of(second).number == "SC2101002"

    def test_projects_stock_on_lines(self, db_session, maker, opening_stock, sc_payload):
        correction = stock_correction_service.create_form_request(maker, sc_payload(-30))

        line = correction.items[0]
        assert line.quantity == -30
        assert line.initial_stock == 100
        assert line.final_stock == 70

    def test_does_not_move_stock(self, db_session, maker, opening_stock, sc_payload):
        correction = stock_correction_service.create_form_request(maker, sc_payload(10))

        form = _form_of(correction)
        assert db_session.query(Inventory).filter_by(form_id=form.id).count() == 0
        assert db_session.query(Journal).filter_by(form_id=form.id).count() == 0

    def test_normalizes_notes(self, db_session, maker, opening_stock, sc_payload):
        correction = stock_correction_service.create_form_request(
            maker, sc_payload(1, notes="  shelf   B\n recount  ")
        )
        assert _form_of(correction).notes == "shelf B recount"

        correction = stock_correction_service.create_form_request(maker, sc_payload(1, notes="n" * 400))
        assert len(_form_of(correction).notes) == 255

    def test_notifies_approver(self, db_session, maker, approver, opening_stock, sc_payload):
        correction = stock_correction_service.create_form_request(maker, sc_payload(10))

        notifications = db_session.query(FormNotification).filter_by(form_id=_form_of(correction).id).all()
        assert len(notifications) == 1
        assert notifications[0].recipient_id == approver.id
        assert notifications[0].kind == "approval"
        assert "SC2101001" in notifications[0].subject


class TestCreateValidation:

    def test_rejects_non_smallest_unit(self, db_session, maker, opening_stock, sc_payload, item):
        payload = sc_payload(items=[{"item_id": item.id, "quantity": 1, "unit": "box", "converter": 10}])

        with pytest.raises(OnlySmallestUnitAllowed) as exc:
            stock_correction_service.create_form_request(maker, payload)
        assert exc.value.message == "Only can use smallest item unit"
        assert exc.value.status_code == 400

    @pytest.mark.parametrize("quantity", ["10", 1.5, None, True])
    def test_rejects_non_integer_quantity(self, db_session, maker, opening_stock, sc_payload, item, quantity):
        payload = sc_payload(items=[{"item_id": item.id, "quantity": quantity, "unit": "pcs", "converter": 1}])

        with pytest.raises(InvalidData):
            stock_correction_service.create_form_request(maker, payload)

    def test_accepts_whole_number_float_quantity(self, db_session, maker, opening_stock, sc_payload, item):
        payload = sc_payload(items=[{"item_id": item.id, "quantity": 10.0, "unit": "pcs", "converter": 1}])

        correction = stock_correction_service.create_form_request(maker, payload)

        line = correction.items[0]
        assert line.quantity == 10
        assert isinstance(line.quantity, int)
        assert line.final_stock == 110

    def test_rejects_unknown_type_correction(self, db_session, maker, opening_stock, sc_payload):
        with pytest.raises(InvalidData):
            stock_correction_service.create_form_request(maker, sc_payload(1, type_correction="sideways"))

    def test_rejects_empty_items(self, db_session, maker, opening_stock, sc_payload):
        with pytest.raises(InvalidData):
            stock_correction_service.create_form_request(maker, sc_payload(1, items=[]))

    def test_unknown_approver(self, db_session, maker, opening_stock, sc_payload):
        with pytest.raises(InvalidData) as exc:
            stock_correction_service.create_form_request(maker, sc_payload(1, request_approval_to=999999))
        assert exc.value.message == "Approver is not exist"

    def test_unknown_item(self, db_session, maker, opening_stock, sc_payload):
        payload = sc_payload(items=[{"item_id": 999999, "quantity": 1, "unit": "pcs", "converter": 1}])

        with pytest.raises(NotFound) as exc:
            stock_correction_service.create_form_request(maker, payload)
        assert exc.value.message == "Item is not exist"

    def test_projected_stock_cannot_go_negative(self, db_session, maker, opening_stock, sc_payload):
        with pytest.raises(StockWouldGoNegative) as exc:
            stock_correction_service.create_form_request(maker, sc_payload(-110))
        assert exc.value.message == "Stock can not be minus"

        assert db_session.query(StockCorrection).count() == 0
        assert db_session.query(Form).filter_by(documentable_type="StockCorrection").count() == 0

    def test_earlier_lines_count_towards_projection(self, db_session, maker, opening_stock, sc_payload, item):
        line = {"item_id": item.id, "quantity": -60, "unit": "pcs", "converter": 1}

        with pytest.raises(StockWouldGoNegative):
            stock_correction_service.create_form_request(maker, sc_payload(items=[line, dict(line)]))

    def test_failed_request_does_not_consume_a_number(self, db_session, maker, opening_stock, sc_payload):
        with pytest.raises(StockWouldGoNegative):
            stock_correction_service.create_form_request(maker, sc_payload(-110))

        correction = stock_correction_service.create_form_request(maker, sc_payload(1))
        assert _form_of(correction).number == "SC2101001"


class TestCreateGating:

    def test_requires_default_branch(self, db_session, make_user, opening_stock, sc_payload):
        outsider = make_user("outsider", "manager")

        with pytest.raises(Forbidden) as exc:
            stock_correction_service.create_form_request(outsider, sc_payload(1))
        assert exc.value.message == "Forbidden - Invalid default branch"

    def test_requires_default_warehouse(self, db_session, make_user, opening_stock, sc_payload, warehouse):
        user = make_user("branch_only", "manager")
        db_session.add(BranchUser(user_id=user.id, branch_id=warehouse.branch_id, is_default=True))
        db_session.commit()

        with pytest.raises(Forbidden) as exc:
            stock_correction_service.create_form_request(user, sc_payload(1))
        assert exc.value.message == "Forbidden - Invalid default warehouse"

    def test_non_default_assignment_is_not_enough(self, db_session, make_user, assign_location, opening_stock, sc_payload, warehouse):
        user = make_user("visitor", "manager")
        assign_location(user, warehouse, default=False)

        with pytest.raises(Forbidden):
            stock_correction_service.create_form_request(user, sc_payload(1))

    def test_maker_needs_create_permission(self, db_session, make_user, assign_location, opening_stock, sc_payload, warehouse):
        clerk = make_user("clerk", "sales staff")
        assign_location(clerk, warehouse)

        with pytest.raises(Forbidden):
            stock_correction_service.create_form_request(clerk, sc_payload(1))

    def test_maker_without_role_is_denied(self, db_session, make_user, assign_location, opening_stock, sc_payload, warehouse):
        nobody = make_user("nobody")
        assign_location(nobody, warehouse)

        with pytest.raises(Forbidden):
            stock_correction_service.create_form_request(nobody, sc_payload(1))

    def test_approver_needs_approve_permission(self, db_session, maker, make_user, opening_stock, sc_payload):
        staff = make_user("staff", "warehouse staff")

        with pytest.raises(Forbidden):
            stock_correction_service.create_form_request(maker, sc_payload(1, request_approval_to=staff.id))

    def test_super_admin_still_needs_default_location(self, db_session, make_user, opening_stock, sc_payload):
        admin = make_user("root", "super admin")

        with pytest.raises(Forbidden):
            stock_correction_service.create_form_request(admin, sc_payload(1))

    def test_super_admin_skips_permission_checks(self, db_session, make_user, assign_location, opening_stock, sc_payload, warehouse):
        admin = make_user("root", "super admin")
        assign_location(admin, warehouse)
        plain_approver = make_user("plain", "super admin")

        correction = stock_correction_service.create_form_request(
            admin, sc_payload(1, request_approval_to=plain_approver.id)
        )
        assert _form_of(correction).created_by == admin.id
