"""
Pytest fixtures for the back office tests.

Provides an in-memory database, a frozen clock, users with roles and
default locations, an item with opening stock and value, and the journal
settings the posting engine needs.
"""

from datetime import datetime

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import (
    BranchUser,
    Branch,
    ChartOfAccount,
    Customer,
    Form,
    Inventory,
    Item,
    ItemUnit,
    Journal,
    SettingJournal,
    User,
    UserWarehouse,
    Warehouse,
)
from backoffice.services import permission_service
from backoffice.services.auth_service import hash_password
from backoffice.time_utils import FixedClock


TEST_PASSWORD = "Password123"
NOW = datetime(2021, 1, 15, 10, 0, 0)
OPENING_DATE = datetime(2021, 1, 1, 8, 0, 0)
OPENING_QUANTITY = 100
OPENING_VALUE_CENTS = 1_000_000


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database and a fresh frozen clock for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        app.config['CLOCK'] = FixedClock(NOW)

        yield db.session

        # Cleanup after test
        db.session.rollback()
        app.config['CLOCK'] = None


@pytest.fixture(scope='function')
def clock(app, db_session):
    return app.config['CLOCK']


@pytest.fixture(scope='function')
def setup_roles(db_session):
    """Setup default roles and permissions."""
    permission_service.initialize_permissions()
    permission_service.assign_default_role_permissions()


@pytest.fixture(scope='function')
def make_user(db_session, setup_roles):
    """Factory: make_user("name", "manager") creates a user holding the role."""
    def _make(username, role_name=None):
        user = User(
            username=username,
            email=f"{username}@backoffice.test",
            name=username.title(),
            password_hash=hash_password(TEST_PASSWORD, rounds=4),
        )
        db_session.add(user)
        db_session.commit()
        if role_name:
            permission_service.assign_role(user.id, role_name)
        return user

    return _make


@pytest.fixture(scope='function')
def assign_location(db_session):
    """Factory: make warehouse (and its branch) the user's defaults."""
    def _assign(user, warehouse, *, default=True):
        db_session.add(BranchUser(user_id=user.id, branch_id=warehouse.branch_id, is_default=default))
        db_session.add(UserWarehouse(user_id=user.id, warehouse_id=warehouse.id, is_default=default))
        db_session.commit()

    return _assign


# =============================================================================
# Locations and users
# =============================================================================

@pytest.fixture(scope='function')
def branch(db_session):
    branch = Branch(name="Central")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def warehouse(db_session, branch):
    warehouse = Warehouse(branch_id=branch.id, name="Main Warehouse")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def maker(make_user, assign_location, warehouse):
    """Manager working from the main warehouse; creates every form."""
    user = make_user("maker", "manager")
    assign_location(user, warehouse)
    return user


@pytest.fixture(scope='function')
def approver(make_user):
    """Manager named as approver on every form."""
    return make_user("approver", "manager")


# =============================================================================
# Accounts and master data
# =============================================================================

@pytest.fixture(scope='function')
def accounts(db_session):
    """Chart of accounts plus the SettingJournal rows posting looks up."""
    rows = {
        "inventory": ChartOfAccount(number="1301", name="Inventory"),
        "difference": ChartOfAccount(number="5901", name="Difference Stock Expenses"),
        "cost_of_sales": ChartOfAccount(number="5101", name="Cost of Sales"),
        "receivable": ChartOfAccount(number="1201", name="Account Receivable"),
        "sales_income": ChartOfAccount(number="4101", name="Sales Income"),
        "tax_payable": ChartOfAccount(number="2301", name="Income Tax Payable"),
    }
    db_session.add_all(rows.values())
    db_session.flush()

    db_session.add_all([
        SettingJournal(feature="stock correction", name="difference stock expenses",
                       chart_of_account_id=rows["difference"].id),
        SettingJournal(feature="sales", name="cost of sales", chart_of_account_id=rows["cost_of_sales"].id),
        SettingJournal(feature="sales", name="account receivable", chart_of_account_id=rows["receivable"].id),
        SettingJournal(feature="sales", name="sales income", chart_of_account_id=rows["sales_income"].id),
        SettingJournal(feature="sales", name="income tax payable", chart_of_account_id=rows["tax_payable"].id),
    ])
    db_session.commit()
    return rows


@pytest.fixture(scope='function')
def item(db_session, accounts):
    """Untracked item sold in pieces (converter 1) and boxes (converter 10)."""
    item = Item(code="WDG-001", name="Widget", chart_of_account_id=accounts["inventory"].id)
    db_session.add(item)
    db_session.flush()
    db_session.add_all([
        ItemUnit(item_id=item.id, label="pcs", name="Piece", converter=1),
        ItemUnit(item_id=item.id, label="box", name="Box", converter=10),
    ])
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Acme Retail", address="1 Market St", phone="555-0100")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def opening_stock(db_session, maker, warehouse, item, accounts):
    """
    Approved purchase receiving 100 Widgets worth 1,000,000 cents.

    Gives the item a unit cost of 10,000 cents.
    """
    form = Form(
        branch_id=warehouse.branch_id,
        documentable_type="PurchaseInvoice",
        documentable_id=1,
        number="PI2101001",
        date=OPENING_DATE,
        notes="opening stock",
        created_by=maker.id,
        request_approval_to=maker.id,
        approval_status=Form.APPROVAL_APPROVED,
        done=True,
    )
    db_session.add(form)
    db_session.flush()

    db_session.add(Inventory(
        form_id=form.id,
        warehouse_id=warehouse.id,
        item_id=item.id,
        quantity=OPENING_QUANTITY,
        date=OPENING_DATE,
    ))
    db_session.add(Journal(
        form_id=form.id,
        journalable_type="Item",
        journalable_id=item.id,
        chart_of_account_id=accounts["inventory"].id,
        debit_cents=OPENING_VALUE_CENTS,
        credit_cents=0,
    ))
    db_session.commit()
    return form


@pytest.fixture(scope='function')
def reference_form(db_session, maker, warehouse):
    """Approved delivery note an invoice can be raised from."""
    form = Form(
        branch_id=warehouse.branch_id,
        documentable_type="DeliveryNote",
        documentable_id=1,
        number="DN2101001",
        date=OPENING_DATE,
        created_by=maker.id,
        request_approval_to=maker.id,
        approval_status=Form.APPROVAL_APPROVED,
        done=False,
    )
    db_session.add(form)
    db_session.commit()
    return form


# =============================================================================
# Request payloads
# =============================================================================

@pytest.fixture(scope='function')
def sc_payload(warehouse, item, approver):
    """Factory for stock correction payloads with one line of the given quantity."""
    def _payload(quantity=10, **overrides):
        payload = {
            "warehouse_id": warehouse.id,
            "type_correction": "in" if quantity >= 0 else "out",
            "request_approval_to": approver.id,
            "notes": "cycle count",
            "items": [
                {"item_id": item.id, "quantity": quantity, "unit": "pcs", "converter": 1},
            ],
        }
        payload.update(overrides)
        return payload

    return _payload


@pytest.fixture(scope='function')
def si_payload(warehouse, item, approver, customer, reference_form):
    """Factory for sales invoice payloads with one line of 10 pcs at 10,000 cents."""
    def _payload(type_of_tax="non", **overrides):
        payload = {
            "form_id": reference_form.id,
            "warehouse_id": warehouse.id,
            "customer_id": customer.id,
            "request_approval_to": approver.id,
            "due_date": "2021-02-15",
            "type_of_tax": type_of_tax,
            "notes": "january delivery",
            "items": [
                {"item_id": item.id, "quantity": 10, "unit": "pcs", "price_cents": 10000},
            ],
        }
        payload.update(overrides)
        return payload

    return _payload


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def login(client):
    """Factory: log a user in and return Authorization headers."""
    def _login(user):
        response = client.post('/api/auth/login', json={
            'username': user.username,
            'password': TEST_PASSWORD,
        })
        assert response.status_code == 200, response.get_json()
        return auth_headers(response.get_json()['token'])

    return _login
