"""Shared test fixtures."""

from datetime import datetime

import pytest

from app import create_app
from app.domain.models import (
    Customer,
    CustomerInfo,
    CustomerStaff,
    CustomerStaffTag,
    Staff,
)
from app.extensions import db as _db

CORP = "corp1"
OTHER_CORP = "corp2"


@pytest.fixture(scope="session")
def app():
    """Create an application instance configured for testing."""
    app = create_app("testing")
    with app.app_context():
        _db.create_all()
        yield app
        _db.drop_all()


@pytest.fixture(autouse=True)
def db_session(app):
    """Ensure a clean database state for each test.

    Re-creates all tables before each test to guarantee isolation.
    """
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def direct_fallback(app, monkeypatch):
    """Enable the plain customer-table fallback for one test."""
    monkeypatch.setitem(app.config, "CUSTOMER_QUERY_DIRECT_FALLBACK", True)


def add_customer(ext_id: str, ext_corp_id: str = CORP, **kwargs) -> Customer:
    customer = Customer(ext_id=ext_id, ext_corp_id=ext_corp_id, **kwargs)
    _db.session.add(customer)
    _db.session.flush()
    return customer


def add_relation(
    ext_customer_id: str,
    ext_staff_id: str,
    ext_corp_id: str = CORP,
    tags: tuple[str, ...] = (),
    **kwargs,
) -> CustomerStaff:
    relation = CustomerStaff(
        ext_corp_id=ext_corp_id,
        ext_customer_id=ext_customer_id,
        ext_staff_id=ext_staff_id,
        **kwargs,
    )
    relation.tags = [
        CustomerStaffTag(
            ext_corp_id=ext_corp_id,
            ext_tag_id=tag,
            ext_customer_id=ext_customer_id,
            ext_staff_id=ext_staff_id,
        )
        for tag in tags
    ]
    _db.session.add(relation)
    _db.session.flush()
    return relation


@pytest.fixture()
def crm_data(db_session):
    """Four reachable customers in ``corp1`` plus one in ``corp2``.

    alice: active relation with s1 (tag t1), churned relation with s2 (t1, t2)
    bob:   active relation with s1, acquired through channel 2
    carol: no relations
    dave:  belongs to corp2 but has a corp1 relation with s3
    erin:  corp2 only
    """
    alice = add_customer("alice", name="Alice", gender=2, type=1, corp_name="Acme")
    bob = add_customer("bob", name="Bob", gender=1, type=2)
    carol = add_customer("carol", name="Carol", gender=2, type=1)
    dave = add_customer("dave", ext_corp_id=OTHER_CORP, name="Dave", gender=0, type=1)
    erin = add_customer("erin", ext_corp_id=OTHER_CORP, name="Erin", gender=2, type=1)

    add_relation(
        "alice", "s1", tags=("t1",), add_way=1,
        createtime=datetime(2024, 1, 10), remark="vip",
    )
    add_relation(
        "alice", "s2", tags=("t1", "t2"), add_way=1,
        createtime=datetime(2024, 1, 12), deleted_at=datetime(2024, 3, 1, 9),
    )
    add_relation("bob", "s1", add_way=2, createtime=datetime(2024, 2, 10))
    add_relation("dave", "s3", add_way=1, createtime=datetime(2024, 1, 5))
    add_relation("erin", "s9", ext_corp_id=OTHER_CORP, createtime=datetime(2024, 1, 5))

    db_session.add_all([
        Staff(ext_corp_id=CORP, ext_id="s1", name="Staff One"),
        Staff(ext_corp_id=CORP, ext_id="s2", name="Staff Two"),
        Staff(ext_corp_id=CORP, ext_id="s3", name="Staff Three"),
        Staff(ext_corp_id=OTHER_CORP, ext_id="s9", name="Staff Nine"),
        CustomerInfo(
            ext_corp_id=CORP, ext_customer_id="alice", ext_staff_id="s1",
            age=30, birthday="1994-05-01", phone_number="13800000000",
        ),
    ])
    db_session.commit()
    return {
        "alice": alice,
        "bob": bob,
        "carol": carol,
        "dave": dave,
        "erin": erin,
    }


@pytest.fixture()
def make_customer(db_session):
    return add_customer


@pytest.fixture()
def make_relation(db_session):
    return add_relation
