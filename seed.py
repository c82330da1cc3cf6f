"""Seed script — populates the database with demo CRM data.

Customers go through the same upsert path as the contact sync; staff,
relations, tags and groups are inserted directly because other
collaborators own them in production.

Usage:
    flask shell
    >>> exec(open('seed.py').read())

Or run directly:
    python seed.py
"""

from datetime import datetime, timedelta, timezone

from app import create_app
from app.domain.models import (
    CustomerInfo,
    CustomerStaff,
    CustomerStaffTag,
    GroupChat,
    MassMsg,
    Staff,
)
from app.extensions import db
from app.schemas.customer_schema import CustomerUpsertSchema
from app.services.customer_service import CustomerService

CORP = "wwdemo0001"


def seed():
    """Insert demo staff, customers, relations, tags and groups."""
    app = create_app("development")

    with app.app_context():
        db.create_all()

        # Check if already seeded
        if Staff.query.filter_by(ext_corp_id=CORP).first():
            print("⚠ Seed data already exists — skipping.")
            return

        # -- Staff --
        db.session.add_all([
            Staff(ext_corp_id=CORP, ext_id="zhangsan", name="张三"),
            Staff(ext_corp_id=CORP, ext_id="lisi", name="李四"),
        ])
        db.session.commit()

        # -- Customers (upsert path, applies avatar/name defaults) --
        CustomerService().sync_customers(CORP, [
            CustomerUpsertSchema(ext_customer_id="wmdemo-alice", name="Alice", gender=2, type=1),
            CustomerUpsertSchema(
                ext_customer_id="wmdemo-bob", name="Bob", gender=1, type=2,
                corp_name="Bob Trading", position="Buyer",
                external_profile={"external_corp_name": "Bob Trading Co."},
            ),
            CustomerUpsertSchema(ext_customer_id="wmdemo-anon"),
        ])

        # -- Relations and tags --
        now = datetime.now(timezone.utc)
        alice_zhang = CustomerStaff(
            ext_corp_id=CORP, ext_customer_id="wmdemo-alice", ext_staff_id="zhangsan",
            remark="Alice (VIP)", add_way=1, createtime=now - timedelta(days=30),
        )
        alice_zhang.tags = [
            CustomerStaffTag(ext_corp_id=CORP, ext_tag_id="tag-vip",
                             ext_customer_id="wmdemo-alice", ext_staff_id="zhangsan"),
        ]
        bob_li = CustomerStaff(
            ext_corp_id=CORP, ext_customer_id="wmdemo-bob", ext_staff_id="lisi",
            add_way=2, createtime=now - timedelta(days=3),
        )
        bob_zhang = CustomerStaff(
            ext_corp_id=CORP, ext_customer_id="wmdemo-bob", ext_staff_id="zhangsan",
            add_way=1, createtime=now - timedelta(days=60), deleted_at=now - timedelta(days=1),
        )
        db.session.add_all([alice_zhang, bob_li, bob_zhang])

        # -- Info, groups, mass messages --
        db.session.add_all([
            CustomerInfo(ext_corp_id=CORP, ext_customer_id="wmdemo-alice", ext_staff_id="zhangsan",
                         age=31, birthday="1993-04-18", phone_number="13800000001"),
            GroupChat(ext_corp_id=CORP, ext_chat_id="wrdemo-group-1", name="VIP 客户群"),
            MassMsg(ext_corp_id=CORP, ext_staff_id="zhangsan", title="Spring promotion",
                    content={"text": "Spring sale starts Monday"}),
        ])

        db.session.commit()
        print("✓ Seed data inserted successfully.")


if __name__ == "__main__":
    seed()
