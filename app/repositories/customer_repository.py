"""Customer repository.

Upserts keyed on the platform's external id, lookups with optional
relation preloading, and the joined list/export queries.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable

from flask import current_app, has_app_context
from sqlalchemy import case, distinct, func, or_
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.domain.exceptions import RepositoryError, ResourceNotFoundError, UnsupportedFilterError
from app.domain.models import (
    CUSTOMER_UPSERT_FIELDS,
    Customer,
    CustomerInfo,
    CustomerStaff,
    CustomerStaffTag,
    GroupChat,
    MassMsg,
    Staff,
)
from app.domain.pager import Pager
from app.domain.projections import (
    STATUS_ACTIVE,
    STATUS_CHURNED,
    CustomerExportItem,
    CustomerSummary,
)
from app.repositories.base import BaseRepository
from app.repositories.customer_criteria import (
    channel_criteria,
    createtime_criteria,
    customer_criteria,
    listing_criteria,
    staff_criteria,
    tag_criteria,
)
from app.schemas.customer_schema import CustomerQuerySchema

logger = logging.getLogger(__name__)

DEFAULT_UPSERT_BATCH_SIZE = 100


def _config(key: str, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


class CustomerRepository(BaseRepository[Customer]):
    """Data access for Customer records."""

    def __init__(self, session: Session | None = None):
        super().__init__(Customer, session)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def batch_upsert(self, customers: Iterable[Customer]) -> int:
        """Insert or update many customers keyed on ``ext_id``.

        Rows are written in batches; when a batch repeats an ``ext_id`` the
        last occurrence wins. Relations are never written.

        Returns:
            Number of distinct customers submitted.
        """
        rows = self._upsert_rows(customers)
        if not rows:
            return 0

        batch_size = _config("CUSTOMER_UPSERT_BATCH_SIZE", DEFAULT_UPSERT_BATCH_SIZE)
        with self.wrap_errors("Batch upsert customers failed"):
            for start in range(0, len(rows), batch_size):
                self._execute_upsert(rows[start:start + batch_size])
        logger.info("Upserted customers count=%s batch_size=%s", len(rows), batch_size)
        return len(rows)

    def upsert(self, customer: Customer) -> None:
        """Insert or update a single customer keyed on ``ext_id``."""
        with self.wrap_errors(f"Upsert customer ext_id={customer.ext_id} failed"):
            self._execute_upsert(self._upsert_rows([customer]))

    @staticmethod
    def _upsert_rows(customers: Iterable[Customer]) -> list[dict]:
        now = datetime.now(timezone.utc)
        by_ext_id: dict[str, dict] = {}
        for customer in customers:
            customer.apply_create_defaults()
            row = customer.upsert_values()
            row["created_at"] = now
            row["updated_at"] = now
            by_ext_id[customer.ext_id] = row
        return list(by_ext_id.values())

    def _execute_upsert(self, rows: list[dict]) -> None:
        table = Customer.__table__
        dialect = self.session.get_bind(Customer).dialect.name

        if dialect in ("postgresql", "sqlite"):
            insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
            stmt = insert(table).values(rows)
            assignments = {name: stmt.excluded[name] for name in CUSTOMER_UPSERT_FIELDS}
            assignments["updated_at"] = stmt.excluded.updated_at
            stmt = stmt.on_conflict_do_update(index_elements=[table.c.ext_id], set_=assignments)
        elif dialect in ("mysql", "mariadb"):
            stmt = mysql.insert(table).values(rows)
            assignments = {name: stmt.inserted[name] for name in CUSTOMER_UPSERT_FIELDS}
            assignments["updated_at"] = stmt.inserted.updated_at
            stmt = stmt.on_duplicate_key_update(assignments)
        else:
            raise RepositoryError(f"Customer upsert is not supported on {dialect}")

        self.session.execute(stmt)
        # Core statements bypass the identity map.
        self.session.expire_all()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, customer_id: int, ext_corp_id: str, with_relations: bool = False) -> Customer | None:
        """Fetch a customer by internal id within a corp.

        Returns ``None`` when nothing matches.
        """
        query = self.session.query(Customer).filter(
            Customer.id == customer_id,
            Customer.ext_corp_id == ext_corp_id,
        )
        if with_relations:
            query = query.options(self._relations_option())
        with self.wrap_errors("Get customer by id failed"):
            return query.first()

    def get_by_ext_id(
        self,
        ext_customer_id: str,
        ext_staff_ids: list[str] | None = None,
        with_relations: bool = False,
    ) -> Customer:
        """Fetch a customer by external id or raise ``ResourceNotFoundError``.

        When ``ext_staff_ids`` is given (even empty) only relations with
        those staff members are preloaded.
        """
        query = self.session.query(Customer).filter(Customer.ext_id == ext_customer_id)
        if with_relations:
            staffs = Customer.staffs
            if ext_staff_ids is not None:
                staffs = Customer.staffs.and_(CustomerStaff.ext_staff_id.in_(list(ext_staff_ids)))
            query = query.populate_existing().options(
                selectinload(staffs).selectinload(CustomerStaff.tags),
            )
        with self.wrap_errors("Get customer by ext id failed"):
            customer = query.first()
        if customer is None:
            raise ResourceNotFoundError("Customer", ext_customer_id)
        return customer

    def get_mass_msg(self, mission_id: int) -> MassMsg:
        """Fetch a mass-message mission or raise ``ResourceNotFoundError``."""
        with self.wrap_errors("Get mass msg failed"):
            msg = self.session.get(MassMsg, mission_id)
        if msg is None:
            raise ResourceNotFoundError("MassMsg", mission_id)
        return msg

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def query(
        self, req: CustomerQuerySchema, ext_corp_id: str, pager: Pager,
    ) -> tuple[list[Customer], int]:
        """Filter customers across their staff relations and tags.

        The page is resolved in two steps, distinct customer ids first and
        full records second, so joined relation and tag rows never inflate
        the page or the total.
        """
        joined = listing_criteria(req).apply(
            self.session.query(Customer)
            .outerjoin(CustomerStaff, Customer.ext_id == CustomerStaff.ext_customer_id)
            .outerjoin(CustomerStaffTag, CustomerStaffTag.customer_staff_id == CustomerStaff.id)
            .filter(or_(Customer.ext_corp_id == ext_corp_id, CustomerStaff.ext_corp_id == ext_corp_id)),
        )

        try:
            total = joined.with_entities(func.count(distinct(Customer.id))).scalar() or 0
        except SQLAlchemyError as err:
            self.session.rollback()
            logger.error("Customer count query failed ext_corp_id=%s error=%s", ext_corp_id, err)
            raise RepositoryError("Customer count query failed") from err
        logger.info("Customer query count total=%s ext_corp_id=%s", total, ext_corp_id)

        pager.set_default()
        customers: list[Customer] = []
        try:
            id_rows = (
                joined.with_entities(Customer.id, Customer.ext_id)
                .distinct()
                .order_by(Customer.id)
                .offset(pager.get_offset())
                .limit(pager.get_limit())
                .all()
            )
            ext_ids = [row.ext_id for row in id_rows]
            if ext_ids:
                customers = (
                    self.session.query(Customer)
                    .filter(Customer.ext_id.in_(ext_ids))
                    .options(self._relations_option())
                    .order_by(Customer.id)
                    .all()
                )
        except SQLAlchemyError as err:
            self.session.rollback()
            logger.error("Customer query failed ext_corp_id=%s error=%s", ext_corp_id, err)
            raise RepositoryError("Customer query failed") from err

        logger.info(
            "Customer query completed found=%s total=%s ext_corp_id=%s",
            len(customers), total, ext_corp_id,
        )

        if total == 0 and _config("CUSTOMER_QUERY_DIRECT_FALLBACK", False):
            fallback = self._direct_query(req, ext_corp_id, pager)
            if fallback is not None:
                customers, total = fallback
        return customers, total

    def _direct_query(
        self, req: CustomerQuerySchema, ext_corp_id: str, pager: Pager,
    ) -> tuple[list[Customer], int] | None:
        """Plain customer-table filter used when the joined listing is empty.

        Only corp, name, gender and type are applied. Failures are logged and
        the joined result is kept.
        """
        logger.info(
            "No customers found with relationships, trying direct customer query ext_corp_id=%s",
            ext_corp_id,
        )
        direct = customer_criteria(req).apply(
            self.session.query(Customer).filter(Customer.ext_corp_id == ext_corp_id),
        )
        try:
            direct_total = direct.count()
            logger.info("Direct customer query found total=%s ext_corp_id=%s", direct_total, ext_corp_id)
            if direct_total == 0:
                return None
            customers = (
                direct.options(self._relations_option())
                .order_by(Customer.id)
                .offset(pager.get_offset())
                .limit(pager.get_limit())
                .all()
            )
        except SQLAlchemyError as err:
            self.session.rollback()
            logger.error("Direct customer query failed ext_corp_id=%s error=%s", ext_corp_id, err)
            return None
        logger.info("Using direct customer query results count=%s", len(customers))
        return customers, direct_total

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def query_export(
        self, req: CustomerQuerySchema, ext_corp_id: str, pager: Pager,
    ) -> tuple[list[CustomerExportItem], int]:
        """Export one row per staff relation.

        Rooted at ``customer_staff``; customer info is matched per relation.
        Staff filtering is not available on this variant.
        """
        if req.ext_staff_ids:
            raise UnsupportedFilterError("query_export", "ext_staff_ids")

        criteria = (
            customer_criteria(req)
            .extend(createtime_criteria(req))
            .extend(tag_criteria(req, joined=False))
            .extend(channel_criteria(req))
        )
        base = criteria.apply(
            self.session.query(*self._export_columns())
            .select_from(CustomerStaff)
            .join(Customer, Customer.ext_id == CustomerStaff.ext_customer_id)
            .join(Staff, Staff.ext_id == CustomerStaff.ext_staff_id)
            .outerjoin(
                CustomerInfo,
                (CustomerInfo.ext_customer_id == CustomerStaff.ext_customer_id)
                & (CustomerInfo.ext_staff_id == CustomerStaff.ext_staff_id),
            )
            .filter(CustomerStaff.ext_corp_id == ext_corp_id),
        )

        pager.set_default()
        with self.wrap_errors("Customer export query failed"):
            total = base.with_entities(func.count(distinct(CustomerStaff.id))).scalar() or 0
            rows = (
                base.order_by(CustomerStaff.id)
                .offset(pager.get_offset())
                .limit(pager.get_limit())
                .all()
            )
            items = [CustomerExportItem.from_row(row) for row in rows]
            self._attach_relations(items, with_tags=False)
        return items, total

    def export_query(
        self, req: CustomerQuerySchema, ext_corp_id: str, pager: Pager,
    ) -> tuple[list[CustomerExportItem], int]:
        """Export customers with their relation, staff and info columns.

        Rooted at ``customer``; the page holds one row per matching relation
        and ``total`` counts those same rows.
        """
        criteria = (
            customer_criteria(req)
            .extend(staff_criteria(req))
            .extend(createtime_criteria(req))
            .extend(tag_criteria(req))
            .extend(channel_criteria(req))
        )
        base = criteria.apply(
            self.session.query(*self._export_columns())
            .select_from(Customer)
            .outerjoin(CustomerStaff, Customer.ext_id == CustomerStaff.ext_customer_id)
            .outerjoin(CustomerStaffTag, CustomerStaffTag.customer_staff_id == CustomerStaff.id)
            .join(Staff, Staff.ext_id == CustomerStaff.ext_staff_id)
            .outerjoin(CustomerInfo, CustomerInfo.ext_customer_id == Customer.ext_id)
            .filter(CustomerStaff.ext_corp_id == ext_corp_id),
        )

        pager.set_default()
        with self.wrap_errors("Customer export failed"):
            rows_query = base.distinct()
            total = rows_query.count()
            rows = (
                rows_query
                .order_by(Customer.id, CustomerStaff.id)
                .offset(pager.get_offset())
                .limit(pager.get_limit())
                .all()
            )
            items = [CustomerExportItem.from_row(row) for row in rows]
            self._attach_relations(items, with_tags=True)
        return items, total

    @staticmethod
    def _export_columns() -> tuple:
        status = case(
            (CustomerStaff.deleted_at.is_(None), STATUS_ACTIVE),
            else_=STATUS_CHURNED,
        )
        return (
            Customer.id.label("customer_id"),
            CustomerStaff.id.label("customer_staff_id"),
            Customer.ext_id.label("ext_customer_id"),
            Customer.name.label("customer_name"),
            Customer.corp_name.label("customer_corp_name"),
            Staff.name.label("staff_name"),
            CustomerStaff.remark.label("remark"),
            CustomerStaff.description.label("description"),
            status.label("status"),
            CustomerStaff.createtime.label("createtime"),
            CustomerStaff.add_way.label("add_way"),
            CustomerInfo.age.label("age"),
            Customer.gender.label("gender"),
            CustomerInfo.birthday.label("birthday"),
            CustomerInfo.phone_number.label("phone_number"),
        )

    def _attach_relations(self, items: list[CustomerExportItem], with_tags: bool) -> None:
        ext_ids = {item.ext_customer_id for item in items}
        if not ext_ids:
            return
        query = (
            self.session.query(CustomerStaff)
            .filter(CustomerStaff.ext_customer_id.in_(ext_ids))
            .order_by(CustomerStaff.id)
        )
        if with_tags:
            query = query.options(selectinload(CustomerStaff.tags))

        grouped: dict[str, list[dict]] = defaultdict(list)
        for relation in query.all():
            grouped[relation.ext_customer_id].append(relation.to_dict(with_tags=with_tags))
        for item in items:
            item.staff_relations = grouped.get(item.ext_customer_id, [])

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def summary(self, ext_corp_id: str, corp_name: str = "", today: date | None = None) -> CustomerSummary:
        """Corp totals plus the relations and groups gained or lost today."""
        today = today or datetime.now(timezone.utc).date()
        day_start = datetime.combine(today, time.min)
        day_end = day_start + timedelta(days=1)

        def count(column, *filters) -> int:
            return self.session.query(column).filter(*filters).scalar() or 0

        with self.wrap_errors("Customer summary failed"):
            return CustomerSummary(
                corp_name=corp_name,
                total_staffs_num=count(
                    func.count(Staff.id),
                    Staff.ext_corp_id == ext_corp_id,
                    Staff.deleted_at.is_(None),
                ),
                total_customers_num=count(
                    func.count(distinct(CustomerStaff.ext_customer_id)),
                    CustomerStaff.ext_corp_id == ext_corp_id,
                    CustomerStaff.deleted_at.is_(None),
                ),
                today_customers_increase=count(
                    func.count(CustomerStaff.id),
                    CustomerStaff.ext_corp_id == ext_corp_id,
                    CustomerStaff.createtime >= day_start,
                    CustomerStaff.createtime < day_end,
                ),
                today_customers_decrease=count(
                    func.count(CustomerStaff.id),
                    CustomerStaff.ext_corp_id == ext_corp_id,
                    CustomerStaff.deleted_at >= day_start,
                    CustomerStaff.deleted_at < day_end,
                ),
                total_groups_num=count(
                    func.count(GroupChat.id),
                    GroupChat.ext_corp_id == ext_corp_id,
                    GroupChat.dismissed_at.is_(None),
                ),
                today_groups_increase=count(
                    func.count(GroupChat.id),
                    GroupChat.ext_corp_id == ext_corp_id,
                    GroupChat.created_at >= day_start,
                    GroupChat.created_at < day_end,
                ),
                today_groups_decrease=count(
                    func.count(GroupChat.id),
                    GroupChat.ext_corp_id == ext_corp_id,
                    GroupChat.dismissed_at >= day_start,
                    GroupChat.dismissed_at < day_end,
                ),
            )

    @staticmethod
    def _relations_option():
        return selectinload(Customer.staffs).selectinload(CustomerStaff.tags)
