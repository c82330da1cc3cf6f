"""Customer service — use-case orchestration for customer sync, lookup and export."""

import logging
from datetime import date

from sqlalchemy.orm import Session

from app.domain.exceptions import RepositoryError, ResourceNotFoundError
from app.domain.models import Customer
from app.domain.pager import Pager
from app.repositories.customer_repository import CustomerRepository
from app.schemas.customer_schema import CustomerQuerySchema, CustomerUpsertSchema
from app.schemas.response import page_payload

logger = logging.getLogger(__name__)


class CustomerService:
    """Manages customer writes, listings and exports for a corp."""

    def __init__(self, session: Session | None = None):
        self._customer_repo = CustomerRepository(session)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def sync_customers(self, ext_corp_id: str, customers: list[CustomerUpsertSchema]) -> dict:
        """Upsert a batch of synced contacts and commit."""
        records = [self._to_model(ext_corp_id, item) for item in customers]
        try:
            count = self._customer_repo.batch_upsert(records)
            self._customer_repo.commit()
        except RepositoryError:
            logger.exception("Customer sync failed ext_corp_id=%s", ext_corp_id)
            raise
        logger.info("Synced customers ext_corp_id=%s count=%s", ext_corp_id, count)
        return {"ext_corp_id": ext_corp_id, "upserted": count}

    def upsert_customer(self, ext_corp_id: str, customer: CustomerUpsertSchema) -> dict:
        """Upsert one contact and return the stored record."""
        self._customer_repo.upsert(self._to_model(ext_corp_id, customer))
        self._customer_repo.commit()
        stored = self._customer_repo.get_by_ext_id(customer.ext_customer_id)
        logger.info("Upserted customer id=%s ext_id=%s", stored.id, stored.ext_id)
        return stored.to_dict(with_relations=False)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_customer(self, customer_id: int, ext_corp_id: str, with_relations: bool = True) -> dict:
        """Fetch a customer within a corp or raise not-found."""
        customer = self._customer_repo.get(customer_id, ext_corp_id, with_relations)
        if not customer:
            raise ResourceNotFoundError("Customer", customer_id)
        return customer.to_dict(with_relations=with_relations)

    def get_customer_by_ext_id(
        self,
        ext_customer_id: str,
        ext_staff_ids: list[str] | None = None,
        with_relations: bool = True,
    ) -> dict:
        """Fetch a customer by external id, optionally narrowing its relations."""
        customer = self._customer_repo.get_by_ext_id(ext_customer_id, ext_staff_ids, with_relations)
        return customer.to_dict(with_relations=with_relations)

    def get_mass_msg(self, mission_id: int) -> dict:
        return self._customer_repo.get_mass_msg(mission_id).to_dict()

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def list_customers(self, req: CustomerQuerySchema, ext_corp_id: str, pager: Pager) -> dict:
        """Return one page of customers matching the filters."""
        customers, total = self._customer_repo.query(req, ext_corp_id, pager)
        return page_payload([c.to_dict() for c in customers], total, pager)

    def export_customers(self, req: CustomerQuerySchema, ext_corp_id: str, pager: Pager) -> dict:
        """Customer-rooted export page with churn status labels."""
        items, total = self._customer_repo.export_query(req, ext_corp_id, pager)
        return page_payload([i.to_dict() for i in items], total, pager)

    def export_relation_rows(self, req: CustomerQuerySchema, ext_corp_id: str, pager: Pager) -> dict:
        """Relation-rooted export page, one row per staff relation."""
        items, total = self._customer_repo.query_export(req, ext_corp_id, pager)
        return page_payload([i.to_dict() for i in items], total, pager)

    def get_summary(self, ext_corp_id: str, corp_name: str = "", today: date | None = None) -> dict:
        return self._customer_repo.summary(ext_corp_id, corp_name, today).to_dict()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_model(ext_corp_id: str, item: CustomerUpsertSchema) -> Customer:
        return Customer(
            ext_corp_id=ext_corp_id,
            ext_id=item.ext_customer_id,
            name=item.name,
            position=item.position,
            corp_name=item.corp_name,
            avatar=item.avatar,
            type=item.type,
            gender=item.gender,
            unionid=item.unionid,
            external_profile=item.external_profile.model_dump(),
        )

