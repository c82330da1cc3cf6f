"""Unit tests for request schemas, the pager and predicate builders.

Pure logic — no database access.
"""

from datetime import datetime

import pytest

from app.domain.pager import Pager, get_page_offset
from app.repositories.customer_criteria import (
    Criteria,
    churn_criteria,
    customer_criteria,
    listing_criteria,
    tag_criteria,
)
from app.schemas.customer_schema import (
    CustomerQuerySchema,
    CustomerSyncSchema,
    CustomerUpsertSchema,
)


class TestPager:
    def test_page_offset(self):
        assert get_page_offset(1, 20) == 0
        assert get_page_offset(3, 20) == 40
        assert get_page_offset(0, 20) == 0
        assert get_page_offset(-2, 20) == 0

    def test_set_default_substitutes_default_size(self):
        pager = Pager(page=-1, page_size=0).set_default()
        assert (pager.page, pager.page_size) == (1, 10)
        assert pager.get_offset() == 0
        assert pager.get_limit() == 10

    def test_set_default_caps_page_size(self):
        pager = Pager(page=2, page_size=50_000).set_default()
        assert pager.page_size == 1000
        assert pager.get_offset() == 1000

    def test_set_default_reads_app_config(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "DEFAULT_PAGE_SIZE", 25)
        monkeypatch.setitem(app.config, "MAX_PAGE_SIZE", 30)
        assert Pager(page=1, page_size=0).set_default().page_size == 25
        assert Pager(page=1, page_size=99).set_default().page_size == 30

    def test_explicit_size_kept(self):
        pager = Pager(page=4, page_size=15).set_default()
        assert (pager.page, pager.page_size) == (4, 15)
        assert pager.to_dict() == {"page": 4, "page_size": 15}


class TestCustomerQuerySchema:
    def test_defaults_mean_no_filter(self):
        req = CustomerQuerySchema()
        assert len(listing_criteria(req)) == 0

    def test_id_lists_accept_comma_separated_values(self):
        req = CustomerQuerySchema(ext_staff_ids=["s1,s2", " s3 "], ext_tag_ids="t1,,t2")
        assert req.ext_staff_ids == ["s1", "s2", "s3"]
        assert req.ext_tag_ids == ["t1", "t2"]

    def test_blank_times_become_none(self):
        req = CustomerQuerySchema(start_time="", end_time="")
        assert req.start_time is None
        assert req.end_time is None

    def test_times_parse_from_strings(self):
        req = CustomerQuerySchema(start_time="2024-01-01T00:00:00", end_time="2024-01-31T23:59:59")
        assert req.start_time == datetime(2024, 1, 1)

    def test_inverted_time_range_rejected(self):
        with pytest.raises(ValueError, match="end_time must not be earlier"):
            CustomerQuerySchema(start_time="2024-02-01T00:00:00", end_time="2024-01-01T00:00:00")

    @pytest.mark.parametrize("field,value", [
        ("gender", 3),
        ("type", -1),
        ("out_flow_status", 5),
        ("channel_type", -2),
    ])
    def test_out_of_range_codes_rejected(self, field, value):
        with pytest.raises(ValueError):
            CustomerQuerySchema(**{field: value})


class TestUpsertSchemas:
    def test_customer_defaults(self):
        item = CustomerUpsertSchema(ext_customer_id="wm-1")
        assert item.type == 1
        assert item.gender == 0
        assert item.external_profile.model_dump() == {"external_corp_name": "", "external_attr": []}

    def test_sync_requires_customers(self):
        with pytest.raises(ValueError):
            CustomerSyncSchema(ext_corp_id="corp1", customers=[])

    def test_ext_id_required(self):
        with pytest.raises(ValueError):
            CustomerUpsertSchema(ext_customer_id="")


class TestCriteria:
    def test_where_returns_new_instance(self):
        base = Criteria()
        extended = base.where(customer_criteria(CustomerQuerySchema(gender=1)).clauses[0])
        assert len(base) == 0
        assert len(extended) == 1

    def test_where_ignores_none(self):
        assert len(Criteria().where(None)) == 0

    def test_listing_collects_every_filter(self):
        req = CustomerQuerySchema(
            name="Al", gender=2, type=1, ext_staff_ids=["s1"], ext_tag_ids=["t1"],
            start_time="2024-01-01T00:00:00", channel_type=3, out_flow_status=1,
        )
        assert len(listing_criteria(req)) == 8

    def test_churn_status_clauses(self):
        assert "IS NOT NULL" in str(churn_criteria(CustomerQuerySchema(out_flow_status=1)).clauses[0])
        assert "IS NULL" in str(churn_criteria(CustomerQuerySchema(out_flow_status=2)).clauses[0])
        assert len(churn_criteria(CustomerQuerySchema())) == 0

    def test_tag_criteria_exists_variant(self):
        clause = tag_criteria(CustomerQuerySchema(ext_tag_ids=["t1"]), joined=False).clauses[0]
        assert "EXISTS" in str(clause)
