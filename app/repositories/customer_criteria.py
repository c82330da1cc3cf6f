"""Predicate builders for customer list and export queries.

``Criteria`` is immutable: every ``where`` returns a new instance, so one
set of filters can be shared by the count, id-page and export statements.
"""

from __future__ import annotations

from sqlalchemy import exists
from sqlalchemy.sql.elements import ColumnElement

from app.domain.models import Customer, CustomerStaff, CustomerStaffTag
from app.schemas.customer_schema import (
    OUT_FLOW_ACTIVE,
    OUT_FLOW_CHURNED,
    CustomerQuerySchema,
)


class Criteria:
    """An ordered, immutable collection of WHERE clauses."""

    def __init__(self, clauses: tuple[ColumnElement, ...] = ()):
        self._clauses = tuple(clauses)

    def where(self, clause: ColumnElement | None) -> Criteria:
        if clause is None:
            return self
        return Criteria(self._clauses + (clause,))

    def extend(self, other: Criteria) -> Criteria:
        return Criteria(self._clauses + other._clauses)

    def apply(self, query):
        """Attach the clauses to a legacy ``Query`` or a ``Select``."""
        if not self._clauses:
            return query
        return query.filter(*self._clauses)

    @property
    def clauses(self) -> tuple[ColumnElement, ...]:
        return self._clauses

    def __len__(self) -> int:
        return len(self._clauses)


# ---------------------------------------------------------------------------
# Customer columns
# ---------------------------------------------------------------------------
def customer_criteria(req: CustomerQuerySchema) -> Criteria:
    """Name prefix, gender and type filters on the customer row itself."""
    criteria = Criteria()
    if req.name:
        criteria = criteria.where(Customer.name.like(_prefix_pattern(req.name), escape="\\"))
    if req.gender:
        criteria = criteria.where(Customer.gender == req.gender)
    if req.type:
        criteria = criteria.where(Customer.type == req.type)
    return criteria


# ---------------------------------------------------------------------------
# Relation columns
# ---------------------------------------------------------------------------
def staff_criteria(req: CustomerQuerySchema) -> Criteria:
    """Staff set membership on the joined relation."""
    if req.ext_staff_ids:
        return Criteria().where(CustomerStaff.ext_staff_id.in_(req.ext_staff_ids))
    return Criteria()


def createtime_criteria(req: CustomerQuerySchema) -> Criteria:
    """Range over the time the staff member added the customer."""
    column = CustomerStaff.createtime
    if req.start_time and req.end_time:
        return Criteria().where(column.between(req.start_time, req.end_time))
    if req.start_time:
        return Criteria().where(column >= req.start_time)
    if req.end_time:
        return Criteria().where(column <= req.end_time)
    return Criteria()


def tag_criteria(req: CustomerQuerySchema, joined: bool = True) -> Criteria:
    """Tag set membership.

    With ``joined`` the tag table is part of the FROM clause; otherwise the
    relation row is matched through a correlated EXISTS.
    """
    if not req.ext_tag_ids:
        return Criteria()
    if joined:
        return Criteria().where(CustomerStaffTag.ext_tag_id.in_(req.ext_tag_ids))
    return Criteria().where(
        exists().where(
            CustomerStaffTag.customer_staff_id == CustomerStaff.id,
            CustomerStaffTag.ext_tag_id.in_(req.ext_tag_ids),
        ),
    )


def channel_criteria(req: CustomerQuerySchema) -> Criteria:
    if req.channel_type > 0:
        return Criteria().where(CustomerStaff.add_way == req.channel_type)
    return Criteria()


def churn_criteria(req: CustomerQuerySchema) -> Criteria:
    """Churned relations carry a soft-delete stamp; active ones do not."""
    if req.out_flow_status == OUT_FLOW_CHURNED:
        return Criteria().where(CustomerStaff.deleted_at.isnot(None))
    if req.out_flow_status == OUT_FLOW_ACTIVE:
        return Criteria().where(CustomerStaff.deleted_at.is_(None))
    return Criteria()


def listing_criteria(req: CustomerQuerySchema) -> Criteria:
    """Every filter the customer listing honours."""
    return (
        customer_criteria(req)
        .extend(staff_criteria(req))
        .extend(createtime_criteria(req))
        .extend(tag_criteria(req))
        .extend(channel_criteria(req))
        .extend(churn_criteria(req))
    )


def _prefix_pattern(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"{escaped}%"
