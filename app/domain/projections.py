"""Read-only projections built from joined customer queries.

Neither object is persisted; both are assembled by the repository and
serialised by the service layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

STATUS_ACTIVE = "未流失"
STATUS_CHURNED = "已流失"


# ---------------------------------------------------------------------------
# Export row
# ---------------------------------------------------------------------------
@dataclass
class CustomerExportItem:
    """One exported customer/staff relation with demographic info."""

    ext_customer_id: str = ""
    customer_name: str = ""
    customer_corp_name: str = ""
    staff_name: str = ""
    remark: str = ""
    description: str = ""
    status: str = STATUS_ACTIVE
    createtime: datetime | None = None
    add_way: int = 0
    age: int | None = None
    gender: int = 0
    birthday: str = ""
    phone_number: str = ""
    staff_relations: list[dict] = field(default_factory=list)

    @classmethod
    def from_row(cls, row) -> CustomerExportItem:
        """Build an item from a labelled result row."""
        mapping = row._mapping
        return cls(
            ext_customer_id=mapping["ext_customer_id"],
            customer_name=mapping["customer_name"] or "",
            customer_corp_name=mapping["customer_corp_name"] or "",
            staff_name=mapping["staff_name"] or "",
            remark=mapping["remark"] or "",
            description=mapping["description"] or "",
            status=mapping["status"],
            createtime=mapping["createtime"],
            add_way=mapping["add_way"] or 0,
            age=mapping["age"],
            gender=mapping["gender"] or 0,
            birthday=mapping["birthday"] or "",
            phone_number=mapping["phone_number"] or "",
        )

    def to_dict(self) -> dict:
        return {
            "ext_customer_id": self.ext_customer_id,
            "customer_name": self.customer_name,
            "customer_corp_name": self.customer_corp_name,
            "staff_name": self.staff_name,
            "remark": self.remark,
            "description": self.description,
            "status": self.status,
            "createtime": self.createtime.isoformat() if self.createtime else None,
            "add_way": self.add_way,
            "age": self.age,
            "gender": self.gender,
            "birthday": self.birthday,
            "phone_number": self.phone_number,
            "staff_relations": self.staff_relations,
        }


# ---------------------------------------------------------------------------
# Dashboard snapshot
# ---------------------------------------------------------------------------
@dataclass
class CustomerSummary:
    """Corp-wide staff/customer/group totals with today's movement."""

    corp_name: str = ""
    total_staffs_num: int = 0
    total_customers_num: int = 0
    today_customers_increase: int = 0
    today_customers_decrease: int = 0
    total_groups_num: int = 0
    today_groups_increase: int = 0
    today_groups_decrease: int = 0

    def to_dict(self) -> dict:
        return {
            "corp_name": self.corp_name,
            "total_staffs_num": self.total_staffs_num,
            "total_customers_num": self.total_customers_num,
            "today_customers_increase": self.today_customers_increase,
            "today_customers_decrease": self.today_customers_decrease,
            "total_groups_num": self.total_groups_num,
            "today_groups_increase": self.today_groups_increase,
            "today_groups_decrease": self.today_groups_decrease,
        }
