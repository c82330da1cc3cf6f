"""SQLAlchemy ORM models.

Customer rows are owned by this service. Staff relations, tags, staff,
groups and customer info are written by other collaborators and are only
read here.
"""

from datetime import datetime, timezone

from flask import current_app, has_app_context
from sqlalchemy import event

from app.extensions import db

DEFAULT_CUSTOMER_AVATAR = "https://openscrm.oss-cn-hangzhou.aliyuncs.com/public/avatar.svg"
DEFAULT_CUSTOMER_NAME = "未知"

# Customer.type
CUSTOMER_TYPE_WECHAT = 1
CUSTOMER_TYPE_WECOM = 2

# Customer.gender
GENDER_UNKNOWN = 0
GENDER_MALE = 1
GENDER_FEMALE = 2

# Columns an upsert overwrites when the ext_id already exists.
CUSTOMER_UPSERT_FIELDS = (
    "name",
    "position",
    "corp_name",
    "avatar",
    "type",
    "gender",
    "unionid",
    "external_profile",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def create_defaults() -> tuple[str, str]:
    """Return the ``(avatar, name)`` placeholders for new customers."""
    if has_app_context():
        return (
            current_app.config.get("CUSTOMER_DEFAULT_AVATAR", DEFAULT_CUSTOMER_AVATAR),
            current_app.config.get("CUSTOMER_DEFAULT_NAME", DEFAULT_CUSTOMER_NAME),
        )
    return DEFAULT_CUSTOMER_AVATAR, DEFAULT_CUSTOMER_NAME


# ---------------------------------------------------------------------------
# Customer
# ---------------------------------------------------------------------------
class Customer(db.Model):
    """An external contact synced from the messaging platform."""

    __tablename__ = "customer"

    id = db.Column(db.Integer, primary_key=True)
    ext_corp_id = db.Column(db.String(64), nullable=False, default="", index=True)
    ext_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False, default="")
    position = db.Column(db.String(255), nullable=False, default="")
    corp_name = db.Column(db.String(255), nullable=False, default="")
    avatar = db.Column(db.String(255), nullable=False, default="")
    type = db.Column(db.SmallInteger, nullable=False, default=CUSTOMER_TYPE_WECHAT, index=True)
    gender = db.Column(db.SmallInteger, nullable=False, default=GENDER_UNKNOWN)
    unionid = db.Column(db.String(128), nullable=False, default="")
    external_profile = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    # Read-only: relations are owned by the staff sync, never written through here.
    staffs = db.relationship(
        "CustomerStaff",
        primaryjoin="Customer.ext_id == foreign(CustomerStaff.ext_customer_id)",
        order_by="CustomerStaff.id",
        viewonly=True,
    )

    def apply_create_defaults(self) -> None:
        """Fill in the placeholder avatar and name when they are empty."""
        avatar, name = create_defaults()
        if not self.avatar:
            self.avatar = avatar
        if not self.name:
            self.name = name

    def upsert_values(self) -> dict:
        """Column values for an INSERT .. ON CONFLICT row."""
        return {
            "ext_corp_id": self.ext_corp_id or "",
            "ext_id": self.ext_id,
            "name": self.name or "",
            "position": self.position or "",
            "corp_name": self.corp_name or "",
            "avatar": self.avatar or "",
            "type": self.type if self.type is not None else CUSTOMER_TYPE_WECHAT,
            "gender": self.gender if self.gender is not None else GENDER_UNKNOWN,
            "unionid": self.unionid or "",
            "external_profile": self.external_profile or {},
        }

    def to_dict(self, with_relations: bool = True) -> dict:
        data = {
            "id": self.id,
            "ext_corp_id": self.ext_corp_id,
            "ext_customer_id": self.ext_id,
            "name": self.name,
            "position": self.position,
            "corp_name": self.corp_name,
            "avatar": self.avatar,
            "type": self.type,
            "gender": self.gender,
            "unionid": self.unionid,
            "external_profile": self.external_profile or {},
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }
        if with_relations:
            data["staff_relations"] = [s.to_dict() for s in self.staffs]
        return data


@event.listens_for(Customer, "before_insert")
def _customer_before_insert(_mapper, _connection, target: Customer) -> None:
    target.apply_create_defaults()


# ---------------------------------------------------------------------------
# Customer ↔ Staff relation
# ---------------------------------------------------------------------------
class CustomerStaff(db.Model):
    """A staff member's relation to a customer; soft deletion marks churn."""

    __tablename__ = "customer_staff"

    id = db.Column(db.Integer, primary_key=True)
    ext_corp_id = db.Column(db.String(64), nullable=False, default="", index=True)
    ext_customer_id = db.Column(db.String(64), nullable=False, index=True)
    ext_staff_id = db.Column(db.String(64), nullable=False, index=True)
    remark = db.Column(db.String(255), nullable=False, default="")
    description = db.Column(db.String(255), nullable=False, default="")
    add_way = db.Column(db.Integer, nullable=False, default=0, index=True)
    createtime = db.Column(db.DateTime, default=_utcnow, nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)
    deleted_at = db.Column(db.DateTime, nullable=True, index=True)

    tags = db.relationship(
        "CustomerStaffTag",
        back_populates="customer_staff",
        order_by="CustomerStaffTag.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.UniqueConstraint("ext_customer_id", "ext_staff_id", name="idx_customer_staff"),
    )

    def to_dict(self, with_tags: bool = True) -> dict:
        data = {
            "id": self.id,
            "ext_corp_id": self.ext_corp_id,
            "ext_customer_id": self.ext_customer_id,
            "ext_staff_id": self.ext_staff_id,
            "remark": self.remark,
            "description": self.description,
            "add_way": self.add_way,
            "createtime": _isoformat(self.createtime),
            "deleted_at": _isoformat(self.deleted_at),
        }
        if with_tags:
            data["customer_staff_tags"] = [t.to_dict() for t in self.tags]
        return data


class CustomerStaffTag(db.Model):
    """A tag a staff member attached to one of their customers."""

    __tablename__ = "customer_staff_tag"

    id = db.Column(db.Integer, primary_key=True)
    ext_corp_id = db.Column(db.String(64), nullable=False, default="")
    customer_staff_id = db.Column(
        db.Integer, db.ForeignKey("customer_staff.id"), nullable=False, index=True,
    )
    ext_tag_id = db.Column(db.String(64), nullable=False, index=True)
    ext_customer_id = db.Column(db.String(64), nullable=False, default="")
    ext_staff_id = db.Column(db.String(64), nullable=False, default="")
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)

    customer_staff = db.relationship("CustomerStaff", back_populates="tags")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_staff_id": self.customer_staff_id,
            "ext_tag_id": self.ext_tag_id,
        }


# ---------------------------------------------------------------------------
# Supporting read-only tables
# ---------------------------------------------------------------------------
class CustomerInfo(db.Model):
    """Demographic details a staff member recorded for a customer."""

    __tablename__ = "customer_info"

    id = db.Column(db.Integer, primary_key=True)
    ext_corp_id = db.Column(db.String(64), nullable=False, default="")
    ext_customer_id = db.Column(db.String(64), nullable=False, index=True)
    ext_staff_id = db.Column(db.String(64), nullable=False, default="")
    age = db.Column(db.Integer, nullable=True)
    birthday = db.Column(db.String(32), nullable=False, default="")
    phone_number = db.Column(db.String(32), nullable=False, default="")


class Staff(db.Model):
    """A corp employee who manages customers."""

    __tablename__ = "staff"

    id = db.Column(db.Integer, primary_key=True)
    ext_corp_id = db.Column(db.String(64), nullable=False, default="", index=True)
    ext_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False, default="")
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    deleted_at = db.Column(db.DateTime, nullable=True)


class GroupChat(db.Model):
    """A customer group chat owned by a staff member."""

    __tablename__ = "group_chat"

    id = db.Column(db.Integer, primary_key=True)
    ext_corp_id = db.Column(db.String(64), nullable=False, default="", index=True)
    ext_chat_id = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False, default="")
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    dismissed_at = db.Column(db.DateTime, nullable=True)


class MassMsg(db.Model):
    """A mass-message mission sent by a staff member to many customers."""

    __tablename__ = "mass_msg"

    id = db.Column(db.Integer, primary_key=True)
    ext_corp_id = db.Column(db.String(64), nullable=False, default="", index=True)
    ext_staff_id = db.Column(db.String(64), nullable=False, default="")
    title = db.Column(db.String(255), nullable=False, default="")
    content = db.Column(db.JSON, default=dict)
    status = db.Column(db.SmallInteger, nullable=False, default=0)
    send_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ext_corp_id": self.ext_corp_id,
            "ext_staff_id": self.ext_staff_id,
            "title": self.title,
            "content": self.content or {},
            "status": self.status,
            "send_at": _isoformat(self.send_at),
            "created_at": _isoformat(self.created_at),
        }
