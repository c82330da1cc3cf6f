"""Pydantic schemas for customer sync payloads, list filters and paging."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

# CustomerQuerySchema.out_flow_status
OUT_FLOW_ANY = 0
OUT_FLOW_CHURNED = 1
OUT_FLOW_ACTIVE = 2


class ExternalProfileSchema(BaseModel):
    """Profile blob the platform attaches to WeCom contacts."""

    external_corp_name: str = ""
    external_attr: list[dict[str, Any]] = Field(default_factory=list)


class CustomerUpsertSchema(BaseModel):
    """One customer as delivered by the contact sync."""

    ext_customer_id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(default="", max_length=255)
    position: str = Field(default="", max_length=255)
    corp_name: str = Field(default="", max_length=255)
    avatar: str = Field(default="", max_length=255)
    type: int = Field(default=1, ge=1, le=2)
    gender: int = Field(default=0, ge=0, le=2)
    unionid: str = Field(default="", max_length=128)
    external_profile: ExternalProfileSchema = Field(default_factory=ExternalProfileSchema)


class CustomerSyncSchema(BaseModel):
    """Batch of customers to upsert for one corp."""

    ext_corp_id: str = Field(..., min_length=1, max_length=64)
    customers: list[CustomerUpsertSchema] = Field(..., min_length=1)


class CustomerSingleUpsertSchema(CustomerUpsertSchema):
    """A single customer upsert scoped to a corp."""

    ext_corp_id: str = Field(..., min_length=1, max_length=64)


class CustomerQuerySchema(BaseModel):
    """Filters for customer listing and export.

    Zero and empty values mean "no filter".
    """

    name: str = Field(default="", max_length=255)
    gender: int = Field(default=0, ge=0, le=2)
    type: int = Field(default=0, ge=0, le=2)
    ext_staff_ids: list[str] = Field(default_factory=list)
    ext_tag_ids: list[str] = Field(default_factory=list)
    start_time: datetime | None = None
    end_time: datetime | None = None
    channel_type: int = Field(default=0, ge=0)
    out_flow_status: int = Field(default=OUT_FLOW_ANY, ge=0, le=2)

    @field_validator("ext_staff_ids", "ext_tag_ids", mode="before")
    @classmethod
    def split_id_lists(cls, value):
        """Accept repeated query args as well as comma-separated strings."""
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        ids: list[str] = []
        for item in value:
            ids.extend(part.strip() for part in str(item).split(",") if part.strip())
        return ids

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def blank_time_is_none(cls, value):
        if value == "":
            return None
        return value

    @model_validator(mode="after")
    def validate_time_range(self) -> "CustomerQuerySchema":
        if self.start_time and self.end_time and self.end_time < self.start_time:
            msg = "end_time must not be earlier than start_time."
            raise ValueError(msg)
        return self


class PagerSchema(BaseModel):
    """Page number and page size from the query string."""

    page: int = Field(default=1)
    page_size: int = Field(default=0)
