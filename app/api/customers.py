"""Customer API namespace — sync, lookup, listing and export endpoints.

All routes delegate to ``CustomerService``. Controllers are kept thin
(parse → validate → call service → respond).
"""

from flask import request
from flask_restx import Namespace, Resource, fields
from pydantic import ValidationError as PydanticValidationError

from app.domain.exceptions import AppError, ValidationError
from app.domain.pager import Pager
from app.schemas.customer_schema import (
    CustomerQuerySchema,
    CustomerSingleUpsertSchema,
    CustomerSyncSchema,
    PagerSchema,
)
from app.schemas.response import error_response, success_response
from app.services.customer_service import CustomerService

ns = Namespace("customers", description="Customer sync, listing and export APIs")
mass_msg_ns = Namespace("mass-msgs", description="Mass message lookups")

# ---------------------------------------------------------------------------
# Swagger models
# ---------------------------------------------------------------------------
external_profile_model = ns.model("ExternalProfile", {
    "external_corp_name": fields.String(),
    "external_attr": fields.List(fields.Raw),
})

customer_model = ns.model("CustomerInput", {
    "ext_customer_id": fields.String(required=True, description="Platform customer id"),
    "name": fields.String(),
    "position": fields.String(),
    "corp_name": fields.String(),
    "avatar": fields.String(),
    "type": fields.Integer(enum=[1, 2], description="1 WeChat user, 2 WeCom user"),
    "gender": fields.Integer(enum=[0, 1, 2], description="0 unknown, 1 male, 2 female"),
    "unionid": fields.String(),
    "external_profile": fields.Nested(external_profile_model),
})

single_upsert_model = ns.inherit("CustomerUpsertInput", customer_model, {
    "ext_corp_id": fields.String(required=True),
})

sync_model = ns.model("CustomerSyncInput", {
    "ext_corp_id": fields.String(required=True),
    "customers": fields.List(fields.Nested(customer_model), required=True),
})

list_parser = ns.parser()
list_parser.add_argument("ext_corp_id", type=str, required=True, location="args")
list_parser.add_argument("name", type=str, location="args", help="Name prefix")
list_parser.add_argument("gender", type=int, location="args")
list_parser.add_argument("type", type=int, location="args")
list_parser.add_argument("ext_staff_ids", type=str, action="append", location="args")
list_parser.add_argument("ext_tag_ids", type=str, action="append", location="args")
list_parser.add_argument("start_time", type=str, location="args")
list_parser.add_argument("end_time", type=str, location="args")
list_parser.add_argument("channel_type", type=int, location="args", help="Add-way code")
list_parser.add_argument("out_flow_status", type=int, location="args", help="1 churned, 2 active")
list_parser.add_argument("page", type=int, location="args")
list_parser.add_argument("page_size", type=int, location="args")

# ---------------------------------------------------------------------------
# Service instances
# ---------------------------------------------------------------------------
_customer_svc = CustomerService()

_FILTER_KEYS = (
    "name", "gender", "type", "start_time", "end_time", "channel_type", "out_flow_status",
)


def _corp_id() -> str:
    ext_corp_id = request.args.get("ext_corp_id", "").strip()
    if not ext_corp_id:
        raise ValidationError("ext_corp_id is required", details={"field": "ext_corp_id"})
    return ext_corp_id


def _parse_listing_args() -> tuple[CustomerQuerySchema, Pager]:
    """Build the filter and pager from the query string."""
    args = request.args
    data = {key: args.get(key) for key in _FILTER_KEYS if args.get(key) not in (None, "")}
    data["ext_staff_ids"] = args.getlist("ext_staff_ids")
    data["ext_tag_ids"] = args.getlist("ext_tag_ids")
    req = CustomerQuerySchema(**data)
    paging = PagerSchema(
        page=args.get("page", 1, type=int),
        page_size=args.get("page_size", 0, type=int),
    )
    return req, Pager(page=paging.page, page_size=paging.page_size)


def _staff_id_filter() -> list[str] | None:
    """``None`` when the caller did not ask for staff filtering."""
    if "ext_staff_ids" not in request.args:
        return None
    ids: list[str] = []
    for value in request.args.getlist("ext_staff_ids"):
        ids.extend(part.strip() for part in value.split(",") if part.strip())
    return ids


def _with_relations() -> bool:
    return request.args.get("with_relations", "true").lower() != "false"


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
@ns.route("/sync")
class CustomerSync(Resource):
    """Batch upsert customers delivered by the contact sync."""

    @ns.doc("sync_customers")
    @ns.expect(sync_model)
    def post(self):
        """Insert or update many customers keyed on their external id."""
        try:
            data = CustomerSyncSchema(**(request.get_json(silent=True) or {}))
            result = _customer_svc.sync_customers(data.ext_corp_id, data.customers)
            return success_response(result, 201)
        except PydanticValidationError as err:
            return error_response(
                "Invalid input", "VALIDATION_ERROR", 400,
                details=err.errors(include_context=False),
            )
        except AppError as err:
            return error_response(
                err.message, err.error_code, err.status_code,
                details=getattr(err, "details", None),
            )


@ns.route("")
class CustomerList(Resource):
    """List customers or upsert a single one."""

    @ns.doc("list_customers")
    @ns.expect(list_parser)
    def get(self):
        """Filtered, paginated customer listing."""
        try:
            ext_corp_id = _corp_id()
            req, pager = _parse_listing_args()
            return success_response(_customer_svc.list_customers(req, ext_corp_id, pager))
        except PydanticValidationError as err:
            return error_response(
                "Invalid input", "VALIDATION_ERROR", 400,
                details=err.errors(include_context=False),
            )
        except AppError as err:
            return error_response(
                err.message, err.error_code, err.status_code,
                details=getattr(err, "details", None),
            )

    @ns.doc("upsert_customer")
    @ns.expect(single_upsert_model)
    def put(self):
        """Insert or update one customer keyed on its external id."""
        try:
            data = CustomerSingleUpsertSchema(**(request.get_json(silent=True) or {}))
            result = _customer_svc.upsert_customer(data.ext_corp_id, data)
            return success_response(result)
        except PydanticValidationError as err:
            return error_response(
                "Invalid input", "VALIDATION_ERROR", 400,
                details=err.errors(include_context=False),
            )
        except AppError as err:
            return error_response(
                err.message, err.error_code, err.status_code,
                details=getattr(err, "details", None),
            )


@ns.route("/<int:customer_id>")
@ns.param("customer_id", "Internal customer id")
class CustomerDetail(Resource):
    """Fetch a customer within a corp."""

    @ns.doc("get_customer")
    def get(self, customer_id: int):
        """Return the customer with its staff relations and tags."""
        try:
            result = _customer_svc.get_customer(customer_id, _corp_id(), _with_relations())
            return success_response(result)
        except AppError as err:
            return error_response(
                err.message, err.error_code, err.status_code,
                details=getattr(err, "details", None),
            )


@ns.route("/ext/<string:ext_customer_id>")
@ns.param("ext_customer_id", "Platform customer id")
class CustomerByExtID(Resource):
    """Fetch a customer by its external id."""

    @ns.doc("get_customer_by_ext_id")
    def get(self, ext_customer_id: str):
        """Return the customer; ?ext_staff_ids= narrows the preloaded relations."""
        try:
            result = _customer_svc.get_customer_by_ext_id(
                ext_customer_id, _staff_id_filter(), _with_relations(),
            )
            return success_response(result)
        except AppError as err:
            return error_response(
                err.message, err.error_code, err.status_code,
                details=getattr(err, "details", None),
            )


# ---------------------------------------------------------------------------
# Export and reporting
# ---------------------------------------------------------------------------
@ns.route("/export")
class CustomerExport(Resource):
    """Customer-rooted export rows."""

    @ns.doc("export_customers")
    @ns.expect(list_parser)
    def get(self):
        """Export rows with staff, relation and demographic columns."""
        try:
            ext_corp_id = _corp_id()
            req, pager = _parse_listing_args()
            return success_response(_customer_svc.export_customers(req, ext_corp_id, pager))
        except PydanticValidationError as err:
            return error_response(
                "Invalid input", "VALIDATION_ERROR", 400,
                details=err.errors(include_context=False),
            )
        except AppError as err:
            return error_response(
                err.message, err.error_code, err.status_code,
                details=getattr(err, "details", None),
            )


@ns.route("/export/relations")
class CustomerRelationExport(Resource):
    """Relation-rooted export rows."""

    @ns.doc("export_customer_relations")
    @ns.expect(list_parser)
    def get(self):
        """Export one row per customer/staff relation."""
        try:
            ext_corp_id = _corp_id()
            req, pager = _parse_listing_args()
            return success_response(_customer_svc.export_relation_rows(req, ext_corp_id, pager))
        except PydanticValidationError as err:
            return error_response(
                "Invalid input", "VALIDATION_ERROR", 400,
                details=err.errors(include_context=False),
            )
        except AppError as err:
            return error_response(
                err.message, err.error_code, err.status_code,
                details=getattr(err, "details", None),
            )


@ns.route("/summary")
class CustomerSummaryResource(Resource):
    """Corp dashboard totals."""

    @ns.doc("customer_summary")
    def get(self):
        """Staff, customer and group totals with today's movement."""
        try:
            corp_name = request.args.get("corp_name", "")
            return success_response(_customer_svc.get_summary(_corp_id(), corp_name))
        except AppError as err:
            return error_response(
                err.message, err.error_code, err.status_code,
                details=getattr(err, "details", None),
            )


@mass_msg_ns.route("/<int:mission_id>")
@mass_msg_ns.param("mission_id", "Mass message mission id")
class MassMsgDetail(Resource):
    """Fetch a mass-message mission."""

    @mass_msg_ns.doc("get_mass_msg")
    def get(self, mission_id: int):
        try:
            return success_response(_customer_svc.get_mass_msg(mission_id))
        except AppError as err:
            return error_response(
                err.message, err.error_code, err.status_code,
                details=getattr(err, "details", None),
            )
