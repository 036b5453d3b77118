from __future__ import annotations

from flask import Blueprint, Response, current_app

from .app_authz import require_admin
from .context import get_request_context
from .envelope import created, listing, success
from .parsing import ArgParser
from .tax_service import TaxLocation, TaxRateInput, TaxService
from .validators import COUNTRY_CODE_RE, object_id

bp = Blueprint("tax_api", __name__, url_prefix="/taxes")

_INVALID_ID = "Invalid tax rate ID format"
_COUNTRY_FORMAT = "Invalid country code format. Must be 2 or 3 uppercase letters"


def _service() -> TaxService:
    return current_app.services.taxes  # type: ignore[attr-defined]


def _rid() -> str:
    return get_request_context().request_id


def _location(args: ArgParser, *, required_message: str) -> TaxLocation:
    country = args.string("country", required=True, required_message=required_message)
    if country is not None:
        country = country.upper()
        args.violations.check(bool(COUNTRY_CODE_RE.match(country)), "country", _COUNTRY_FORMAT)
    return {
        "country": country or "",
        "state": args.string("state", max_length=50),
        "postalCode": args.string("postalCode", max_length=20),
        "categoryId": args.string("categoryId"),
    }


def _parse_rate_body(*, partial: bool) -> TaxRateInput:
    args = ArgParser.body()
    country = args.string("country", required=not partial, pattern=COUNTRY_CODE_RE.pattern, message=_COUNTRY_FORMAT, required_message="Country is required")
    fields = {
        "name": args.string("name", required=not partial, min_length=2, max_length=100, required_message="Tax name is required"),
        "rate": args.number(
            "rate", required=not partial, min_value=0, max_value=100,
            message="Tax rate must be between 0 and 100", required_message="Tax rate is required",
        ),
        "country": country,
        "state": args.string("state", max_length=50),
        "postalCode": args.string("postalCode", max_length=20),
        "categoryId": args.string("categoryId"),
        "priority": args.integer("priority", min_value=0, message="Priority must be a non-negative integer"),
        "isDefault": args.boolean("isDefault"),
        "active": args.boolean("active"),
        "description": args.string("description", max_length=500),
    }
    args.finish()
    return {k: v for k, v in fields.items() if v is not None}  # type: ignore[return-value]


@bp.get("")
async def list_rates() -> Response:
    args = ArgParser.query()
    country = args.string("country", pattern=COUNTRY_CODE_RE.pattern, message=_COUNTRY_FORMAT)
    filters = {"country": country, "state": args.string("state"), "active": args.boolean("active")}
    args.finish()
    return listing(await _service().list_rates(filters, _rid()), key="taxRates")


@bp.get("/applicable")
async def applicable_rate() -> Response:
    args = ArgParser.query()
    location = _location(args, required_message="Country is required")
    args.finish()
    return success(await _service().applicable_rate(location, _rid()))


@bp.get("/calculate")
async def calculate_tax() -> Response:
    args = ArgParser.query()
    amount = args.number(
        "amount", required=True, min_value=0, message="Amount must be a non-negative number",
        required_message="Amount and country are required",
    )
    location = _location(args, required_message="Amount and country are required")
    args.finish()
    return success(await _service().calculate(amount or 0.0, location, _rid()))


@bp.get("/<rate_id>")
async def get_rate(rate_id: str) -> Response:
    return success(await _service().get_rate(object_id(rate_id, message=_INVALID_ID), _rid()))


@bp.post("")
@require_admin
async def create_rate() -> Response:
    rate = await _service().create_rate(_parse_rate_body(partial=False), _rid())
    return created(rate, message="Tax rate created successfully", location=f"/taxes/{rate['id']}")


@bp.patch("/<rate_id>")
@require_admin
async def update_rate(rate_id: str) -> Response:
    rid = object_id(rate_id, message=_INVALID_ID)
    rate = await _service().update_rate(rid, _parse_rate_body(partial=True), _rid())
    return success(rate, message="Tax rate updated successfully")


@bp.delete("/<rate_id>")
@require_admin
async def delete_rate(rate_id: str) -> Response:
    deleted = await _service().delete_rate(object_id(rate_id, message=_INVALID_ID), _rid())
    return success(deleted, message="Tax rate deleted successfully")
