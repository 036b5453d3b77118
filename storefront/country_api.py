from __future__ import annotations

from flask import Blueprint, Response, current_app

from .app_authz import require_admin
from .context import get_request_context
from .country_service import REGIONS, CountryInput, CountryService
from .envelope import created, listing, paged, success
from .errors import ValidationError
from .parsing import ArgParser
from .validators import COUNTRY_CODE_RE, country_code

bp = Blueprint("country_api", __name__, url_prefix="/countries")

_CODE_FORMAT = "Country code must be 2 or 3 uppercase letters"
_REGION_MESSAGE = f"Invalid region. Must be one of: {', '.join(REGIONS)}"


def _service() -> CountryService:
    return current_app.services.countries  # type: ignore[attr-defined]


def _rid() -> str:
    return get_request_context().request_id


def _code(value: str) -> str:
    return country_code(value.upper(), message=_CODE_FORMAT)


def _parse_country_body(*, partial: bool) -> CountryInput:
    args = ArgParser.body()
    code = None
    if not partial:
        code = args.string("code", required=True, required_message="Country code is required")
        if code is not None:
            code = code.upper()
            args.violations.check(bool(COUNTRY_CODE_RE.match(code)), "code", _CODE_FORMAT)
    fields = {
        "code": code,
        "name": args.string(
            "name", required=not partial, min_length=2, max_length=100,
            message="Country name must be between 2 and 100 characters",
            required_message="Country name is required",
        ),
        "nativeName": args.string("nativeName", max_length=100),
        "region": args.choice("region", REGIONS, message=_REGION_MESSAGE),
        "phoneCode": args.string("phoneCode", pattern=r"\+?\d{1,4}", message="Invalid phone code format"),
        "currency": args.string("currency", pattern=r"[A-Za-z]{3}", message="Currency must be a 3-letter code"),
        "active": args.boolean("active"),
    }
    args.finish()
    if fields["currency"]:
        fields["currency"] = fields["currency"].upper()
    return {k: v for k, v in fields.items() if v is not None}  # type: ignore[return-value]


@bp.get("")
async def list_countries() -> Response:
    args = ArgParser.query()
    page = args.page(default_limit=50)
    filters = {
        "region": args.choice("region", REGIONS, message=_REGION_MESSAGE),
        "active": args.boolean("active"),
        "search": args.string("search"),
    }
    args.finish()
    return paged(await _service().list_countries(filters, page, _rid()), key="countries")


@bp.get("/search")
async def search_countries() -> Response:
    args = ArgParser.query()
    query = args.string(
        "q", required=True, min_length=2,
        message="Search query must be at least 2 characters long",
        required_message="Search query is required",
    )
    region = args.choice("region", REGIONS, message=_REGION_MESSAGE)
    page = args.page(default_limit=20)
    args.finish()
    return paged(await _service().search_countries(query or "", region, page, _rid()), key="countries")


@bp.get("/region/<region>")
async def countries_by_region(region: str) -> Response:
    if region not in REGIONS:
        raise ValidationError([{"field": "region", "message": _REGION_MESSAGE}])
    return listing(await _service().countries_by_region(region, _rid()), key="countries")


@bp.get("/<code>")
async def get_country(code: str) -> Response:
    return success(await _service().get_country(_code(code), _rid()))


@bp.get("/<code>/states")
async def get_states(code: str) -> Response:
    return listing(await _service().get_states(_code(code), _rid()), key="states")


@bp.post("")
@require_admin
async def create_country() -> Response:
    country = await _service().create_country(_parse_country_body(partial=False), _rid())
    return created(country, message="Country created successfully", location=f"/countries/{country['code']}")


@bp.patch("/<code>")
@require_admin
async def update_country(code: str) -> Response:
    cc = _code(code)
    country = await _service().update_country(cc, _parse_country_body(partial=True), _rid())
    return success(country, message="Country updated successfully")


@bp.delete("/<code>")
@require_admin
async def delete_country(code: str) -> Response:
    deleted = await _service().delete_country(_code(code), _rid())
    return success(deleted, message="Country deleted successfully")


@bp.post("/<code>/states")
@require_admin
async def add_state(code: str) -> Response:
    cc = _code(code)
    args = ArgParser.body()
    required = "State code and name are required"
    state_code = args.string("code", required=True, max_length=10, required_message=required)
    name = args.string("name", required=True, max_length=100, required_message=required)
    args.finish()
    country = await _service().add_state(cc, (state_code or "").upper(), name or "", _rid())
    return created(country, message="State added successfully")


@bp.delete("/<code>/states/<state_code>")
@require_admin
async def remove_state(code: str, state_code: str) -> Response:
    country = await _service().remove_state(_code(code), state_code.upper(), _rid())
    return success(country, message="State removed successfully")
