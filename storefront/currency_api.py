from __future__ import annotations

from flask import Blueprint, Response, current_app

from .app_authz import require_admin
from .context import get_request_context
from .currency_service import CurrencyInput, CurrencyService
from .envelope import created, listing, success
from .i18n import translate
from .parsing import ArgParser
from .validators import CURRENCY_CODE_RE, currency_code

bp = Blueprint("currency_api", __name__, url_prefix="/currencies")

_CODE_FORMAT = "Currency code must be 3 uppercase letters"


def _service() -> CurrencyService:
    return current_app.services.currencies  # type: ignore[attr-defined]


def _code(value: str) -> str:
    return currency_code(value, message=_CODE_FORMAT)


def _parse_currency_body(*, partial: bool) -> CurrencyInput:
    args = ArgParser.body()
    code = None
    if not partial:
        code = args.string("code", required=True, required_message="Currency code is required")
        if code is not None:
            code = code.upper()
            args.violations.check(bool(CURRENCY_CODE_RE.match(code)), "code", _CODE_FORMAT)
    fields = {
        "code": code,
        "name": args.string("name", required=not partial, min_length=2, max_length=100, required_message="Currency name is required"),
        "symbol": args.string("symbol", required=not partial, max_length=5, required_message="Currency symbol is required"),
        "rate": args.number("rate", min_value=0.000001, message="Rate must be a positive number"),
        "decimalPlaces": args.integer("decimalPlaces", min_value=0, max_value=4, message="Decimal places must be between 0 and 4"),
        "symbolPosition": args.choice("symbolPosition", ("before", "after")),
        "active": args.boolean("active"),
    }
    args.finish()
    return {k: v for k, v in fields.items() if v is not None}  # type: ignore[return-value]


@bp.get("")
async def list_currencies() -> Response:
    args = ArgParser.query()
    active = args.boolean("active")
    args.finish()
    rows = await _service().list_currencies(active, get_request_context().request_id)
    return listing(rows, key="currencies")


@bp.get("/base")
async def base_currency() -> Response:
    return success(await _service().get_base_currency(get_request_context().request_id))


@bp.get("/convert")
async def convert() -> Response:
    ctx = get_request_context()
    required = translate("conversionParamsRequired", ctx.language)
    args = ArgParser.query()
    amount = args.number(
        "amount", required=True, required_message=required, message=translate("invalidAmount", ctx.language)
    )
    source = args.string("from", required=True, required_message=required)
    target = args.string("to", required=True, required_message=required)
    args.finish()
    from_code, to_code = (source or "").upper(), (target or "").upper()
    converted = await _service().convert(amount or 0, from_code, to_code, ctx.request_id)
    return success(
        {"amount": amount, "fromCurrency": from_code, "toCurrency": to_code, "convertedAmount": converted}
    )


@bp.get("/format")
async def format_amount() -> Response:
    ctx = get_request_context()
    args = ArgParser.query()
    amount = args.number(
        "amount", required=True, required_message="Amount and currency are required",
        message=translate("invalidAmount", ctx.language),
    )
    code = args.string("currency", required=True, required_message="Amount and currency are required")
    args.finish()
    currency = (code or "").upper()
    formatted = await _service().format(amount or 0, currency, ctx.request_id)
    return success({"amount": amount, "currency": currency, "formattedAmount": formatted})


@bp.get("/<code>")
async def get_currency(code: str) -> Response:
    return success(await _service().get_currency(_code(code), get_request_context().request_id))


@bp.post("")
@require_admin
async def create_currency() -> Response:
    currency = await _service().create_currency(_parse_currency_body(partial=False), get_request_context().request_id)
    return created(currency, message="Currency created successfully", location=f"/currencies/{currency['code']}")


@bp.patch("/<code>")
@require_admin
async def update_currency(code: str) -> Response:
    cc = _code(code)
    currency = await _service().update_currency(cc, _parse_currency_body(partial=True), get_request_context().request_id)
    return success(currency, message="Currency updated successfully")


@bp.delete("/<code>")
@require_admin
async def delete_currency(code: str) -> Response:
    deleted = await _service().delete_currency(_code(code), get_request_context().request_id)
    return success(deleted, message="Currency deleted successfully")


@bp.patch("/<code>/base")
@require_admin
async def set_base_currency(code: str) -> Response:
    currency = await _service().set_base_currency(_code(code), get_request_context().request_id)
    return success(currency, message="Base currency updated successfully")


@bp.post("/rates/update")
@require_admin
async def update_rates() -> Response:
    args = ArgParser.body()
    api_key = args.string("apiKey", required=True, required_message="API key is required")
    args.finish()
    result = await _service().update_exchange_rates(api_key or "", get_request_context().request_id)
    return success(result, message="Exchange rates updated successfully")
