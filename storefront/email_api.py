from __future__ import annotations

from typing import Any

from flask import Blueprint, Response, current_app

from .app_authz import require_admin
from .context import get_request_context
from .email_service import EmailService
from .envelope import success
from .errors import ValidationError
from .i18n import translate
from .parsing import ArgParser, Violations
from .validators import check_email

bp = Blueprint("email_api", __name__, url_prefix="/email")

# Required body fields per template; list-valued fields must be non-empty arrays.
TEMPLATE_FIELDS: dict[str, tuple[str, ...]] = {
    "welcome": ("to", "firstName", "storeName", "storeUrl"),
    "order-confirmation": (
        "to", "firstName", "orderId", "orderDate", "items", "subtotal", "tax", "shipping", "total", "orderUrl", "storeName",
    ),
    "order-shipped": (
        "to", "firstName", "orderId", "trackingNumber", "estimatedDelivery", "trackingUrl", "orderUrl", "storeName",
    ),
    "order-delivered": ("to", "firstName", "orderId", "reviewUrl", "orderUrl", "storeName"),
    "password-reset": ("to", "firstName", "resetUrl", "expiryTime", "storeName"),
    "review-request": ("to", "firstName", "orderId", "items", "orderUrl", "storeName"),
}
_LIST_FIELDS = ("items",)
_NUMBER_FIELDS = ("subtotal", "tax", "shipping", "total")
_OPTIONAL_FIELDS = ("shippingAddress",)
# Templates whose items must carry quantity and price.
_PRICED_TEMPLATES = ("order-confirmation",)


def _service() -> EmailService:
    return current_app.services.email  # type: ignore[attr-defined]


def _missing(fields: tuple[str, ...]) -> ValidationError:
    return ValidationError([{"field": None, "message": f"Missing required fields: {', '.join(fields)}"}])


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_items(violations: Violations, template: str, items: list[dict[str, Any]]) -> None:
    """Each item needs a name; quantity and price are checked whenever given."""
    priced = template in _PRICED_TEMPLATES
    for n, item in enumerate(items, start=1):
        name = item.get("name")
        violations.check(isinstance(name, str) and bool(name.strip()), "items", f"Item {n}: name is required")
        quantity = item.get("quantity")
        if quantity is not None or priced:
            violations.check(
                isinstance(quantity, int) and not isinstance(quantity, bool) and quantity >= 1,
                "items",
                f"Item {n}: quantity must be a positive integer",
            )
        price = item.get("price")
        if price is not None or priced:
            violations.check(_is_number(price) and price >= 0, "items", f"Item {n}: price must be a non-negative number")
        if "reviewUrl" in item:
            violations.check(isinstance(item["reviewUrl"], str), "items", f"Item {n}: reviewUrl must be a string")


def _template_body(template: str) -> tuple[str, dict[str, Any]]:
    fields = TEMPLATE_FIELDS[template]
    args = ArgParser.body()
    if any(not args.present(name) for name in fields):
        raise _missing(fields)
    context: dict[str, Any] = {}
    for name in fields:
        if name in _LIST_FIELDS:
            items = args.raw(name)
            if not isinstance(items, list) or not items or not all(isinstance(i, dict) for i in items):
                args.violations.add(name, "At least one order item is required")
            else:
                _check_items(args.violations, template, items)
            context[name] = items
        elif name in _NUMBER_FIELDS:
            context[name] = args.number(name, min_value=0, message=f"{name} must be a non-negative number")
        else:
            context[name] = args.string(name, max_length=500)
    for name in _OPTIONAL_FIELDS:
        context[name] = args.json_object(name)
    check_email(args.violations, context.get("to"), field="to", message="Please provide a valid email address")
    args.finish()
    return context.pop("to"), context


def _language() -> str:
    args = ArgParser.query()
    language = args.string("language")
    args.finish()
    return language or get_request_context().language


async def _queue_template(template: str) -> Response:
    to, context = _template_body(template)
    ctx = get_request_context()
    queue_id = await _service().queue_template(template, to, context, _language(), ctx.request_id)
    return success({"queueId": queue_id}, message=translate("emailQueued", ctx.language))


@bp.post("/queue/process")
@require_admin
async def process_queue() -> Response:
    args = ArgParser.query()
    limit = args.integer("limit", default=10, min_value=1, max_value=100, message="Limit must be between 1 and 100")
    args.finish()
    processed = await _service().process_queue(limit or 10, get_request_context().request_id)
    return success({"processed": processed})


@bp.get("/queue/length")
@require_admin
async def queue_length() -> Response:
    return success({"length": await _service().queue_length(get_request_context().request_id)})


@bp.delete("/queue")
@require_admin
async def clear_queue() -> Response:
    return success({"removed": await _service().clear_queue(get_request_context().request_id)})


@bp.post("/test")
@require_admin
async def send_test_email() -> Response:
    args = ArgParser.body()
    if not all(args.present(name) for name in ("to", "subject", "html")):
        raise _missing(("to", "subject", "html"))
    to = args.string("to")
    subject = args.string("subject", max_length=200, message="Subject cannot exceed 200 characters")
    html = args.string("html")
    check_email(args.violations, to, field="to", message="Please provide a valid email address")
    args.finish()
    result = await _service().send_now(to or "", subject or "", html or "", get_request_context().request_id)
    return success(result)


@bp.post("/welcome")
@require_admin
async def send_welcome() -> Response:
    return await _queue_template("welcome")


@bp.post("/order-confirmation")
@require_admin
async def send_order_confirmation() -> Response:
    return await _queue_template("order-confirmation")


@bp.post("/order-shipped")
@require_admin
async def send_order_shipped() -> Response:
    return await _queue_template("order-shipped")


@bp.post("/order-delivered")
@require_admin
async def send_order_delivered() -> Response:
    return await _queue_template("order-delivered")


@bp.post("/password-reset")
@require_admin
async def send_password_reset() -> Response:
    return await _queue_template("password-reset")


@bp.post("/review-request")
@require_admin
async def send_review_request() -> Response:
    return await _queue_template("review-request")
