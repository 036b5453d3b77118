from __future__ import annotations

import asyncio

import pytest
from jinja2 import TemplateNotFound

from storefront.email_service import MAX_ATTEMPTS, LoggingTransport, QueuedEmailService
from storefront.email_templates import TemplateRenderer

WELCOME = {
    "to": "ada@example.com",
    "firstName": "Ada",
    "storeName": "Acme & Co",
    "storeUrl": "https://acme.example",
}


class FlakyTransport:
    """Fails the first ``failures`` sends, then delivers."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.sent = []

    def send(self, message):
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("smtp down")
        self.sent.append(message)
        return f"<{message.id}>"


def test_render_welcome_in_both_languages():
    renderer = TemplateRenderer()
    subject, html = renderer.render("welcome", dict(WELCOME, year=2024))
    assert subject == "Welcome to Acme & Co!"
    assert "Acme &amp; Co" in html
    assert "<h1>Welcome, Ada!</h1>" in html

    subject, html = renderer.render("welcome", dict(WELCOME, year=2024), "es")
    assert subject == "¡Bienvenido a Acme & Co!"
    assert "Gracias por unirte" in html


def test_render_unknown_language_uses_default():
    subject, _ = TemplateRenderer("es").render("welcome", dict(WELCOME, year=2024), "de")
    assert subject.startswith("¡Bienvenido")


def test_render_unknown_template():
    with pytest.raises(TemplateNotFound):
        TemplateRenderer().render("newsletter", {})


def test_render_order_items():
    _, html = TemplateRenderer().render(
        "order-confirmation",
        {
            "firstName": "Ada",
            "orderId": "ORD-1",
            "orderDate": "2024-03-01",
            "items": [{"name": "Mouse", "quantity": 2, "price": 25}],
            "subtotal": 50,
            "tax": 5,
            "shipping": 0,
            "total": 55,
            "orderUrl": "https://acme.example/o/1",
            "storeName": "Acme",
            "year": 2024,
        },
    )
    assert "<td>Mouse</td><td>x2</td><td>25.00</td>" in html
    assert "Total: 55.00" in html


def test_priority_queues_and_processing():
    transport = LoggingTransport()
    svc = QueuedEmailService(transport)
    asyncio.run(svc.queue_email("a@example.com", "normal", "<p>n</p>", "t"))
    asyncio.run(svc.queue_email("b@example.com", "urgent", "<p>u</p>", "t", priority=1))
    assert asyncio.run(svc.queue_length("t")) == {"total": 2, "high": 1, "normal": 1}

    assert asyncio.run(svc.process_queue(10, "t")) == 2
    assert [m.subject for m in transport.sent] == ["urgent", "normal"]
    assert asyncio.run(svc.queue_length("t"))["total"] == 0


def test_process_respects_limit():
    svc = QueuedEmailService()
    for i in range(5):
        asyncio.run(svc.queue_email(f"u{i}@example.com", "hi", "<p/>", "t"))
    assert asyncio.run(svc.process_queue(3, "t")) == 3
    assert asyncio.run(svc.queue_length("t"))["total"] == 2


# GIVEN: a transport that fails twice before recovering
# WHEN: the queue is processed repeatedly
# THEN: the message is retried and finally delivered
def test_failed_send_is_requeued():
    transport = FlakyTransport(failures=2)
    svc = QueuedEmailService(transport)
    asyncio.run(svc.queue_email("a@example.com", "retry", "<p/>", "t"))

    assert asyncio.run(svc.process_queue(10, "t")) == 0
    assert asyncio.run(svc.queue_length("t"))["total"] == 1
    assert asyncio.run(svc.process_queue(10, "t")) == 0
    assert asyncio.run(svc.process_queue(10, "t")) == 1
    assert [m.subject for m in transport.sent] == ["retry"]


def test_message_dropped_after_max_attempts():
    svc = QueuedEmailService(FlakyTransport(failures=MAX_ATTEMPTS))
    asyncio.run(svc.queue_email("a@example.com", "doomed", "<p/>", "t"))
    for _ in range(MAX_ATTEMPTS):
        asyncio.run(svc.process_queue(10, "t"))
    assert asyncio.run(svc.queue_length("t"))["total"] == 0


def test_send_now_failure_is_internal_error():
    from storefront.errors import InternalError

    svc = QueuedEmailService(FlakyTransport(failures=1))
    with pytest.raises(InternalError):
        asyncio.run(svc.send_now("a@example.com", "x", "<p/>", "t"))


def test_welcome_endpoint_queues(client, services, admin_headers):
    resp = client.post("/email/welcome", json=WELCOME, headers=admin_headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["message"] == "Email queued successfully"
    assert body["data"]["queueId"]

    length = client.get("/email/queue/length", headers=admin_headers).get_json()["data"]["length"]
    assert length == {"total": 1, "high": 0, "normal": 1}

    processed = client.post("/email/queue/process?limit=5", headers=admin_headers).get_json()["data"]
    assert processed == {"processed": 1}
    assert services.email.transport.sent[-1].subject == "Welcome to Acme & Co!"


def test_welcome_in_spanish(client, services, admin_headers):
    client.post("/email/welcome?language=es", json=WELCOME, headers=admin_headers)
    client.post("/email/queue/process", headers=admin_headers)
    assert services.email.transport.sent[-1].subject == "¡Bienvenido a Acme & Co!"


def test_template_missing_fields(client, admin_headers):
    resp = client.post("/email/welcome", json={"to": "ada@example.com"}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Missing required fields: to, firstName, storeName, storeUrl"


def test_template_requires_items(client, admin_headers):
    body = {
        "to": "ada@example.com",
        "firstName": "Ada",
        "orderId": "ORD-1",
        "items": [],
        "orderUrl": "https://acme.example/o/1",
        "storeName": "Acme",
    }
    resp = client.post("/email/review-request", json=body, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "At least one order item is required"


ORDER = {
    "to": "ada@example.com",
    "firstName": "Ada",
    "orderId": "ORD-1",
    "orderDate": "2024-05-01",
    "items": [{"name": "Mouse", "quantity": 2, "price": 25}],
    "subtotal": 50,
    "tax": 5,
    "shipping": 0,
    "total": 55,
    "orderUrl": "https://acme.example/o/1",
    "storeName": "Acme",
}


# GIVEN: an order confirmation whose item price is not a number
# WHEN: queueing it
# THEN: 400 naming the item, and nothing reaches the queue
def test_order_item_price_must_be_numeric(client, admin_headers):
    body = dict(ORDER, items=[{"name": "Mouse", "quantity": 2, "price": "cheap"}])
    resp = client.post("/email/order-confirmation", json=body, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Item 1: price must be a non-negative number"
    length = client.get("/email/queue/length", headers=admin_headers).get_json()["data"]["length"]
    assert length["total"] == 0


@pytest.mark.parametrize("item, message", [
    ({"name": "Mouse", "quantity": 0, "price": 25}, "Item 2: quantity must be a positive integer"),
    ({"name": "Mouse", "quantity": 1.5, "price": 25}, "Item 2: quantity must be a positive integer"),
    ({"name": "Mouse", "quantity": True, "price": 25}, "Item 2: quantity must be a positive integer"),
    ({"name": "Mouse", "price": 25}, "Item 2: quantity must be a positive integer"),
    ({"name": "Mouse", "quantity": 1, "price": -1}, "Item 2: price must be a non-negative number"),
    ({"quantity": 1, "price": 25}, "Item 2: name is required"),
    ({"name": 7, "quantity": 1, "price": 25}, "Item 2: name is required"),
])
def test_order_item_validation(client, admin_headers, item, message):
    body = dict(ORDER, items=[ORDER["items"][0], item])
    resp = client.post("/email/order-confirmation", json=body, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == message


def test_valid_order_confirmation_renders(client, services, admin_headers):
    resp = client.post("/email/order-confirmation", json=ORDER, headers=admin_headers)
    assert resp.status_code == 200
    processed = client.post("/email/queue/process", headers=admin_headers).get_json()["data"]
    assert processed == {"processed": 1}
    assert "25.00" in services.email.transport.sent[-1].html


def test_review_request_items_need_no_price(client, admin_headers):
    body = {
        "to": "ada@example.com",
        "firstName": "Ada",
        "orderId": "ORD-1",
        "items": [{"name": "Mouse", "reviewUrl": "https://acme.example/r/1"}],
        "orderUrl": "https://acme.example/o/1",
        "storeName": "Acme",
    }
    assert client.post("/email/review-request", json=body, headers=admin_headers).status_code == 200
    bad = dict(body, items=[{"name": "Mouse", "price": "free"}])
    resp = client.post("/email/review-request", json=bad, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Item 1: price must be a non-negative number"


def test_template_rejects_bad_address(client, admin_headers):
    resp = client.post("/email/welcome", json=dict(WELCOME, to="nobody"), headers=admin_headers)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Please provide a valid email address"


def test_send_test_email(client, services, admin_headers):
    resp = client.post(
        "/email/test", json={"to": "ops@example.com", "subject": "Ping", "html": "<p>pong</p>"}, headers=admin_headers
    )
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["to"] == "ops@example.com"
    assert data["messageId"].endswith("@storefront.local>")
    assert services.email.transport.sent[-1].subject == "Ping"

    missing = client.post("/email/test", json={"to": "ops@example.com"}, headers=admin_headers)
    assert missing.get_json()["message"] == "Missing required fields: to, subject, html"


def test_clear_queue(client, admin_headers):
    client.post("/email/welcome", json=WELCOME, headers=admin_headers)
    resp = client.delete("/email/queue", headers=admin_headers)
    assert resp.get_json()["data"] == {"removed": 1}


def test_process_limit_bounds(client, admin_headers):
    resp = client.post("/email/queue/process?limit=0", headers=admin_headers)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Limit must be between 1 and 100"


def test_email_routes_require_admin(client, user_headers):
    assert client.post("/email/welcome", json=WELCOME, headers=user_headers).status_code == 403
