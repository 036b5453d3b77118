from __future__ import annotations

import pytest
from werkzeug.exceptions import MethodNotAllowed, NotFound

from storefront.errors import (
    AuthenticationError,
    AuthorizationError,
    BusinessError,
    ConflictError,
    InternalError,
    NotFoundError,
    ValidationError,
    translate_error,
)


def test_validation_error_body():
    status, body = translate_error(
        ValidationError([{"field": "name", "message": "Name is required"}]), request_id="r1"
    )
    assert status == 400
    assert body == {
        "status": "error",
        "requestId": "r1",
        "message": "Name is required",
        "errors": [{"field": "name", "message": "Name is required"}],
    }


def test_authentication_error_is_401():
    status, body = translate_error(AuthenticationError(), request_id="r1")
    assert status == 401
    assert body["message"] == "User authentication required"


def test_authorization_error_lists_required_roles():
    status, body = translate_error(AuthorizationError(required=("admin", "superadmin")), request_id="r1")
    assert status == 403
    assert body["requiredRoles"] == ["admin", "superadmin"]


@pytest.mark.parametrize(
    "exc, expected_status",
    [
        (NotFoundError("Vendor not found"), 404),
        (BusinessError("Test is not running"), 422),
        (ConflictError("Vendor with this slug already exists"), 409),
    ],
)
def test_client_errors_keep_their_message(exc, expected_status):
    status, body = translate_error(exc, request_id="r1")
    assert status == expected_status
    assert body["message"] == str(exc)
    assert "incidentId" not in body


def test_localized_not_found():
    exc = NotFoundError(message_key="countryNotFound", params={"code": "XX"})
    assert translate_error(exc, language="en")[1]["message"] == "Country with code XX not found"
    assert translate_error(exc, language="es")[1]["message"] == "País con código XX no encontrado"


def test_internal_error_never_leaks_message():
    status, body = translate_error(InternalError("db password is hunter2"), request_id="r1")
    assert status == 500
    assert body["message"] == "Internal server error"
    assert "hunter2" not in str(body)


def test_unknown_exception_gets_incident_id():
    status, body = translate_error(RuntimeError("boom"), request_id="r1")
    assert status == 500
    assert body["message"] == "Internal server error"
    assert body["incidentId"]


def test_http_exceptions():
    assert translate_error(NotFound())[1]["message"] == "Route not found"
    assert translate_error(MethodNotAllowed(valid_methods=["GET"]))[0] == 405


def test_unknown_route_envelope(client):
    resp = client.get("/does-not-exist", headers={"X-Request-Id": "req-404"})
    assert resp.status_code == 404
    body = resp.get_json()
    assert body == {"status": "error", "requestId": "req-404", "message": "Route not found"}
    assert resp.headers["X-Request-Id"] == "req-404"


def test_unhandled_exception_is_500_with_incident(app):
    @app.get("/boom")
    async def boom():
        raise RuntimeError("secret detail")

    resp = app.test_client().get("/boom")
    assert resp.status_code == 500
    body = resp.get_json()
    assert body["status"] == "error"
    assert body["message"] == "Internal server error"
    assert body["incidentId"]
    assert "secret detail" not in resp.get_data(as_text=True)


def test_method_not_allowed_keeps_allow_header(client):
    resp = client.put("/healthz")
    assert resp.status_code == 405
    assert "GET" in resp.headers["Allow"]
