"""Error taxonomy + translation into error envelopes.

Every failure surfaced by parsing, validation, authorization or a service
adapter ends up in ``translate_error``, a total function from an exception to
``(http_status, body)``. Flask handlers registered by ``register_error_handlers``
are the single place where those bodies are turned into responses.
"""
from __future__ import annotations

import uuid
from typing import Any

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException
from werkzeug.wrappers.response import Response

from .api_types import ErrorEnvelope, FieldError
from .i18n import translate
from . import metrics


class ApiError(Exception):
    """Base for errors that carry their own HTTP status.

    ``message_key`` (with ``params``) selects a localized catalog message at
    translation time; ``message`` is used verbatim otherwise.
    """

    status = 500
    kind = "internal_error"

    def __init__(
        self,
        message: str | None = None,
        *,
        status: int | None = None,
        message_key: str | None = None,
        params: dict[str, Any] | None = None,
    ):
        self.message = message or (message_key or self.kind)
        self.message_key = message_key
        self.params = params or {}
        if status is not None:
            self.status = status
        super().__init__(self.message)

    def localized(self, language: str | None) -> str:
        if self.message_key:
            return translate(self.message_key, language, **self.params)
        return self.message


class ValidationError(ApiError):
    status = 400
    kind = "validation_error"

    def __init__(self, errors: list[FieldError] | str, message: str | None = None):
        if isinstance(errors, str):
            errors = [{"field": None, "message": errors}]
        self.errors = list(errors)
        first = self.errors[0]["message"] if self.errors else "Validation failed"
        super().__init__(message or first)


class AuthenticationError(ApiError):
    status = 401
    kind = "unauthorized"

    def __init__(self, message: str | None = None):
        if message:
            super().__init__(message)
        else:
            super().__init__(message_key="authenticationRequired")


class AuthorizationError(ApiError):
    status = 403
    kind = "forbidden"

    def __init__(self, message: str | None = None, required: tuple[str, ...] = ()):
        self.required = tuple(required)
        if message:
            super().__init__(message)
        else:
            super().__init__(message_key="forbidden")


class NotFoundError(ApiError):
    status = 404
    kind = "not_found"


class BusinessError(ApiError):
    """Domain rule violation. 422 unless the raising site pins 400."""

    status = 422
    kind = "business_rule"


class ConflictError(BusinessError):
    status = 409
    kind = "conflict"


class InternalError(ApiError):
    status = 500
    kind = "internal_error"


def _body(request_id: str | None, message: str, **extra: Any) -> ErrorEnvelope:
    body: ErrorEnvelope = {"status": "error", "requestId": request_id or "", "message": message}
    body.update({k: v for k, v in extra.items() if v is not None})  # type: ignore[typeddict-item]
    return body


def translate_error(
    exc: BaseException, *, request_id: str | None = None, language: str | None = None
) -> tuple[int, ErrorEnvelope]:
    """Map any exception to ``(status, body)``; server errors never expose their message."""
    if isinstance(exc, ValidationError):
        return exc.status, _body(request_id, exc.localized(language), errors=exc.errors)
    if isinstance(exc, AuthorizationError):
        required = list(exc.required) or None
        return exc.status, _body(request_id, exc.localized(language), requiredRoles=required)
    if isinstance(exc, ApiError):
        if exc.status >= 500:
            return exc.status, _body(request_id, translate("internalError", language))
        return exc.status, _body(request_id, exc.localized(language))
    if isinstance(exc, HTTPException):
        status = exc.code or 500
        if status >= 500:
            return status, _body(request_id, translate("internalError", language))
        if status == 404:
            return status, _body(request_id, translate("routeNotFound", language))
        return status, _body(request_id, exc.description or exc.name)
    return 500, _body(request_id, translate("internalError", language), incidentId=str(uuid.uuid4()))


def register_error_handlers(app: Flask) -> None:
    from .context import current_language, current_request_id

    def _respond(ex: BaseException) -> Response:
        rid = current_request_id()
        status, body = translate_error(ex, request_id=rid, language=current_language())
        if status >= 500:
            app.logger.error(
                "Unhandled exception request_id=%s incident_id=%s path=%s",
                rid,
                body.get("incidentId"),
                request.path,
                exc_info=ex,
            )
        else:
            app.logger.info("request_id=%s %s %s -> %s %s", rid, request.method, request.path, status, body["message"])
        metrics.increment(metrics.HTTP_ERRORS, {"status": str(status), "kind": type(ex).__name__})
        resp = jsonify(body)
        resp.status_code = status
        resp.headers["X-Request-Id"] = rid
        if isinstance(ex, HTTPException) and status == 405:
            allowed = ex.get_headers()
            for key, value in allowed:
                if key.lower() == "allow":
                    resp.headers["Allow"] = value
        return resp

    @app.errorhandler(ApiError)
    def _h_api(err: ApiError) -> Response:
        return _respond(err)

    @app.errorhandler(HTTPException)
    def _h_http(ex: HTTPException) -> Response:
        return _respond(ex)

    @app.errorhandler(Exception)
    def _h_exception(ex: Exception) -> Response:
        return _respond(ex)


__all__ = [
    "ApiError",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "BusinessError",
    "ConflictError",
    "InternalError",
    "translate_error",
    "register_error_handlers",
]
