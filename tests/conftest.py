import os
import sys

import pytest

# Path setup before any project imports to satisfy E402
ROOT = os.path.dirname(__file__)
PARENT = os.path.abspath(os.path.join(ROOT, ".."))
if PARENT not in sys.path:  # pragma: no cover - environment dependent
    sys.path.insert(0, PARENT)


def _lazy_imports():  # isolate app imports & satisfy lint ordering
    from storefront.app_factory import create_app  # noqa: E402
    from storefront.services import ServiceRegistry  # noqa: E402

    return create_app, ServiceRegistry


ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}
CUSTOMER = {"X-User-Id": "user-1", "X-User-Role": "customer"}
OTHER_CUSTOMER = {"X-User-Id": "user-2", "X-User-Role": "customer"}


@pytest.fixture()
def services():
    _, ServiceRegistry = _lazy_imports()
    return ServiceRegistry()


@pytest.fixture()
def app(services):
    create_app, _ = _lazy_imports()
    return create_app({"TESTING": True, "SECRET_KEY": "test"}, services=services)


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def admin_headers():
    return dict(ADMIN)


@pytest.fixture()
def user_headers():
    return dict(CUSTOMER)


@pytest.fixture()
def vendor_headers():
    """Headers for a vendor principal bound to ``vendor_id``."""
    def _make(vendor_id: str, user_id: str = "vendor-user-1") -> dict:
        return {"X-User-Id": user_id, "X-User-Role": "vendor", "X-Vendor-Id": vendor_id}

    return _make


@pytest.fixture()
def other_user_headers():
    return dict(OTHER_CUSTOMER)
