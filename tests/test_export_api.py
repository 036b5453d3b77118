from __future__ import annotations

import csv
import io
import re
from datetime import datetime, timezone

import pytest
from openpyxl import load_workbook

from storefront.export_formats import build_pdf
from storefront.export_service import ExportFile, export_filename


@pytest.fixture()
def sales_data(services):
    catalog = services.catalog
    ada = catalog.add_customer("Ada", "Lovelace", "ada@example.com", createdAt=datetime(2024, 1, 2, tzinfo=timezone.utc))
    catalog.add_customer("Bob", "Stone", "bob@example.com", active=False)
    catalog.add_order(
        ada["id"],
        [
            {"productId": "p1", "name": "Mouse", "quantity": 2, "price": 25.0, "vendorId": "a" * 24},
            {"productId": "p2", "name": "Lamp", "quantity": 1, "price": 40.0, "vendorId": "b" * 24},
        ],
        status="DELIVERED",
        paymentStatus="PAID",
        customerEmail="ada@example.com",
        tax=9.0,
        createdAt=datetime(2024, 3, 1, tzinfo=timezone.utc),
    )
    catalog.add_order(
        ada["id"],
        [{"productId": "p1", "name": "Mouse", "quantity": 1, "price": 25.0, "vendorId": "a" * 24}],
        status="PENDING",
        createdAt=datetime(2024, 3, 5, tzinfo=timezone.utc),
    )
    catalog.add_product("Mouse", 25.0, vendorId="a" * 24, stock=4)
    return ada


def _csv_rows(resp):
    return list(csv.reader(io.StringIO(resp.get_data(as_text=True))))


def test_orders_csv(client, admin_headers, sales_data):
    resp = client.get("/export/orders", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.mimetype == "text/csv"
    assert resp.headers["Content-Disposition"].startswith("attachment; filename=orders_export_")
    assert resp.headers["Content-Disposition"].endswith(".csv")
    rows = _csv_rows(resp)
    assert rows[0][:2] == ["Order Number", "Customer Name"]
    assert len(rows) == 3
    delivered = next(r for r in rows[1:] if r[4] == "DELIVERED")
    assert delivered[1] == "Ada Lovelace"
    assert delivered[7] == "Mouse (2), Lamp (1)"
    assert delivered[-1] == "99.0"


def test_orders_status_filter(client, admin_headers, sales_data):
    rows = _csv_rows(client.get("/export/orders?status=pending", headers=admin_headers))
    assert len(rows) == 2
    assert rows[1][4] == "PENDING"
    resp = client.get("/export/orders?status=lost", headers=admin_headers)
    assert resp.status_code == 400
    assert resp.get_json()["message"].startswith("Invalid status. Must be one of: PENDING")


def test_sales_only_delivered_lines(client, admin_headers, sales_data):
    rows = _csv_rows(client.get("/export/sales", headers=admin_headers))
    assert [r[2] for r in rows[1:]] == ["Mouse", "Lamp"]
    rows = _csv_rows(client.get(f"/export/sales?vendorId={'b' * 24}", headers=admin_headers))
    assert [r[2] for r in rows[1:]] == ["Lamp"]
    assert rows[1][-1] == "40.0"


def test_sales_as_excel(client, admin_headers, sales_data):
    resp = client.get("/export/sales?format=excel", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.headers["Content-Disposition"].endswith(".xlsx")
    wb = load_workbook(io.BytesIO(resp.data))
    ws = wb.active
    assert ws.title == "Sales"
    assert ws.cell(row=1, column=1).value == "Order Number"
    assert ws.cell(row=1, column=1).font.bold is True
    assert ws.max_row == 3


def test_orders_as_pdf(client, admin_headers, sales_data):
    resp = client.get("/export/orders?format=pdf", headers=admin_headers)
    assert resp.mimetype == "application/pdf"
    assert resp.data.startswith(b"%PDF-")
    assert resp.data.rstrip().endswith(b"%%EOF")
    assert b"(Orders Report) Tj" in resp.data


def test_customers_csv(client, admin_headers, sales_data):
    rows = _csv_rows(client.get("/export/customers?active=true", headers=admin_headers))
    assert rows[0][0] == "First Name"
    assert rows[1][:3] == ["Ada", "Lovelace", "ada@example.com"]
    assert rows[1][5:7] == ["2", "124.0"]
    assert len(rows) == 2


@pytest.mark.parametrize("path, message", [
    ("/export/orders?format=docx", "Invalid export format: docx"),
    ("/export/products?format=pdf", "Invalid export format: pdf. Only CSV is supported for products."),
    ("/export/customers?format=excel", "Invalid export format: excel. Only CSV is supported for customers."),
    ("/export/orders?vendorId=abc", "Invalid vendor ID format"),
])
def test_export_rejections(client, admin_headers, path, message):
    resp = client.get(path, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == message


def test_export_requires_admin(client, user_headers):
    assert client.get("/export/orders", headers=user_headers).status_code == 403
    assert client.get("/export/orders").status_code == 401


# GIVEN: a spy export service
# WHEN: the date range is inverted
# THEN: the request fails validation before the service is called
def test_bad_range_never_reaches_service():
    from storefront import create_app
    from storefront.services import ServiceRegistry

    class SpyExports:
        def __init__(self):
            self.calls = []

        async def export_orders(self, fmt, filters, request_id):
            self.calls.append((fmt, filters))
            return ExportFile(content=b"x", mimetype="text/csv", filename="orders_export_2024-01-01.csv")

    spy = SpyExports()
    app = create_app({"TESTING": True, "SECRET_KEY": "test"}, services=ServiceRegistry(exports=spy))
    client = app.test_client()
    headers = {"X-User-Id": "admin-1", "X-User-Role": "admin"}

    resp = client.get("/export/orders?startDate=2024-02-01&endDate=2024-01-01", headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Start date cannot be after end date"
    assert spy.calls == []

    resp = client.get("/export/orders?format=CSV&status=delivered", headers=headers)
    assert resp.status_code == 200
    assert spy.calls[0][0] == "csv"
    assert spy.calls[0][1]["status"] == "DELIVERED"


def test_export_filename():
    assert export_filename("sales", "excel", datetime(2024, 5, 6)) == "sales_export_2024-05-06.xlsx"


def test_pdf_paginates_long_reports():
    rows = [[i, f"item {i}"] for i in range(100)]
    pdf = build_pdf(["#", "Name"], rows, title="Long")
    assert b"/Count 3" in pdf
    assert len(re.findall(rb"/Type /Page\b(?!s)", pdf)) == 3


def test_pdf_replaces_characters_outside_latin1():
    pdf = build_pdf(["Name"], [["Tea ☕"], [None]], title="Menu")
    assert pdf.startswith(b"%PDF-")
    assert b"(Menu) Tj" in pdf
    assert b"Tea ?" in pdf
