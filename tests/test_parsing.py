from __future__ import annotations

from datetime import UTC

import pytest

from storefront.errors import ValidationError
from storefront.parsing import ArgParser, parse_iso_datetime
from storefront.validators import check_date_range, object_id, uuid_id


def test_number_keeps_integral_query_values_integral(app):
    with app.test_request_context("/?a=10&b=2.5&c=abc"):
        args = ArgParser.query()
        assert args.number("a") == 10
        assert isinstance(args.number("a"), int)
        assert args.number("b") == 2.5
        assert args.number("c") is None
        assert args.violations.has("c")


def test_number_json_float_stays_float(app):
    with app.test_request_context("/", method="POST", json={"rate": 3.0}):
        value = ArgParser.body().number("rate")
    assert value == 3.0
    assert isinstance(value, float)


def test_blank_values_count_as_missing(app):
    with app.test_request_context("/?q=%20%20"):
        args = ArgParser.query()
        assert args.present("q") is False
        args.string("q", required=True, required_message="Search query is required")
        with pytest.raises(ValidationError) as ei:
            args.finish()
    assert ei.value.message == "Search query is required"


def test_string_length_and_pattern(app):
    with app.test_request_context("/?a=x&b=abc&c=AB1"):
        args = ArgParser.query()
        assert args.string("a", min_length=2) is None
        assert args.string("b", min_length=2, max_length=5) == "abc"
        assert args.string("c", pattern=r"[A-Z]{2,3}", message="bad code") is None
        messages = [v["message"] for v in args.violations]
    assert messages == ["a must be at least 2 characters long", "bad code"]


def test_boolean_reader(app):
    with app.test_request_context("/?a=yes&b=off&c=maybe"):
        args = ArgParser.query()
        assert args.boolean("a") is True
        assert args.boolean("b") is False
        assert args.boolean("c") is None
        assert args.boolean("missing", default=True) is True
        assert [v["field"] for v in args.violations] == ["c"]


def test_choice_csv_and_json_readers(app):
    query = {"sort": "up", "tags": "a, b,,c", "attrs": '{"color": "red"}', "bad": "[1]"}
    with app.test_request_context("/", query_string=query):
        args = ArgParser.query()
        assert args.choice("sort", ("asc", "desc")) is None
        assert args.csv_list("tags") == ["a", "b", "c"]
        assert args.json_object("attrs") == {"color": "red"}
        assert args.json_object("bad") is None
        messages = [v["message"] for v in args.violations]
    assert messages == ["Invalid sort. Must be one of: asc, desc", "Invalid bad format. Must be valid JSON"]


def test_body_must_be_object(app):
    with app.test_request_context("/", method="POST", json=[1, 2]):
        with pytest.raises(ValidationError) as ei:
            ArgParser.body()
    assert ei.value.message == "Request body must be a JSON object"


def test_nested_parser_prefixes_fields(app):
    with app.test_request_context("/", method="POST", json={"variants": [{"name": ""}]}):
        args = ArgParser.body()
        sub = args.nested(args.raw("variants")[0], "variants[0].")
        sub.string("name", required=True)
    assert args.violations.items == [{"field": "variants[0].name", "message": "name is required"}]


def test_finish_reports_every_violation_and_first_message(app):
    with app.test_request_context("/?page=0&limit=0"):
        args = ArgParser.query()
        args.page(default_limit=10)
        with pytest.raises(ValidationError) as ei:
            args.finish()
    assert ei.value.message == "Page must be greater than 0"
    assert [e["field"] for e in ei.value.errors] == ["page", "limit"]


def test_parse_iso_datetime_naive_is_utc():
    parsed = parse_iso_datetime("2024-03-01")
    assert parsed is not None and parsed.tzinfo == UTC
    assert parse_iso_datetime("yesterday") is None


def test_date_range_check(app):
    with app.test_request_context("/?startDate=2024-02-01&endDate=2024-01-01"):
        args = ArgParser.query()
        start, end = args.date("startDate"), args.date("endDate")
        assert check_date_range(args.violations, start, end) is False
    assert args.violations.items[0]["message"] == "Start date cannot be after end date"


def test_path_id_validators():
    assert object_id("64B7F0A1C2D3E4F5A6B7C8D9") == "64b7f0a1c2d3e4f5a6b7c8d9"
    with pytest.raises(ValidationError):
        object_id("not-an-id")
    with pytest.raises(ValidationError) as ei:
        uuid_id("123", message="Invalid test ID format")
    assert ei.value.message == "Invalid test ID format"
