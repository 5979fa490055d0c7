import json

import pytest

from hutko_gateway.errors import MalformedRequest
from hutko_gateway.normalizer import normalize_request, sanitize_text


def test_json_body_is_preferred_over_form_and_query():
    body = json.dumps({"order_id": "1_2", "order_status": "approved"}).encode()

    result = normalize_request(body, form={"order_id": "form"}, query={"order_id": "query"})

    assert result["order_id"] == "1_2"


def test_falls_back_to_form_then_query():
    assert normalize_request(b"", form={"order_id": "5_1"}, query={"order_id": "9_9"})["order_id"] == "5_1"
    assert normalize_request(b"", form={}, query={"order_id": "9_9"})["order_id"] == "9_9"


def test_invalid_json_falls_back_to_form():
    result = normalize_request(b"order_id=5_1&x", form={"order_id": "5_1"})

    assert result == {"order_id": "5_1"}


def test_empty_json_object_falls_back_to_query():
    assert normalize_request(b"{}", query={"order_id": "3_3"}) == {"order_id": "3_3"}


def test_no_data_anywhere_is_malformed():
    with pytest.raises(MalformedRequest):
        normalize_request(b"", form={}, query={})


def test_json_list_is_malformed():
    with pytest.raises(MalformedRequest):
        normalize_request(b'[{"order_id": "1_2"}]')


def test_numeric_fields_become_strings():
    body = json.dumps({
        "merchant_id": 1396424,
        "payment_id": 987654321,
        "card_bin": 444455,
        "amount": 2500.0,
        "actual_amount": 2500,
        "fee": 12,
    }).encode()

    result = normalize_request(body)

    assert result["merchant_id"] == "1396424"
    assert result["payment_id"] == "987654321"
    assert result["card_bin"] == "444455"
    assert result["amount"] == "2500"
    assert result["actual_amount"] == "2500"
    assert result["fee"] == 12


def test_text_fields_are_sanitized_but_signature_is_not():
    body = json.dumps({
        "order_id": "100_1700000001",
        "order_status": "<b>approved</b>",
        "response_description": "bad\n\tcard <script>alert(1)</script>",
        "sender_email": "a%20b@example.com",
        "signature": "<abc>%20",
        "additional_info": "{\"x\": \"<y>\"}",
    }).encode()

    result = normalize_request(body)

    assert result["order_id"] == "100_1700000001"
    assert result["order_status"] == "approved"
    assert result["response_description"] == "bad card"
    assert result["sender_email"] == "ab@example.com"
    assert result["signature"] == "<abc>%20"
    assert result["additional_info"] == "{\"x\": \"<y>\"}"


def test_sanitize_text_edge_cases():
    assert sanitize_text(None) == ""
    assert sanitize_text({"nested": True}) == ""
    assert sanitize_text(1001) == "1001"
    assert sanitize_text("  a  <  b ") == "a &lt; b"
    assert sanitize_text("%%4141") == ""
