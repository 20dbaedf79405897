"""Tests for WhatsApp message formatting and sending."""

from datetime import date
from urllib.parse import unquote

import pytest
import requests

import whatsapp_handler
from conftest import make_entry
from domain import Farmer, Session
from statement_builder import build_statement
from whatsapp_handler import WhatsAppHandler


class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        return self._payload


@pytest.fixture
def handler():
    return WhatsAppHandler(token="", phone_number_id="", center_name="Surendra Milk Center")


@pytest.fixture
def configured():
    return WhatsAppHandler(token="tok", phone_number_id="12345", center_name="Surendra Milk Center")


@pytest.mark.parametrize("raw, formatted", [
    ("9876543210", "+919876543210"),
    ("98765 43210", "+919876543210"),
    ("+91 98765-43210", "+919876543210"),
    ("09876543210", "+919876543210"),
    ("+44 20 7946 0958", "+442079460958"),
])
def test_format_phone_number(handler, raw, formatted):
    assert handler.format_phone_number(raw) == formatted


def test_unparsable_phone_is_returned_stripped(handler):
    assert handler.format_phone_number("  not a phone ") == "not a phone"


def test_collection_receipt(handler):
    entry = make_entry(4.5, 10, Session.EVENING, day=date(2026, 1, 5))
    message = handler.collection_receipt(entry)
    assert "Dear Ramesh," in message
    assert "Date: 05/01/2026" in message
    assert "Session: 🌙 Evening" in message
    assert "Fat: 4.5%" in message
    assert "Quantity: 10 L" in message
    assert "Rate: ₹40.0/L" in message
    assert "Total: ₹400.00" in message
    assert message.endswith("- Surendra Milk Center")


def test_statement_message(handler):
    farmer = Farmer(id=1, name="Ramesh", phone="9876543210")
    statement = build_statement(farmer, 1, 2026, [make_entry(3.5, 5), make_entry(4.5, 5)])
    message = handler.statement_message(statement)
    assert "Month: January 2026" in message
    assert "Total Quantity: 10.0 L" in message
    assert "Average Fat: 4.00%" in message
    assert "Total Amount: ₹350.00" in message


def test_deep_link(handler):
    link = handler.deep_link("9876543210", "Hello & thanks")
    assert link.startswith("https://wa.me/919876543210?text=")
    assert unquote(link.split("text=", 1)[1]) == "Hello & thanks"


def test_send_requires_configuration(handler):
    result = handler.send_message("9876543210", "hi")
    assert result["success"] is False
    assert "not configured" in result["error"]


def test_send_message_success(configured, monkeypatch):
    calls = []

    def fake_post(url, headers, json, timeout):
        calls.append((url, headers, json))
        return FakeResponse(200, {"messages": [{"id": "wamid.1"}]})

    monkeypatch.setattr(whatsapp_handler.requests, "post", fake_post)
    result = configured.send_message("98765 43210", "hi")

    assert result == {"success": True, "message_id": "wamid.1", "to": "+919876543210"}
    url, headers, body = calls[0]
    assert url == "https://graph.facebook.com/v18.0/12345/messages"
    assert headers["Authorization"] == "Bearer tok"
    assert body["to"] == "919876543210"
    assert body["text"] == {"body": "hi"}


def test_send_message_api_error(configured, monkeypatch):
    monkeypatch.setattr(whatsapp_handler.requests, "post",
                        lambda *a, **kw: FakeResponse(401, {"error": {"message": "Invalid token"}}))
    result = configured.send_message("9876543210", "hi")
    assert result == {"success": False, "error": "API Error 401: Invalid token"}


def test_send_message_network_error(configured, monkeypatch):
    def boom(*args, **kwargs):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(whatsapp_handler.requests, "post", boom)
    result = configured.send_message("9876543210", "hi")
    assert result["success"] is False
    assert "offline" in result["error"]


def test_notify_sends_when_configured(configured, monkeypatch):
    monkeypatch.setattr(whatsapp_handler.requests, "post",
                        lambda *a, **kw: FakeResponse(200, {"messages": [{"id": "wamid.2"}]}))
    result = configured.notify("9876543210", "hi")
    assert result["sent"] is True
    assert result["message_id"] == "wamid.2"
    assert result["whatsapp_url"] == "https://wa.me/919876543210?text=hi"


def test_notify_without_configuration_gives_link(handler):
    result = handler.notify("9876543210", "hi")
    assert result["success"] is True
    assert result["sent"] is False
    assert handler.notify(None, "hi") == {"success": False, "error": "No phone number on record"}
