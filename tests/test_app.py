"""Tests for the application shell: root, admin auth, settings, errors and logging."""
from __future__ import annotations

import logging

import pytest
import pydantic

from storefront.errors import (
    BusinessRuleError,
    CouponError,
    CouponRejection,
    ErrorKind,
    FieldError,
    ValidationError,
)
from storefront.logging_setup import setup_logging
from storefront.settings import Settings, _parse_cors


def test_root(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json() == {"message": "Storefront API is running"}


# ---------- Admin auth ----------

def test_login_returns_token(client):
    resp = client.post("/auth/login", json={"username": "admin", "password": "admin123"})
    assert resp.status_code == 200
    assert resp.json() == {"token": "ok-admin"}


def test_login_rejects_bad_password(client):
    resp = client.post("/auth/login", json={"username": "admin", "password": "nope"})
    assert resp.status_code == 401
    assert resp.json()["kind"] == "unauthorized"


def test_me_checks_token(client):
    assert client.get("/auth/me", params={"token": "ok-admin"}).json() == {"ok": True}
    assert client.get("/auth/me", params={"token": "bad"}).status_code == 401


# ---------- Settings ----------

@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, ["http://localhost:3000", "http://127.0.0.1:3000"]),
        ("", ["http://localhost:3000", "http://127.0.0.1:3000"]),
        ('["https://shop.example"]', ["https://shop.example"]),
        ("https://a.example, https://b.example", ["https://a.example", "https://b.example"]),
    ],
)
def test_parse_cors(raw, expected):
    assert _parse_cors(raw) == expected


def test_settings_read_checkout_env(monkeypatch):
    monkeypatch.setenv("TAX_RATE", "0.18")
    monkeypatch.setenv("ORDER_NUMBER_PREFIX", "SF")
    s = Settings()
    assert str(s.tax_rate) == "0.18"
    assert s.order_number_prefix == "SF"
    assert s.currency == "INR"


def test_settings_are_frozen():
    s = Settings()
    with pytest.raises(pydantic.ValidationError):
        s.currency = "USD"


# ---------- Errors ----------

def test_error_envelope():
    err = BusinessRuleError("Insufficient stock for Ghee", field="items.quantity")
    assert err.status_code == 400
    assert err.to_dict() == {
        "success": False,
        "kind": "business_rule",
        "message": "Insufficient stock for Ghee",
        "errors": [{"field": "items.quantity", "message": "Insufficient stock for Ghee"}],
    }


def test_error_with_several_fields():
    err = ValidationError("Validation failed", errors=[FieldError("a", "bad a"), FieldError("b", "bad b")])
    assert err.status_code == 422
    assert [e["field"] for e in err.to_dict()["errors"]] == ["a", "b"]


def test_coupon_error_kinds():
    missing = CouponError(CouponRejection.NOT_FOUND)
    expired = CouponError(CouponRejection.EXPIRED)
    assert missing.kind is ErrorKind.NOT_FOUND and missing.status_code == 404
    assert expired.kind is ErrorKind.BUSINESS_RULE and expired.status_code == 400
    assert expired.to_dict()["reason"] == "Expired"
    assert expired.to_dict()["errors"][0]["field"] == "couponCode"


# ---------- Logging ----------

def test_setup_logging_writes_file(tmp_path):
    logger = logging.getLogger("storefront")
    saved = list(logger.handlers)
    for h in saved:
        logger.removeHandler(h)
    try:
        setup_logging(Settings(LOG_DIR=str(tmp_path), LOG_LEVEL="debug"))
        assert logger.level == logging.DEBUG
        logging.getLogger("storefront.services.orders").info("hello from checkout")
        for h in logger.handlers:
            h.flush()
        assert "hello from checkout" in (tmp_path / "storefront.log").read_text(encoding="utf-8")
        # a second call keeps the handler set unchanged
        count = len(logger.handlers)
        setup_logging(Settings(LOG_DIR=str(tmp_path)))
        assert len(logger.handlers) == count
    finally:
        for h in list(logger.handlers):
            logger.removeHandler(h)
            h.close()
        for h in saved:
            logger.addHandler(h)


def test_rejected_checkout_is_logged(client, catalog, address, caplog):
    caplog.set_level(logging.INFO, logger="storefront")
    body = {
        "items": [{"productId": "p1", "quantity": 1}],
        "shippingAddress": address,
        "paymentMethod": "cod",
        "totalAmount": 5,
    }
    client.post("/orders", json=body)
    rejected = [r for r in caplog.records if r.name == "storefront.services.orders"]
    assert rejected and rejected[0].levelno == logging.WARNING
    assert "Total amount mismatch" in rejected[0].getMessage()
