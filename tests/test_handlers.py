import hashlib
import hmac
import importlib
import json

import pytest

from conftest import StubGateway, set_balance
from smscredits.config import load_config
from smscredits.dispatch import SmsDispatcher
from smscredits.sms_gateway import GatewayResult, ProviderBalance

# Targets under test: the Lambda handlers in src/
# We monkeypatch the smscredits.wiring builders before (re)loading each
# handler module, since handlers build their services at import time.


@pytest.fixture(autouse=True)
def env(monkeypatch):
    monkeypatch.setenv("ORGANIZATIONS_TABLE", "organizations")
    monkeypatch.setenv("TRANSACTIONS_TABLE", "transactions")
    monkeypatch.setenv("SMS_LOGS_TABLE", "sms-logs")
    monkeypatch.setenv("PROVIDER_SECRET_NAME", "receipts/providers")
    monkeypatch.setenv("APP_BASE_URL", "https://app.receipts.test")


def _load(module, monkeypatch, **builders):
    for name, value in builders.items():
        monkeypatch.setattr(f"smscredits.wiring.{name}", lambda *a, _v=value, **k: _v, raising=True)
    return importlib.reload(importlib.import_module(module))


def _event(body=None, org_id="org-1", **extra):
    event = {"headers": {}, "requestContext": {"authorizer": {"jwt": {"claims": {}}}}}
    if org_id:
        event["requestContext"]["authorizer"]["jwt"]["claims"]["org_id"] = org_id
    if body is not None:
        event["body"] = json.dumps(body)
    event.update(extra)
    return event


def test_send_sms_success(monkeypatch, dispatcher, organizations, sms_logs):
    set_balance(organizations, 5)
    send_sms = _load("send_sms", monkeypatch, build_dispatcher=dispatcher)

    resp = send_sms.lambda_handler(
        _event({"recipients": ["0241234567", "0201234567", "0501234567"], "message": "x" * 100}),
        None,
    )

    assert resp["statusCode"] == 200
    body = json.loads(resp["body"])
    assert body["success"] is True
    assert body["units_used"] == 3
    assert body["remaining_balance"] == 2
    assert len(sms_logs.entries) == 3


def test_send_sms_insufficient_balance_is_402(monkeypatch, dispatcher, organizations, gateway):
    set_balance(organizations, 2)
    send_sms = _load("send_sms", monkeypatch, build_dispatcher=dispatcher)

    resp = send_sms.lambda_handler(
        _event({"recipients": ["0241234567", "0201234567"], "message": "y" * 200}),
        None,
    )

    assert resp["statusCode"] == 402
    body = json.loads(resp["body"])
    assert body["error"] == "insufficient_balance"
    assert (body["required"], body["available"], body["shortfall"]) == (4, 2, 2)
    assert gateway.calls == []


def test_send_sms_gateway_failure_is_502(monkeypatch, ledger, organizations, sms_logs):
    set_balance(organizations, 5)
    failing = SmsDispatcher(ledger, StubGateway(GatewayResult(False, None, "SMS gateway timed out")), sms_logs)
    send_sms = _load("send_sms", monkeypatch, build_dispatcher=failing)

    resp = send_sms.lambda_handler(_event({"recipients": ["0241234567"], "message": "hi"}), None)

    assert resp["statusCode"] == 502
    body = json.loads(resp["body"])
    assert body["success"] is False
    assert "not charged" in body["error"]
    assert organizations.find_by_id("org-1")["sms_balance"] == 5


def test_send_sms_requires_organization(monkeypatch, dispatcher):
    send_sms = _load("send_sms", monkeypatch, build_dispatcher=dispatcher)
    resp = send_sms.lambda_handler(_event({"recipients": ["0241234567"], "message": "hi"}, org_id=None), None)
    assert resp["statusCode"] == 401


def test_send_sms_org_from_header(monkeypatch, dispatcher, organizations):
    set_balance(organizations, 5)
    send_sms = _load("send_sms", monkeypatch, build_dispatcher=dispatcher)
    event = _event({"recipients": ["0241234567"], "message": "hi"}, org_id=None)
    event["headers"] = {"X-Organization-Id": "org-1"}

    resp = send_sms.lambda_handler(event, None)
    assert resp["statusCode"] == 200


def test_send_sms_invalid_json(monkeypatch, dispatcher):
    send_sms = _load("send_sms", monkeypatch, build_dispatcher=dispatcher)
    event = _event()
    event["body"] = "{not json"

    resp = send_sms.lambda_handler(event, None)
    assert resp["statusCode"] == 400
    assert json.loads(resp["body"])["error"] == "invalid_request"


def test_send_sms_store_failure_is_500(monkeypatch, dispatcher, organizations):
    def unavailable(org_id):
        raise ConnectionError("dynamodb unreachable")

    organizations.find_by_id = unavailable
    send_sms = _load("send_sms", monkeypatch, build_dispatcher=dispatcher)

    resp = send_sms.lambda_handler(_event({"recipients": ["0241234567"], "message": "hi"}), None)
    assert resp["statusCode"] == 500


def test_quote(monkeypatch, dispatcher, organizations):
    set_balance(organizations, 2)
    quote = _load("quote", monkeypatch, build_dispatcher=dispatcher)

    resp = quote.lambda_handler(_event({"message": "z" * 200, "recipient_count": 2}), None)

    assert resp["statusCode"] == 200
    body = json.loads(resp["body"])
    assert body["units_needed"] == 4
    assert body["can_send"] is False
    assert body["shortfall"] == 2


def test_quote_bad_count(monkeypatch, dispatcher):
    quote = _load("quote", monkeypatch, build_dispatcher=dispatcher)
    resp = quote.lambda_handler(_event({"message": "hi", "recipient_count": -3}), None)
    assert resp["statusCode"] == 400


def test_payment_callback_credits_once(monkeypatch, reconciler, paystack, ledger):
    paystack.add_payment("ref-123")
    callback = _load("payment_callback", monkeypatch, build_reconciler=reconciler)
    event = {"queryStringParameters": {"reference": "ref-123"}}

    first = callback.lambda_handler(event, None)
    second = callback.lambda_handler(event, None)

    assert first["statusCode"] == 302
    assert first["headers"]["Location"] == "https://app.receipts.test/settings?payment=success&units=401&tab=sms"
    assert "already_processed=true" in second["headers"]["Location"]
    assert ledger.get_balance("org-1") == 401


def test_payment_callback_failures_redirect(monkeypatch, reconciler, paystack):
    paystack.add_payment("ref-failed", status="failed")
    callback = _load("payment_callback", monkeypatch, build_reconciler=reconciler)

    missing = callback.lambda_handler({}, None)
    failed = callback.lambda_handler({"queryStringParameters": {"reference": "ref-failed"}}, None)

    assert "error=no_reference" in missing["headers"]["Location"]
    assert "payment=failed" in failed["headers"]["Location"]
    assert "error=verification_failed" in failed["headers"]["Location"]


def test_payment_init(monkeypatch, reconciler, paystack):
    payment_init = _load("payment_init", monkeypatch, build_reconciler=reconciler)

    resp = payment_init.lambda_handler(_event({"bundle_id": "starter"}), None)

    assert resp["statusCode"] == 200
    body = json.loads(resp["body"])
    assert body["reference"] == "ref-new"
    assert paystack.initialized[0]["metadata"]["organizationId"] == "org-1"


def test_payment_init_unknown_bundle(monkeypatch, reconciler):
    payment_init = _load("payment_init", monkeypatch, build_reconciler=reconciler)
    resp = payment_init.lambda_handler(_event({"bundle_id": "gold"}), None)
    assert resp["statusCode"] == 400
    assert json.loads(resp["body"])["error"] == "unknown_bundle"


def test_webhook_signature_and_credit(monkeypatch, ledger):
    import httpx

    from smscredits.paystack import PaystackClient
    from smscredits.reconcile import PaymentReconciler

    def handler(request):
        return httpx.Response(200, json={
            "status": True,
            "data": {
                "reference": "ref-123",
                "status": "success",
                "amount": 4000,
                "metadata": {"organizationId": "org-1", "bundleId": "starter", "units": 401},
            },
        })

    paystack = PaystackClient("sk_test_123", "https://api.paystack.test", http_client=httpx.Client(transport=httpx.MockTransport(handler)))
    webhook = _load("paystack_webhook", monkeypatch, build_reconciler=PaymentReconciler(ledger, paystack))

    body = json.dumps({"event": "charge.success", "data": {"reference": "ref-123"}})
    signature = hmac.new(b"sk_test_123", body.encode(), hashlib.sha512).hexdigest()
    event = {"headers": {"x-paystack-signature": signature}, "body": body}

    first = webhook.lambda_handler(event, None)
    replay = webhook.lambda_handler(event, None)
    forged = webhook.lambda_handler({"headers": {"x-paystack-signature": "bad"}, "body": body}, None)

    assert first["statusCode"] == 200
    assert json.loads(first["body"])["credited"] is True
    assert json.loads(replay["body"])["already_processed"] is True
    assert forged["statusCode"] == 401
    assert ledger.get_balance("org-1") == 401


def test_provider_balance_requires_super_admin(monkeypatch):
    class StubBalanceGateway:
        def get_balance(self):
            return ProviderBalance(True, 812.5, "GHS")

    provider_balance = _load("provider_balance", monkeypatch, build_sms_gateway=StubBalanceGateway())

    denied = provider_balance.lambda_handler(_event(), None)
    admin = _event()
    admin["requestContext"]["authorizer"]["jwt"]["claims"]["role"] = "super_admin"
    allowed = provider_balance.lambda_handler(admin, None)

    assert denied["statusCode"] == 403
    assert allowed["statusCode"] == 200
    assert json.loads(allowed["body"]) == {"success": True, "balance": 812.5, "currency": "GHS"}


def test_health():
    health = importlib.import_module("health")
    resp = health.lambda_handler({"requestContext": {"http": {"method": "GET"}}}, None)
    assert resp["statusCode"] == 200
    assert json.loads(resp["body"])["status"] == "ok"


def test_config_reports_missing_variables(monkeypatch):
    monkeypatch.delenv("SMS_LOGS_TABLE")
    monkeypatch.delenv("PROVIDER_SECRET_NAME")
    with pytest.raises(RuntimeError) as exc:
        load_config()
    assert "SMS_LOGS_TABLE" in str(exc.value)
    assert "PROVIDER_SECRET_NAME" in str(exc.value)


def test_config_rejects_bad_timeout(monkeypatch):
    monkeypatch.setenv("GATEWAY_TIMEOUT_SECONDS", "soon")
    with pytest.raises(RuntimeError):
        load_config()


def test_config_defaults(monkeypatch):
    monkeypatch.delenv("GATEWAY_TIMEOUT_SECONDS", raising=False)
    conf = load_config()
    assert conf.gateway_timeout_seconds == 15.0
    assert conf.sms_gateway_url == "https://app.quicksms.com.gh/api"
    assert conf.organizations_table == "organizations"


def test_webhook_acknowledges_non_object_body(monkeypatch, reconciler, paystack):
    webhook = _load("paystack_webhook", monkeypatch, build_reconciler=reconciler)

    resp = webhook.lambda_handler({"headers": {"x-paystack-signature": "sig"}, "body": "[]"}, None)

    assert resp["statusCode"] == 200
    assert json.loads(resp["body"]) == {"received": True, "credited": False, "error": "invalid_request"}
    assert paystack.verify_calls == []
