from smscredits.errors import InvalidSignature, SmsCreditsError
from smscredits.http import json_response, raw_body
from smscredits.logger import get_logger
from smscredits.wiring import build_reconciler

logger = get_logger("paystack_webhook")

reconciler = build_reconciler()


def lambda_handler(event, context):
    headers = {k.lower(): v for k, v in (event.get("headers") or {}).items()}
    signature = headers.get("x-paystack-signature")

    try:
        outcome = reconciler.handle_webhook(raw_body(event), signature)
    except InvalidSignature as e:
        return json_response(e.status_code, e.to_dict())
    except SmsCreditsError as e:
        # Paystack retries non-2xx deliveries; a payment we reject will not
        # become acceptable on retry, so acknowledge it.
        logger.warning("paystack_webhook.rejected", extra={"error": e.code, "context": e.context})
        return json_response(200, {"received": True, "credited": False, "error": e.code})
    except Exception:
        # Let Paystack retry: store failures are transient.
        logger.exception("paystack_webhook.unexpected_error")
        return json_response(500, {"error": "webhook_processing_failed"})

    if outcome is None:
        return json_response(200, {"received": True})
    return json_response(200, {"received": True, **outcome.to_dict()})
