from urllib.parse import urlencode

from smscredits.config import load_config
from smscredits.errors import SmsCreditsError
from smscredits.logger import get_logger
from smscredits.wiring import build_reconciler

logger = get_logger("payment_callback")

conf = load_config()
reconciler = build_reconciler()


def _redirect(**params) -> dict:
    return {
        "statusCode": 302,
        "headers": {"Location": f"{conf.app_base_url}/settings?{urlencode(params)}"},
        "body": "",
    }


def lambda_handler(event, context):
    """Paystack redirects the buyer here with ?reference=... after checkout."""
    reference = (event.get("queryStringParameters") or {}).get("reference")
    if not reference:
        return _redirect(payment="failed", error="no_reference")

    try:
        outcome = reconciler.reconcile_payment(reference)
    except SmsCreditsError as e:
        logger.warning(
            "payment_callback.failed",
            extra={"reference": reference, "error": e.code, "context": e.context},
        )
        return _redirect(payment="failed", error=e.code)
    except Exception:
        logger.exception("payment_callback.unexpected_error", extra={"reference": reference})
        return _redirect(payment="failed", error="internal_error")

    if outcome.already_processed:
        return _redirect(payment="success", tab="sms", already_processed="true")
    return _redirect(payment="success", units=outcome.units_credited, tab="sms")
