from smscredits.errors import SmsCreditsError
from smscredits.http import error_response, json_response, org_id_from_event, parse_body
from smscredits.logger import get_logger
from smscredits.wiring import build_reconciler

logger = get_logger("payment_init")

reconciler = build_reconciler()


def lambda_handler(event, context):
    org_id = org_id_from_event(event)
    if not org_id:
        return json_response(401, {"error": "unauthorized"})

    try:
        payload = parse_body(event)
        checkout = reconciler.initialize_purchase(org_id, payload.get("bundle_id"))
    except SmsCreditsError as e:
        logger.warning("payment_init.rejected", extra={"org_id": org_id, "error": e.code})
        return error_response(e)
    except Exception:
        logger.exception("payment_init.unexpected_error", extra={"org_id": org_id})
        return json_response(500, {"error": "internal_error"})

    logger.info(
        "payment_init.started",
        extra={"org_id": org_id, "reference": checkout.get("reference")},
    )
    return json_response(200, {"success": True, **checkout})
