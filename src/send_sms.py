from smscredits.errors import SmsCreditsError
from smscredits.http import error_response, json_response, org_id_from_event, parse_body
from smscredits.logger import get_logger
from smscredits.wiring import build_dispatcher

logger = get_logger("send_sms")

# Build stores + gateway client once per container
dispatcher = build_dispatcher()


def lambda_handler(event, context):
    logger.info(
        "send_sms.lambda_start",
        extra={"request_id": getattr(context, "aws_request_id", None)},
    )

    org_id = org_id_from_event(event)
    if not org_id:
        return json_response(401, {"error": "unauthorized"})

    try:
        payload = parse_body(event)
        recipients = payload.get("recipients")
        if isinstance(recipients, str):
            recipients = [r for r in recipients.split(",") if r.strip()]
        if recipients is not None and not isinstance(recipients, list):
            recipients = []

        outcome = dispatcher.dispatch_sms(
            org_id,
            recipients or [],
            payload.get("message") or "",
            receipt_id=payload.get("receipt_id") or "manual_send",
        )
    except SmsCreditsError as e:
        logger.info("send_sms.rejected", extra={"org_id": org_id, "error": e.code})
        return error_response(e)
    except Exception:
        # Store failures: no consistent decision is possible without the store
        logger.exception("send_sms.unexpected_error", extra={"org_id": org_id})
        return json_response(500, {"error": "internal_error"})

    status_code = 200 if outcome.success else 502
    return json_response(status_code, outcome.to_dict())
