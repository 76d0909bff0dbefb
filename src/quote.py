from smscredits.errors import InvalidRequest, SmsCreditsError
from smscredits.http import error_response, json_response, org_id_from_event, parse_body
from smscredits.logger import get_logger
from smscredits.wiring import build_dispatcher

logger = get_logger("quote")

dispatcher = build_dispatcher()


def lambda_handler(event, context):
    org_id = org_id_from_event(event)
    if not org_id:
        return json_response(401, {"error": "unauthorized"})

    try:
        payload = parse_body(event)
        try:
            recipient_count = int(payload.get("recipient_count", 0))
        except (TypeError, ValueError):
            raise InvalidRequest("recipient_count must be an integer")

        quote = dispatcher.quote_sms(org_id, payload.get("message") or "", recipient_count)
    except SmsCreditsError as e:
        return error_response(e)
    except Exception:
        logger.exception("quote.unexpected_error", extra={"org_id": org_id})
        return json_response(500, {"error": "internal_error"})

    return json_response(200, quote.to_dict())
