from smscredits.config import load_config
from smscredits.http import claims_from_event, json_response
from smscredits.logger import get_logger
from smscredits.wiring import build_sms_gateway

logger = get_logger("provider_balance")

gateway = build_sms_gateway(load_config())


def lambda_handler(event, context):
    """Credit left on the platform's own QuickSMS account (super admins only)."""
    if claims_from_event(event).get("role") != "super_admin":
        return json_response(403, {"error": "forbidden"})

    balance = gateway.get_balance()
    logger.info("provider_balance.checked", extra={"success": balance.success, "balance": balance.balance})
    return json_response(200, balance._asdict())
