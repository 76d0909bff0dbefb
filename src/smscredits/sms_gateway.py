"""
QuickSMS HTTP client.

``send`` makes exactly one outbound call per invocation (all recipients in one
comma-joined batch) and never raises for gateway or network trouble: callers
always get a GatewayResult back. It does not touch the ledger or the audit
log.
"""

import json
import re
from typing import Any, List, NamedTuple, Optional

import httpx

from smscredits.logger import get_logger

logger = get_logger("sms_gateway")

SUCCESS_MARKERS = {"success", "sent", "ok"}

# Plain-text bodies only count when they *start* with a marker word, so an
# error like "not sent: invalid sender" is never read as a success.
_TEXT_SUCCESS = re.compile(r"^\s*(success|sent|ok)\b", re.IGNORECASE)


class GatewayResult(NamedTuple):
    success: bool
    raw_response: Optional[str] = None
    error_detail: Optional[str] = None
    status_code: Optional[int] = None


class ProviderBalance(NamedTuple):
    success: bool
    balance: float
    currency: str


def interpret_response(status_code: int, body: str) -> GatewayResult:
    """
    Decide whether a gateway response means the batch was accepted.

    1. A JSON object with a ``status`` string or ``success`` boolean decides.
    2. A JSON object without either: the HTTP status decides.
    3. Anything else must begin with a success marker word.
    """
    try:
        data: Any = json.loads(body) if body else None
    except ValueError:
        data = None

    if isinstance(data, dict):
        status = data.get("status")
        if isinstance(status, str):
            if status.strip().lower() in SUCCESS_MARKERS:
                return GatewayResult(True, body, None, status_code)
            return GatewayResult(False, body, _describe(data, status_code), status_code)
        if isinstance(data.get("success"), bool):
            if data["success"]:
                return GatewayResult(True, body, None, status_code)
            return GatewayResult(False, body, _describe(data, status_code), status_code)
        if 200 <= status_code < 300:
            return GatewayResult(True, body, None, status_code)
        return GatewayResult(False, body, _describe(data, status_code), status_code)

    if body and _TEXT_SUCCESS.match(body):
        return GatewayResult(True, body, None, status_code)

    return GatewayResult(
        False,
        body,
        f"Unparseable gateway response (HTTP {status_code}): {(body or '')[:200]}",
        status_code,
    )


def _describe(data: dict, status_code: int) -> str:
    detail = data.get("message") or data.get("error")
    if detail:
        return str(detail)
    return f"Failed to send SMS with status: {status_code}"


class SmsGatewayClient:
    def __init__(
        self,
        public_key: Optional[str],
        base_url: str,
        timeout: float = 15.0,
        http_client: Optional[httpx.Client] = None,
    ):
        self.public_key = public_key
        self.base_url = base_url.rstrip("/")
        self._http = http_client or httpx.Client(timeout=timeout)
        if not public_key:
            # Not fatal at startup: sends are reported as failures instead.
            logger.warning("sms_gateway.not_configured")

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.public_key}", "Accept": "application/json"}

    def send(self, recipients: List[str], message: str, sender_id: str) -> GatewayResult:
        if not self.public_key:
            return GatewayResult(False, None, "SMS gateway is not configured.")

        payload = {
            "recipients": ",".join(recipients),
            "message": message,
            "sender_id": sender_id,
        }

        logger.info(
            "sms_gateway.send",
            extra={"recipients": len(recipients), "sender_id": sender_id},
        )

        try:
            resp = self._http.post(
                f"{self.base_url}/sms/send",
                json=payload,
                headers=self._headers(),
            )
        except httpx.TimeoutException as e:
            logger.error("sms_gateway.timeout", extra={"error": str(e)})
            return GatewayResult(False, None, f"SMS gateway timed out: {e}")
        except httpx.HTTPError as e:
            logger.error("sms_gateway.network_error", extra={"error": str(e)})
            return GatewayResult(False, None, f"SMS gateway request failed: {e}")

        result = interpret_response(resp.status_code, resp.text)
        if result.success:
            logger.info("sms_gateway.accepted", extra={"status_code": resp.status_code})
        else:
            logger.warning(
                "sms_gateway.rejected",
                extra={"status_code": resp.status_code, "detail": result.error_detail},
            )
        return result

    def get_balance(self) -> ProviderBalance:
        """Credit left on the platform's own gateway account."""
        if not self.public_key:
            return ProviderBalance(False, 0, "GHS")

        try:
            resp = self._http.get(f"{self.base_url}/account/balance", headers=self._headers())
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("sms_gateway.balance_error", extra={"error": str(e)})
            return ProviderBalance(False, 0, "GHS")

        if resp.status_code >= 400 or not isinstance(data, dict):
            logger.error(
                "sms_gateway.balance_error",
                extra={"status_code": resp.status_code, "body": resp.text[:200]},
            )
            return ProviderBalance(False, 0, "GHS")

        return ProviderBalance(True, data.get("balance") or 0, data.get("currency") or "GHS")
