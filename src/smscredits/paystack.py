import hashlib
import hmac
from typing import Any, Dict, Optional

import httpx

from smscredits.errors import GatewayFailure
from smscredits.logger import get_logger

logger = get_logger("paystack")


class PaystackClient:
    """
    Thin Paystack API client.

    Amounts are passed in cedis and sent in pesewas, Paystack's smallest
    currency unit. Any transport error or ``status: false`` response is
    raised as GatewayFailure.
    """

    def __init__(
        self,
        secret_key: Optional[str],
        base_url: str = "https://api.paystack.co",
        callback_url: Optional[str] = None,
        timeout: float = 15.0,
        http_client: Optional[httpx.Client] = None,
    ):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.callback_url = callback_url
        self._http = http_client or httpx.Client(timeout=timeout)

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        if not self.secret_key:
            raise GatewayFailure("Paystack is not configured.")

        headers = {"Authorization": f"Bearer {self.secret_key}"}
        try:
            resp = self._http.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
            data = resp.json()
        except httpx.HTTPError as e:
            logger.error("paystack.network_error", extra={"path": path, "error": str(e)})
            raise GatewayFailure("Paystack request failed", detail=str(e)) from e
        except ValueError as e:
            logger.error("paystack.invalid_json", extra={"path": path, "status_code": resp.status_code})
            raise GatewayFailure("Paystack returned an invalid response", detail=resp.text[:200]) from e

        if not isinstance(data, dict) or not data.get("status"):
            message = data.get("message") if isinstance(data, dict) else None
            logger.warning(
                "paystack.request_rejected",
                extra={"path": path, "status_code": resp.status_code, "detail": message},
            )
            raise GatewayFailure(message or "Paystack request was rejected", detail=resp.text[:500])

        return data

    def initialize_transaction(self, email: str, amount: float, metadata: Dict[str, Any]) -> Dict[str, Any]:
        """Start a checkout; returns {"authorization_url", "access_code", "reference"}."""
        payload: Dict[str, Any] = {
            "email": email,
            "amount": int(round(amount * 100)),
            "currency": "GHS",
            "metadata": metadata,
        }
        if self.callback_url:
            payload["callback_url"] = self.callback_url

        data = self._request("POST", "/transaction/initialize", json=payload)
        logger.info(
            "paystack.initialized",
            extra={"reference": data["data"].get("reference"), "metadata": metadata},
        )
        return data["data"]

    def verify_transaction(self, reference: str) -> Dict[str, Any]:
        """Returns the transaction data: status, amount (pesewas), metadata, ..."""
        data = self._request("GET", f"/transaction/verify/{reference}")
        return data["data"]

    def verify_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        """Check the x-paystack-signature header (HMAC-SHA512 of the raw body)."""
        if not self.secret_key or not signature:
            return False
        expected = hmac.new(self.secret_key.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, signature)
