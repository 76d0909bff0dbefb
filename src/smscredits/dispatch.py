"""
Send orchestration: validate → filter → price → check → send → debit → log.

The debit happens only after the gateway has confirmed the batch. A failed or
timed-out send is logged per recipient with zero units and never charged.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional

from smscredits import units
from smscredits.bundles import recommend_bundle
from smscredits.errors import (
    InsufficientBalance,
    InvalidRequest,
    NoValidRecipients,
)
from smscredits.logger import get_logger

logger = get_logger("dispatch")

NOT_CHARGED_NOTE = "Your balance was not charged."

MAX_SENDER_ID_LENGTH = 11


class DispatchOutcome(NamedTuple):
    success: bool
    sent_count: int
    units_used: int
    remaining_balance: int
    invalid_numbers: int
    error: Optional[str] = None
    balance_charged: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return self._asdict()


class Quote(NamedTuple):
    pages: int
    units_needed: int
    balance: int
    can_send: bool
    shortfall: int
    recommended_bundle: Optional[dict] = None

    def to_dict(self) -> Dict[str, Any]:
        return self._asdict()


class SmsDispatcher:
    def __init__(self, ledger, gateway, sms_logs):
        self.ledger = ledger
        self.gateway = gateway
        self.sms_logs = sms_logs

    def dispatch_sms(
        self,
        org_id: str,
        recipients: List[str],
        message: str,
        receipt_id: str = "manual_send",
    ) -> DispatchOutcome:
        # 1) Validate before touching balance or gateway
        if not message or not message.strip():
            raise InvalidRequest("Message is required")
        if not recipients:
            raise InvalidRequest("Recipients are required")

        organization = self.ledger.get_organization(org_id)
        sender_id = (organization.get("sms_sender_id") or "").strip()
        if not sender_id:
            raise InvalidRequest("SMS Sender ID is not configured in your settings.")
        if len(sender_id) > MAX_SENDER_ID_LENGTH:
            raise InvalidRequest(
                f"SMS Sender ID must be at most {MAX_SENDER_ID_LENGTH} characters.",
                {"sender_id": sender_id},
            )

        # 2) Filter and normalize; a number is billed once per dispatch
        valid: List[str] = []
        invalid_count = 0
        for raw in recipients:
            if not isinstance(raw, str) or not units.is_valid_phone_number(raw):
                invalid_count += 1
                continue
            phone = units.normalize_phone_number(raw)
            if phone not in valid:
                valid.append(phone)

        if not valid:
            raise NoValidRecipients(invalid_count)

        # 3) Price the valid set
        pages = units.pages_for_message(message)
        needed = pages * len(valid)

        # 4) Balance check; nothing is sent or logged when it fails
        if not self.ledger.has_sufficient_balance(org_id, needed):
            available = self.ledger.get_balance(org_id)
            logger.info(
                "dispatch.insufficient_balance",
                extra={"org_id": org_id, "required": needed, "available": available},
            )
            raise InsufficientBalance(required=needed, available=available)

        # 5) One batched gateway call
        result = self.gateway.send(valid, message, sender_id)

        if not result.success:
            # 7) Failed send: log every recipient, charge nothing
            self._append_logs(org_id, receipt_id, valid, message, 0, "failed", result.raw_response)
            logger.warning(
                "dispatch.gateway_failed",
                extra={"org_id": org_id, "recipients": len(valid), "detail": result.error_detail},
            )
            detail = result.error_detail or "Failed to send SMS"
            return DispatchOutcome(
                success=False,
                sent_count=0,
                units_used=0,
                remaining_balance=self.ledger.get_balance(org_id),
                invalid_numbers=invalid_count,
                error=f"{detail} {NOT_CHARGED_NOTE}",
                balance_charged=False,
            )

        # 6) Confirmed success: debit, then log
        error = None
        charged = True
        try:
            remaining = self.ledger.debit(org_id, needed)
        except InsufficientBalance as e:
            # A concurrent send spent the credits between our check and this
            # debit. The messages are out; the balance stays non-negative.
            logger.error(
                "dispatch.debit_rejected_after_send",
                extra={
                    "org_id": org_id,
                    "receipt_id": receipt_id,
                    "required": e.required,
                    "available": e.available,
                },
            )
            remaining = e.available
            charged = False
            error = "Messages were sent but the credits could not be deducted."

        self._append_logs(
            org_id, receipt_id, valid, message, pages if charged else 0, "sent", result.raw_response
        )

        logger.info(
            "dispatch.sent",
            extra={
                "org_id": org_id,
                "receipt_id": receipt_id,
                "recipients": len(valid),
                "units_used": needed,
                "balance_after": remaining,
            },
        )

        return DispatchOutcome(
            success=True,
            sent_count=len(valid),
            units_used=needed if charged else 0,
            remaining_balance=remaining,
            invalid_numbers=invalid_count,
            error=error,
            balance_charged=charged,
        )

    def quote_sms(self, org_id: str, message: str, recipient_count: int) -> Quote:
        needed = units.units_needed(message, recipient_count)
        balance = self.ledger.get_balance(org_id)
        shortfall = max(needed - balance, 0)
        return Quote(
            pages=units.pages_for_message(message),
            units_needed=needed,
            balance=balance,
            can_send=shortfall == 0,
            shortfall=shortfall,
            recommended_bundle=recommend_bundle(shortfall),
        )

    def _append_logs(
        self,
        org_id: str,
        receipt_id: str,
        recipients: List[str],
        message: str,
        units_per_recipient: int,
        status: str,
        raw_response: Optional[str],
    ) -> None:
        sent_at = datetime.now(timezone.utc).isoformat()
        self.sms_logs.append_many(
            {
                "receipt_id": receipt_id,
                "org_id": org_id,
                "phone_number": phone,
                "message": message,
                "units_used": units_per_recipient,
                "status": status,
                "api_response": raw_response,
                "sent_at": sent_at,
            }
            for phone in recipients
        )
