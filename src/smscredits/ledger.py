"""
Per-organization SMS credit ledger.

The organization's ``sms_balance`` is the only shared mutable state in the
service and this is the only module that changes it. Debits and credits are
delegated to single conditional store writes; nothing here does a
read-modify-write in application code.
"""

from datetime import datetime, timezone
from typing import Any, Dict, NamedTuple, Optional

from smscredits.errors import InsufficientBalance, InvalidInput, OrganizationNotFound
from smscredits.logger import get_logger

logger = get_logger("ledger")


class CreditOutcome(NamedTuple):
    balance: int
    # False when the idempotency key had already been credited (no-op).
    applied: bool


class CreditLedger:
    def __init__(self, organizations, transactions):
        self.organizations = organizations
        self.transactions = transactions

    def get_organization(self, org_id: str) -> Dict[str, Any]:
        record = self.organizations.find_by_id(org_id)
        if record is None:
            raise OrganizationNotFound(org_id)
        return record

    def get_balance(self, org_id: str) -> int:
        return int(self.get_organization(org_id).get("sms_balance") or 0)

    def has_sufficient_balance(self, org_id: str, units: int) -> bool:
        return self.get_balance(org_id) >= units

    def debit(self, org_id: str, units: int) -> int:
        """
        Take ``units`` off the balance and return the new balance.

        Raises InsufficientBalance (with required/available/shortfall) when the
        balance cannot cover it; the balance is left untouched in that case.
        """
        if units < 0:
            raise InvalidInput("units must not be negative", {"units": units})
        if units == 0:
            return self.get_balance(org_id)

        new_balance = self.organizations.debit_if_available(org_id, units)
        if new_balance is None:
            available = self.get_balance(org_id)
            logger.warning(
                "ledger.debit_rejected",
                extra={"org_id": org_id, "required": units, "available": available},
            )
            raise InsufficientBalance(required=units, available=available)

        logger.info(
            "ledger.debited",
            extra={"org_id": org_id, "units": units, "balance_after": new_balance},
        )
        return new_balance

    def credit(
        self,
        org_id: str,
        units: int,
        idempotency_key: str,
        *,
        amount: int = 0,
        bundle_id: Optional[str] = None,
        gateway_response: Optional[str] = None,
    ) -> CreditOutcome:
        """
        Add ``units`` to the balance once per ``idempotency_key``.

        The key (a payment reference) is recorded as a Transaction in the same
        atomic write as the balance change. A second call with the same key is
        a no-op that returns the current balance with ``applied=False``.
        """
        if units < 0:
            raise InvalidInput("units must not be negative", {"units": units})

        transaction = {
            "reference": idempotency_key,
            "org_id": org_id,
            "bundle_id": bundle_id,
            "amount": amount,
            "units": units,
            "status": "success",
            "gateway_response": gateway_response,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        new_balance = self.organizations.credit_once(
            org_id,
            units,
            amount,
            transaction,
            self.transactions.table_name,
        )

        if new_balance is None:
            balance = self.get_balance(org_id)
            logger.info(
                "ledger.credit_already_applied",
                extra={"org_id": org_id, "reference": idempotency_key, "balance": balance},
            )
            return CreditOutcome(balance=balance, applied=False)

        logger.info(
            "ledger.credited",
            extra={
                "org_id": org_id,
                "reference": idempotency_key,
                "units": units,
                "balance_after": new_balance,
            },
        )
        return CreditOutcome(balance=new_balance, applied=True)
