"""
Payment reconciliation: a verified Paystack payment becomes a ledger credit,
exactly once per payment reference.

The redirect callback and the ``charge.success`` webhook usually both arrive
for the same payment; whichever loses the conditional transaction insert in
the ledger reports ``already_processed``.
"""

import json
from typing import Any, Dict, NamedTuple, Optional

from smscredits.bundles import get_bundle
from smscredits.errors import (
    GatewayFailure,
    InvalidRequest,
    InvalidSignature,
    OrganizationNotFound,
    UnknownBundle,
    VerificationFailed,
)
from smscredits.logger import get_logger

logger = get_logger("reconcile")


class ReconcileOutcome(NamedTuple):
    credited: bool
    units_credited: int
    new_balance: int
    already_processed: bool
    org_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return self._asdict()


class PaymentReconciler:
    def __init__(self, ledger, paystack):
        self.ledger = ledger
        self.paystack = paystack

    def reconcile_payment(self, reference: str) -> ReconcileOutcome:
        if not reference:
            raise InvalidRequest("Payment reference is required")

        # 1) Verify with Paystack; nothing touches the ledger unless it says success
        try:
            payment = self.paystack.verify_transaction(reference)
        except GatewayFailure as e:
            logger.warning(
                "reconcile.verify_error",
                extra={"reference": reference, "detail": e.detail},
            )
            raise VerificationFailed(reference, None, f"Could not verify payment {reference}: {e.message}")

        status = payment.get("status")
        if status != "success":
            logger.info("reconcile.not_successful", extra={"reference": reference, "status": status})
            raise VerificationFailed(reference, status)

        metadata = payment.get("metadata") or {}
        if isinstance(metadata, str):
            # Paystack echoes metadata back as a string when it was sent as one.
            try:
                metadata = json.loads(metadata)
            except ValueError:
                metadata = {}
        if not isinstance(metadata, dict):
            logger.warning("reconcile.bad_metadata", extra={"reference": reference})
            metadata = {}
        org_id = metadata.get("organizationId")
        if not org_id:
            raise OrganizationNotFound(None)

        # 2) Already reconciled?
        if self.ledger.transactions.find_by_reference(reference) is not None:
            return self._already_processed(reference, org_id)

        # 3) Units come from the catalog, never from the paid amount
        bundle = get_bundle(metadata.get("bundleId"))
        if bundle is None:
            logger.warning(
                "reconcile.unknown_bundle",
                extra={"reference": reference, "bundle_id": metadata.get("bundleId")},
            )
            raise UnknownBundle(metadata.get("bundleId"))

        if metadata.get("units") is not None and metadata.get("units") != bundle.units:
            logger.warning(
                "reconcile.units_mismatch",
                extra={
                    "reference": reference,
                    "metadata_units": metadata.get("units"),
                    "bundle_units": bundle.units,
                },
            )

        paid = int(payment.get("amount") or 0)
        if paid < bundle.price_minor:
            logger.error(
                "reconcile.underpaid",
                extra={"reference": reference, "paid": paid, "expected": bundle.price_minor},
            )
            raise VerificationFailed(
                reference,
                status,
                f"Payment {reference} amount {paid} is below the {bundle.name} price.",
            )

        # 4) Credit + totals + transaction record in one atomic write
        outcome = self.ledger.credit(
            org_id,
            bundle.units,
            reference,
            amount=bundle.price,
            bundle_id=bundle.id,
            gateway_response=json.dumps(payment, default=str),
        )
        if not outcome.applied:
            return self._already_processed(reference, org_id, outcome.balance)

        logger.info(
            "reconcile.credited",
            extra={
                "reference": reference,
                "org_id": org_id,
                "bundle_id": bundle.id,
                "units": bundle.units,
                "balance_after": outcome.balance,
            },
        )
        return ReconcileOutcome(
            credited=True,
            units_credited=bundle.units,
            new_balance=outcome.balance,
            already_processed=False,
            org_id=org_id,
        )

    def _already_processed(self, reference: str, org_id: str, balance: Optional[int] = None) -> ReconcileOutcome:
        if balance is None:
            balance = self.ledger.get_balance(org_id)
        logger.info("reconcile.already_processed", extra={"reference": reference, "org_id": org_id})
        return ReconcileOutcome(
            credited=False,
            units_credited=0,
            new_balance=balance,
            already_processed=True,
            org_id=org_id,
        )

    def handle_webhook(self, raw_body: bytes, signature: Optional[str]) -> Optional[ReconcileOutcome]:
        """
        Process a Paystack webhook delivery.

        Only ``charge.success`` events are acted on, and even then the payment
        is re-verified with Paystack rather than trusting the webhook body.
        """
        if not self.paystack.verify_signature(raw_body, signature):
            logger.warning("reconcile.webhook_bad_signature")
            raise InvalidSignature()

        try:
            event = json.loads(raw_body)
        except ValueError:
            raise InvalidRequest("Webhook body is not valid JSON")
        if not isinstance(event, dict):
            raise InvalidRequest("Webhook body must be a JSON object")

        if event.get("event") != "charge.success":
            logger.info("reconcile.webhook_ignored", extra={"event": event.get("event")})
            return None

        data = event.get("data")
        if not isinstance(data, dict):
            raise InvalidRequest("Webhook data must be a JSON object")
        return self.reconcile_payment(data.get("reference"))

    def initialize_purchase(self, org_id: str, bundle_id: str) -> Dict[str, Any]:
        bundle = get_bundle(bundle_id)
        if bundle is None:
            raise UnknownBundle(bundle_id)

        organization = self.ledger.get_organization(org_id)
        email = organization.get("email")
        if not email:
            raise InvalidRequest("Organization has no billing email configured.")

        data = self.paystack.initialize_transaction(
            email,
            bundle.price,
            {"bundleId": bundle.id, "units": bundle.units, "organizationId": org_id},
        )
        return {
            "authorization_url": data.get("authorization_url"),
            "reference": data.get("reference"),
            "access_code": data.get("access_code"),
        }
