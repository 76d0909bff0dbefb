"""
Error types raised by the SMS credit services.

Every business error carries a stable ``code``, a human readable ``message``
and a ``context`` dict with the structured data a caller needs to act on it
(e.g. the shortfall for an insufficient balance). Handlers turn them into
HTTP responses via ``status_code`` and ``to_dict()``.
"""

from typing import Any, Dict, Optional


class SmsCreditsError(Exception):
    """Base class for business errors in this package."""

    code = "ERROR"
    status_code = 400

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.code, "message": self.message}
        body.update(self.context)
        return body


class InvalidRequest(SmsCreditsError):
    code = "invalid_request"


# Calculator arguments are validated with the same error kind.
InvalidInput = InvalidRequest


class NoValidRecipients(SmsCreditsError):
    code = "no_valid_recipients"

    def __init__(self, invalid_numbers: int):
        super().__init__(
            "No valid phone numbers provided.",
            {"invalid_numbers": invalid_numbers},
        )
        self.invalid_numbers = invalid_numbers


class InsufficientBalance(SmsCreditsError):
    code = "insufficient_balance"
    status_code = 402

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        self.shortfall = max(required - available, 0)
        super().__init__(
            f"You need {required} credits but only have {available}. "
            "Please buy more credits to send this message.",
            {
                "required": required,
                "available": available,
                "shortfall": self.shortfall,
            },
        )


class GatewayFailure(SmsCreditsError):
    code = "gateway_failure"
    status_code = 502

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message, {"detail": detail})
        self.detail = detail


class VerificationFailed(SmsCreditsError):
    code = "verification_failed"

    def __init__(self, reference: str, status: Optional[str], message: Optional[str] = None):
        super().__init__(
            message or f"Payment {reference} was not successful (status: {status}).",
            {"reference": reference, "status": status},
        )
        self.reference = reference
        self.status = status


class UnknownBundle(SmsCreditsError):
    code = "unknown_bundle"

    def __init__(self, bundle_id: Optional[str]):
        super().__init__(f"Unknown SMS bundle: {bundle_id!r}", {"bundle_id": bundle_id})
        self.bundle_id = bundle_id


class OrganizationNotFound(SmsCreditsError):
    code = "organization_not_found"
    status_code = 404

    def __init__(self, org_id: Optional[str]):
        super().__init__("Organization not found", {"org_id": org_id})
        self.org_id = org_id


class DuplicateReference(SmsCreditsError):
    """A transaction with this reference is already stored."""

    code = "duplicate_reference"
    status_code = 409

    def __init__(self, reference: str):
        super().__init__(f"Transaction {reference} already exists", {"reference": reference})
        self.reference = reference


class InvalidSignature(SmsCreditsError):
    code = "invalid_signature"
    status_code = 401

    def __init__(self):
        super().__init__("Webhook signature verification failed")
