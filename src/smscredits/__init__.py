"""
Receipts SMS Credits
====================

Shared library for the SMS credit accounting and delivery service behind the
receipts product. Organizations buy SMS credit bundles through Paystack and
spend them sending receipt notifications through the QuickSMS gateway.

Modules under this package:
- units.py        → billing-unit calculator and phone-number handling
- ledger.py       → per-organization credit balance (conditional debit, idempotent credit)
- sms_gateway.py  → QuickSMS HTTP client (one batched call per send)
- dispatch.py     → send orchestration and price quotes
- paystack.py     → Paystack HTTP client and webhook signatures
- reconcile.py    → payment verification → ledger credit, exactly once per reference
- bundles.py      → static SMS credit price list
- stores.py       → DynamoDB stores (organizations, transactions, SMS logs)
- config.py       → environment configuration
- secrets.py      → AWS Secrets Manager integration
- logger.py       → structured JSON logging
- wiring.py       → per-container construction of the services

Environment variables expected:
  • ORGANIZATIONS_TABLE        - DynamoDB table holding organization records
  • TRANSACTIONS_TABLE         - DynamoDB table of payment transactions (key: reference)
  • SMS_LOGS_TABLE             - DynamoDB table of append-only SMS audit entries
  • PROVIDER_SECRET_NAME       - Secrets Manager secret with QuickSMS/Paystack keys
  • SMS_GATEWAY_URL            - QuickSMS API base URL (optional)
  • PAYSTACK_BASE_URL          - Paystack API base URL (optional)
  • PAYSTACK_CALLBACK_URL      - Where Paystack redirects after checkout (optional)
  • APP_BASE_URL               - Front-end URL used for post-payment redirects (optional)
  • GATEWAY_TIMEOUT_SECONDS    - Timeout for outbound gateway calls (default: 15)
  • LOG_LEVEL                  - Log verbosity (default: INFO)
"""

__version__ = "1.0.0"
__author__ = "Receipts Engineering"
__license__ = "MIT"

__all__ = ["__version__", "__author__"]
