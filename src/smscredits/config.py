import os
from typing import NamedTuple, Optional

from smscredits.logger import get_logger

logger = get_logger("config")

DEFAULT_SMS_GATEWAY_URL = "https://app.quicksms.com.gh/api"
DEFAULT_PAYSTACK_BASE_URL = "https://api.paystack.co"


class Config(NamedTuple):
    organizations_table: str
    transactions_table: str
    sms_logs_table: str
    provider_secret_name: str
    region: str
    sms_gateway_url: str
    paystack_base_url: str
    paystack_callback_url: Optional[str]
    app_base_url: str
    gateway_timeout_seconds: float


def load_config() -> Config:
    """
    Load the service configuration from environment variables.

    ORGANIZATIONS_TABLE, TRANSACTIONS_TABLE, SMS_LOGS_TABLE and
    PROVIDER_SECRET_NAME are required; everything else has a default.

    Raises RuntimeError with a clear message if something is missing/invalid.
    """
    required = {
        "ORGANIZATIONS_TABLE": os.getenv("ORGANIZATIONS_TABLE"),
        "TRANSACTIONS_TABLE": os.getenv("TRANSACTIONS_TABLE"),
        "SMS_LOGS_TABLE": os.getenv("SMS_LOGS_TABLE"),
        "PROVIDER_SECRET_NAME": os.getenv("PROVIDER_SECRET_NAME"),
    }
    missing = [name for name, value in required.items() if not value]
    if missing:
        msg = f"Missing required environment variables: {', '.join(missing)}"
        logger.error(msg)
        raise RuntimeError(msg)

    timeout_str = os.getenv("GATEWAY_TIMEOUT_SECONDS", "15")
    try:
        timeout = float(timeout_str)
    except ValueError:
        msg = (
            f"Invalid GATEWAY_TIMEOUT_SECONDS='{timeout_str}'. "
            "Must be a number of seconds."
        )
        logger.error(msg)
        raise RuntimeError(msg)

    return Config(
        organizations_table=required["ORGANIZATIONS_TABLE"],
        transactions_table=required["TRANSACTIONS_TABLE"],
        sms_logs_table=required["SMS_LOGS_TABLE"],
        provider_secret_name=required["PROVIDER_SECRET_NAME"],
        region=os.getenv("AWS_REGION", "us-east-1"),
        sms_gateway_url=os.getenv("SMS_GATEWAY_URL", DEFAULT_SMS_GATEWAY_URL).rstrip("/"),
        paystack_base_url=os.getenv("PAYSTACK_BASE_URL", DEFAULT_PAYSTACK_BASE_URL).rstrip("/"),
        paystack_callback_url=os.getenv("PAYSTACK_CALLBACK_URL") or None,
        app_base_url=os.getenv("APP_BASE_URL", "").rstrip("/"),
        gateway_timeout_seconds=timeout,
    )
