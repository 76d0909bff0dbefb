import json

import boto3

from smscredits.logger import get_logger

logger = get_logger("secrets")

EXPECTED_FIELDS = ("quicksms_public_key", "paystack_secret_key")


def get_provider_secrets(secret_name: str, region_name: str = "us-east-1") -> dict:
    """
    Fetch the SMS gateway and payment gateway credentials from AWS Secrets Manager.

    Expects the secret value to be a JSON object, e.g.:

        {
          "quicksms_public_key": "...",
          "paystack_secret_key": "sk_live_..."
        }

    Missing fields are logged but not fatal: the SMS client reports an
    unconfigured gateway as a failed send, and Paystack calls fail loudly.
    """
    logger.info(
        "Fetching provider secrets from Secrets Manager",
        extra={"secret_name": secret_name, "region": region_name},
    )

    client = boto3.client("secretsmanager", region_name=region_name)

    resp = client.get_secret_value(SecretId=secret_name)
    secret_str = resp.get("SecretString")

    if not secret_str:
        msg = f"Secret '{secret_name}' has no SecretString payload"
        logger.error(msg)
        raise RuntimeError(msg)

    try:
        data = json.loads(secret_str)
    except json.JSONDecodeError as e:
        logger.error(
            "SecretString is not valid JSON",
            extra={"secret_name": secret_name, "error": str(e)},
        )
        raise

    for field in EXPECTED_FIELDS:
        if not data.get(field):
            logger.warning(
                "Provider secret missing expected field",
                extra={"secret_name": secret_name, "field": field},
            )

    return data
