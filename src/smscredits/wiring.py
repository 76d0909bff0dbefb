"""
Builds the services once per Lambda container.

Handlers call these at import time so boto3/httpx clients and the secret
lookup are reused across invocations.
"""

from typing import Optional

import boto3

from smscredits.config import Config, load_config
from smscredits.dispatch import SmsDispatcher
from smscredits.ledger import CreditLedger
from smscredits.logger import get_logger
from smscredits.paystack import PaystackClient
from smscredits.reconcile import PaymentReconciler
from smscredits.secrets import get_provider_secrets
from smscredits.sms_gateway import SmsGatewayClient
from smscredits.stores import OrganizationStore, SmsLogStore, TransactionStore

logger = get_logger("wiring")


def build_ledger(conf: Config) -> CreditLedger:
    ddb = boto3.client("dynamodb", region_name=conf.region)
    return CreditLedger(
        OrganizationStore(conf.organizations_table, ddb),
        TransactionStore(conf.transactions_table, ddb),
    )


def build_sms_gateway(conf: Config, secrets: Optional[dict] = None) -> SmsGatewayClient:
    if secrets is None:
        secrets = get_provider_secrets(conf.provider_secret_name, conf.region)
    return SmsGatewayClient(
        secrets.get("quicksms_public_key"),
        conf.sms_gateway_url,
        timeout=conf.gateway_timeout_seconds,
    )


def build_dispatcher() -> SmsDispatcher:
    conf = load_config()
    ledger = build_ledger(conf)
    dispatcher = SmsDispatcher(
        ledger,
        build_sms_gateway(conf),
        SmsLogStore(conf.sms_logs_table, boto3.client("dynamodb", region_name=conf.region)),
    )
    logger.info("wiring.dispatcher_ready")
    return dispatcher


def build_reconciler() -> PaymentReconciler:
    conf = load_config()
    secrets = get_provider_secrets(conf.provider_secret_name, conf.region)
    paystack = PaystackClient(
        secrets.get("paystack_secret_key"),
        conf.paystack_base_url,
        callback_url=conf.paystack_callback_url,
        timeout=conf.gateway_timeout_seconds,
    )
    reconciler = PaymentReconciler(build_ledger(conf), paystack)
    logger.info("wiring.reconciler_ready")
    return reconciler
