"""
DynamoDB-backed stores for organizations, payment transactions and SMS logs.

All balance mutations are single conditional writes, so concurrent Lambda
invocations can never drive a balance negative or credit one payment twice:

- debit:  UpdateItem  ... ConditionExpression "sms_balance >= :units"
- credit: TransactWriteItems = Put(transaction, attribute_not_exists(reference))
                             + Update(organization, attribute_exists(org_id))
"""

import time
import uuid
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import ClientError

from smscredits.errors import DuplicateReference, OrganizationNotFound
from smscredits.logger import get_logger

logger = get_logger("stores")

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()

BATCH_SIZE = 25
MAX_BATCH_ATTEMPTS = 5


def _to_item(record: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: _serializer.serialize(value)
        for key, value in record.items()
        if value is not None
    }


def _from_item(item: Dict[str, Any]) -> Dict[str, Any]:
    record = {key: _deserializer.deserialize(value) for key, value in item.items()}
    # Numbers come back as Decimal; every numeric attribute here is integral.
    return {
        key: int(value) if isinstance(value, Decimal) else value
        for key, value in record.items()
    }


def _error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


class OrganizationStore:
    def __init__(self, table_name: str, client=None):
        self.table_name = table_name
        self._client = client or boto3.client("dynamodb")

    def _key(self, org_id: str) -> Dict[str, Any]:
        return {"org_id": {"S": org_id}}

    def find_by_id(self, org_id: str) -> Optional[Dict[str, Any]]:
        resp = self._client.get_item(
            TableName=self.table_name,
            Key=self._key(org_id),
            ConsistentRead=True,
        )
        item = resp.get("Item")
        return _from_item(item) if item else None

    def save(self, record: Dict[str, Any]) -> None:
        self._client.put_item(TableName=self.table_name, Item=_to_item(record))

    def debit_if_available(self, org_id: str, units: int) -> Optional[int]:
        """
        Decrement the balance by ``units`` only if it holds at least that many.

        Returns the new balance, or None when the condition failed (balance too
        low, or no such organization).
        """
        try:
            resp = self._client.update_item(
                TableName=self.table_name,
                Key=self._key(org_id),
                UpdateExpression="SET sms_balance = sms_balance - :units",
                ConditionExpression="attribute_exists(org_id) AND sms_balance >= :units",
                ExpressionAttributeValues={":units": {"N": str(units)}},
                ReturnValues="UPDATED_NEW",
            )
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                return None
            raise
        return int(resp["Attributes"]["sms_balance"]["N"])

    def credit_once(
        self,
        org_id: str,
        units: int,
        amount: int,
        transaction: Dict[str, Any],
        transactions_table: str,
    ) -> Optional[int]:
        """
        Insert ``transaction`` and add ``units`` to the balance in one atomic write.

        The transaction's reference is the uniqueness key: if it already exists
        nothing is written and None is returned. Raises OrganizationNotFound if
        the organization record is missing.

        TransactWriteItems returns no attributes, so the balance reported back
        comes from a consistent read after the commit. A debit landing in
        between is already reflected in it; the stored balance itself is
        always exact.
        """
        try:
            self._client.transact_write_items(
                TransactItems=[
                    {
                        "Put": {
                            "TableName": transactions_table,
                            "Item": _to_item(transaction),
                            "ConditionExpression": "attribute_not_exists(reference)",
                        }
                    },
                    {
                        "Update": {
                            "TableName": self.table_name,
                            "Key": self._key(org_id),
                            "UpdateExpression": (
                                "SET sms_balance = if_not_exists(sms_balance, :zero) + :units, "
                                "total_purchased = if_not_exists(total_purchased, :zero) + :units, "
                                "total_spent = if_not_exists(total_spent, :zero) + :amount"
                            ),
                            "ConditionExpression": "attribute_exists(org_id)",
                            "ExpressionAttributeValues": {
                                ":zero": {"N": "0"},
                                ":units": {"N": str(units)},
                                ":amount": {"N": str(amount)},
                            },
                        }
                    },
                ]
            )
        except ClientError as e:
            if _error_code(e) != "TransactionCanceledException":
                raise
            reasons = [r.get("Code") for r in e.response.get("CancellationReasons", [])]
            if reasons and reasons[0] == "ConditionalCheckFailed":
                return None
            if len(reasons) > 1 and reasons[1] == "ConditionalCheckFailed":
                raise OrganizationNotFound(org_id)
            raise

        record = self.find_by_id(org_id) or {}
        return int(record.get("sms_balance", 0))


class TransactionStore:
    def __init__(self, table_name: str, client=None):
        self.table_name = table_name
        self._client = client or boto3.client("dynamodb")

    def find_by_reference(self, reference: str) -> Optional[Dict[str, Any]]:
        resp = self._client.get_item(
            TableName=self.table_name,
            Key={"reference": {"S": reference}},
            ConsistentRead=True,
        )
        item = resp.get("Item")
        return _from_item(item) if item else None

    def insert(self, record: Dict[str, Any]) -> None:
        """
        Store a transaction record; the reference may be written only once.

        Raises DuplicateReference if a record with the same reference exists.
        """
        try:
            self._client.put_item(
                TableName=self.table_name,
                Item=_to_item(record),
                ConditionExpression="attribute_not_exists(reference)",
            )
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                logger.info(
                    "stores.duplicate_reference",
                    extra={"reference": record.get("reference")},
                )
                raise DuplicateReference(record.get("reference"))
            raise


class SmsLogStore:
    def __init__(self, table_name: str, client=None):
        self.table_name = table_name
        self._client = client or boto3.client("dynamodb")

    def append_many(self, entries: Iterable[Dict[str, Any]]) -> None:
        """Append audit entries; each one gets a fresh log_id, nothing is overwritten."""
        requests: List[Dict[str, Any]] = [
            {"PutRequest": {"Item": _to_item({"log_id": str(uuid.uuid4()), **entry})}}
            for entry in entries
        ]
        for start in range(0, len(requests), BATCH_SIZE):
            self._write_batch(requests[start:start + BATCH_SIZE])

    def _write_batch(self, batch: List[Dict[str, Any]]) -> None:
        pending = {self.table_name: batch}
        for attempt in range(1, MAX_BATCH_ATTEMPTS + 1):
            resp = self._client.batch_write_item(RequestItems=pending)
            pending = resp.get("UnprocessedItems") or {}
            if not pending:
                return
            logger.warning(
                "stores.sms_log_unprocessed",
                extra={
                    "attempt": attempt,
                    "unprocessed": len(pending.get(self.table_name, [])),
                },
            )
            time.sleep(0.05 * (2 ** attempt))

        msg = f"Could not write {len(pending.get(self.table_name, []))} SMS log entries"
        logger.error(msg, extra={"table": self.table_name})
        raise RuntimeError(msg)
