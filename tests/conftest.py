import threading

import pytest

from smscredits.dispatch import SmsDispatcher
from smscredits.errors import OrganizationNotFound
from smscredits.ledger import CreditLedger
from smscredits.reconcile import PaymentReconciler
from smscredits.sms_gateway import GatewayResult

# In-memory stand-ins for the DynamoDB stores. The lock plays the part of
# DynamoDB's per-item conditional write.


class MemoryOrganizationStore:
    def __init__(self):
        self.records = {}
        self.transactions = {}
        self._lock = threading.Lock()

    def find_by_id(self, org_id):
        record = self.records.get(org_id)
        return dict(record) if record else None

    def save(self, record):
        self.records[record["org_id"]] = dict(record)

    def debit_if_available(self, org_id, units):
        with self._lock:
            record = self.records.get(org_id)
            if record is None or record.get("sms_balance", 0) < units:
                return None
            record["sms_balance"] -= units
            return record["sms_balance"]

    def credit_once(self, org_id, units, amount, transaction, transactions_table):
        with self._lock:
            if transaction["reference"] in self.transactions:
                return None
            record = self.records.get(org_id)
            if record is None:
                raise OrganizationNotFound(org_id)
            self.transactions[transaction["reference"]] = dict(transaction)
            record["sms_balance"] = record.get("sms_balance", 0) + units
            record["total_purchased"] = record.get("total_purchased", 0) + units
            record["total_spent"] = record.get("total_spent", 0) + amount
            return record["sms_balance"]


class MemoryTransactionStore:
    table_name = "transactions"

    def __init__(self, organizations):
        self._organizations = organizations

    def find_by_reference(self, reference):
        return self._organizations.transactions.get(reference)


class MemorySmsLogStore:
    def __init__(self):
        self.entries = []

    def append_many(self, entries):
        self.entries.extend(entries)


class StubGateway:
    def __init__(self, result=None):
        self.result = result or GatewayResult(True, '{"status":"success"}', None, 200)
        self.calls = []

    def send(self, recipients, message, sender_id):
        self.calls.append({"recipients": list(recipients), "message": message, "sender_id": sender_id})
        return self.result


class StubPaystack:
    def __init__(self):
        self.payments = {}
        self.verify_calls = []
        self.initialized = []
        self.valid_signature = True

    def add_payment(self, reference, org_id="org-1", bundle_id="starter", amount=4000, status="success", units=None):
        metadata = {"organizationId": org_id, "bundleId": bundle_id}
        if units is not None:
            metadata["units"] = units
        self.payments[reference] = {
            "reference": reference,
            "status": status,
            "amount": amount,
            "metadata": metadata,
        }

    def verify_transaction(self, reference):
        self.verify_calls.append(reference)
        return self.payments[reference]

    def initialize_transaction(self, email, amount, metadata):
        self.initialized.append({"email": email, "amount": amount, "metadata": metadata})
        return {"authorization_url": "https://checkout.paystack.com/abc", "access_code": "abc", "reference": "ref-new"}

    def verify_signature(self, raw_body, signature):
        return self.valid_signature


@pytest.fixture
def organizations():
    store = MemoryOrganizationStore()
    store.save({
        "org_id": "org-1",
        "sms_balance": 0,
        "sms_sender_id": "ACMESHOP",
        "email": "billing@acme.test",
    })
    return store


@pytest.fixture
def ledger(organizations):
    return CreditLedger(organizations, MemoryTransactionStore(organizations))


@pytest.fixture
def sms_logs():
    return MemorySmsLogStore()


@pytest.fixture
def gateway():
    return StubGateway()


@pytest.fixture
def dispatcher(ledger, gateway, sms_logs):
    return SmsDispatcher(ledger, gateway, sms_logs)


@pytest.fixture
def paystack():
    return StubPaystack()


@pytest.fixture
def reconciler(ledger, paystack):
    return PaymentReconciler(ledger, paystack)


def set_balance(organizations, balance, org_id="org-1"):
    organizations.records[org_id]["sms_balance"] = balance
