"""
Pytest configuration and fixtures.
"""

import io
import os

os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

import pytest
from botocore.exceptions import ClientError

from common import s3_utils
from common.models import Customer, DeviceHealthSettings, LoyaltyCard
from common.store import HealthStore


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeS3Client:
    """In-memory stand-in for the boto3 S3 client calls the store makes."""

    def __init__(self, page_size: int = 1000):
        self.objects = {}
        self.page_size = page_size
        self.failing_prefixes = set()

    def _check(self, key: str, operation: str):
        if any(key.startswith(prefix) for prefix in self.failing_prefixes):
            raise _client_error("InternalError", operation)

    def put_object(self, Bucket, Key, Body, ContentType=None, Metadata=None, IfNoneMatch=None):
        self._check(Key, "PutObject")
        if IfNoneMatch == "*" and (Bucket, Key) in self.objects:
            raise _client_error("PreconditionFailed", "PutObject")
        data = Body.encode("utf-8") if isinstance(Body, str) else Body
        self.objects[(Bucket, Key)] = data
        return {"ETag": '"fake"'}

    def get_object(self, Bucket, Key):
        self._check(Key, "GetObject")
        if (Bucket, Key) not in self.objects:
            raise _client_error("NoSuchKey", "GetObject")
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)])}

    def list_objects_v2(self, Bucket, Prefix="", ContinuationToken=None):
        self._check(Prefix, "ListObjectsV2")
        keys = sorted(key for bucket, key in self.objects if bucket == Bucket and key.startswith(Prefix))
        start = int(ContinuationToken or 0)
        page = keys[start : start + self.page_size]
        response = {"Contents": [{"Key": key} for key in page], "IsTruncated": False}
        if start + self.page_size < len(keys):
            response["IsTruncated"] = True
            response["NextContinuationToken"] = str(start + self.page_size)
        if not page:
            del response["Contents"]
        return response

    def keys(self, prefix: str = ""):
        return sorted(key for _, key in self.objects if key.startswith(prefix))


@pytest.fixture
def s3(monkeypatch):
    client = FakeS3Client()
    monkeypatch.setattr(s3_utils, "s3_client", client)
    return client


@pytest.fixture
def store(s3):
    return HealthStore()


@pytest.fixture
def customer():
    return Customer(id="cust-1", email="mario@example.com", name="Mario Rossi", centro_id="centro-1")


@pytest.fixture
def member(store, customer):
    """A customer with an active loyalty card at centro-1."""
    store.put_customer(customer)
    store.put_loyalty_card(
        LoyaltyCard(id="card-1", customer_id=customer.id, centro_id="centro-1", card_number="LC-0001")
    )
    return customer


@pytest.fixture
def discount_settings(store):
    health_settings = DeviceHealthSettings(auto_discount_on_critical=True)
    store.put_settings("centro-1", health_settings)
    return health_settings
