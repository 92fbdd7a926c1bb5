"""S3 utilities for storing and retrieving device health documents."""

import json
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

from .config import settings
from .logging_utils import setup_logger

logger = setup_logger(__name__)

# Initialize S3 client
s3_client = boto3.client("s3")

# Error codes S3 returns when a conditional write loses to an existing object
CONDITIONAL_WRITE_CONFLICTS = {"PreconditionFailed", "ConditionalRequestConflict"}


def _get_bucket_name(bucket: Optional[str] = None) -> str:
    """Resolve the bucket name, defaulting to the configured health bucket.

    Raises:
        ValueError: If no bucket name is configured.
    """
    bucket_name = bucket or settings.HEALTH_DATA_BUCKET_NAME
    if not bucket_name:
        raise ValueError("HEALTH_DATA_BUCKET_NAME must be set in environment variables")
    return bucket_name


def upload_json_to_s3(
    data: Dict[str, Any],
    key: str,
    bucket: Optional[str] = None,
    metadata: Optional[Dict[str, str]] = None,
) -> str:
    """Upload JSON data to S3, replacing any existing object.

    Args:
        data: Dictionary to upload as JSON.
        key: S3 object key (path).
        bucket: Bucket name (defaults to HEALTH_DATA_BUCKET_NAME).
        metadata: Optional metadata to attach to the object.

    Returns:
        S3 object key.

    Raises:
        ClientError: If S3 upload fails.
    """
    bucket_name = _get_bucket_name(bucket)

    try:
        extra_args = {}
        if metadata:
            extra_args["Metadata"] = {k: str(v) for k, v in metadata.items()}

        s3_client.put_object(
            Bucket=bucket_name,
            Key=key,
            Body=json.dumps(data, default=str),
            ContentType="application/json",
            **extra_args,
        )

        logger.debug(f"Uploaded JSON to s3://{bucket_name}/{key}")
        return key
    except ClientError as e:
        logger.error(f"Failed to upload to S3: {e}")
        raise


def create_json_in_s3(data: Dict[str, Any], key: str, bucket: Optional[str] = None) -> bool:
    """Create a JSON object only if the key does not exist yet.

    Uses an S3 conditional write (``If-None-Match: *``) so concurrent
    writers cannot both succeed.

    Returns:
        True if the object was created, False if it already existed.

    Raises:
        ClientError: For any failure other than the key already existing.
    """
    bucket_name = _get_bucket_name(bucket)

    try:
        s3_client.put_object(
            Bucket=bucket_name,
            Key=key,
            Body=json.dumps(data, default=str),
            ContentType="application/json",
            IfNoneMatch="*",
        )
    except ClientError as e:
        if e.response["Error"]["Code"] in CONDITIONAL_WRITE_CONFLICTS:
            logger.debug(f"Object already exists: s3://{bucket_name}/{key}")
            return False
        logger.error(f"Failed to create object in S3: {e}")
        raise

    logger.debug(f"Created JSON at s3://{bucket_name}/{key}")
    return True


def download_json_from_s3(key: str, bucket: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Download JSON data from S3.

    Args:
        key: S3 object key (path).
        bucket: Bucket name (defaults to HEALTH_DATA_BUCKET_NAME).

    Returns:
        Parsed JSON dictionary, or None if the key does not exist.

    Raises:
        ClientError: If S3 fails for any reason other than a missing key.
    """
    bucket_name = _get_bucket_name(bucket)

    try:
        response = s3_client.get_object(Bucket=bucket_name, Key=key)
    except ClientError as e:
        if e.response["Error"]["Code"] in ("NoSuchKey", "404"):
            logger.debug(f"Key not found in S3: s3://{bucket_name}/{key}")
            return None
        logger.error(f"Failed to download from S3: {e}")
        raise

    body = response["Body"].read().decode("utf-8")
    return json.loads(body)


def list_s3_objects(prefix: str, bucket: Optional[str] = None) -> List[str]:
    """List every S3 object key under a prefix, in ascending key order.

    Follows continuation tokens until the listing is exhausted.

    Raises:
        ClientError: If the listing fails.
    """
    bucket_name = _get_bucket_name(bucket)
    keys: List[str] = []
    request: Dict[str, Any] = {"Bucket": bucket_name, "Prefix": prefix}

    while True:
        try:
            response = s3_client.list_objects_v2(**request)
        except ClientError as e:
            logger.error(f"Failed to list S3 objects: {e}")
            raise

        keys.extend(obj["Key"] for obj in response.get("Contents", []))

        if not response.get("IsTruncated"):
            return keys
        request["ContinuationToken"] = response["NextContinuationToken"]
