"""S3-compatible object store client.

Reads recognition result documents through boto3 against any
S3-compatible endpoint (e.g. the GCS XML interoperability endpoint).
Absent keys are reported as None rather than errors: result objects
become visible some time after the recognition operation reports done.
"""

from __future__ import annotations

import logging
import os
import re

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from transcription_orchestrator.utils.errors import StorageError

logger = logging.getLogger(__name__)

_STORE_URI_PATTERN = re.compile(r"^[a-z][a-z0-9+.-]*://([^/]+)/?(.*)$")
_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


def parse_store_uri(uri: str) -> tuple[str, str]:
    """Split ``scheme://bucket/key`` into ``(bucket, key)``.

    The key may be empty or end with "/" when the URI names a prefix.

    Raises:
        StorageError: If the URI is not of the expected form.
    """
    match = _STORE_URI_PATTERN.match(uri or "")
    if not match:
        raise StorageError(f"Invalid object store URI: '{uri}'", operation="parse")
    return match.group(1), match.group(2)


class ObjectStoreClient:
    """S3-compatible client for reading result objects.

    Reads configuration from environment variables:
        STORE_ENDPOINT, STORE_ACCESS_KEY_ID, STORE_SECRET_ACCESS_KEY,
        STORE_REGION
    """

    def __init__(
        self,
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        region_name: str | None = None,
    ) -> None:
        self.endpoint_url = endpoint_url or os.environ.get("STORE_ENDPOINT", "")
        self.access_key_id = access_key_id or os.environ.get(
            "STORE_ACCESS_KEY_ID", ""
        )
        self.secret_access_key = secret_access_key or os.environ.get(
            "STORE_SECRET_ACCESS_KEY", ""
        )
        self.region_name = region_name or os.environ.get("STORE_REGION", "auto")

        if not self.endpoint_url:
            raise StorageError("STORE_ENDPOINT is required", operation="init")

        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint_url,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            region_name=self.region_name,
        )

    def get_object(self, bucket: str, key: str) -> bytes | None:
        """Download an object by exact key.

        Args:
            bucket: Bucket (container) name.
            key: Exact object key.

        Returns:
            Raw bytes of the object, or None if the key does not exist yet.

        Raises:
            StorageError: For any failure other than a missing key.
        """
        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()
        except ClientError as exc:
            error_code = exc.response.get("Error", {}).get("Code", "Unknown")
            if error_code in _MISSING_KEY_CODES:
                return None
            raise StorageError(
                f"Failed to fetch object '{bucket}/{key}': {error_code}",
                operation="get_object",
            ) from exc
        except BotoCoreError as exc:
            raise StorageError(
                f"Failed to fetch object '{bucket}/{key}': {exc}",
                operation="get_object",
            ) from exc

    def list_keys(self, bucket: str, prefix: str) -> list[str]:
        """List every key under a prefix, following continuation tokens.

        Raises:
            StorageError: If listing fails.
        """
        keys: list[str] = []
        kwargs: dict = {"Bucket": bucket, "Prefix": prefix}
        try:
            while True:
                response = self._client.list_objects_v2(**kwargs)
                keys.extend(item["Key"] for item in response.get("Contents", []))
                if not response.get("IsTruncated"):
                    break
                kwargs["ContinuationToken"] = response["NextContinuationToken"]
        except ClientError as exc:
            error_code = exc.response.get("Error", {}).get("Code", "Unknown")
            raise StorageError(
                f"Failed to list '{bucket}/{prefix}': {error_code}",
                operation="list_objects",
            ) from exc
        except BotoCoreError as exc:
            raise StorageError(
                f"Failed to list '{bucket}/{prefix}': {exc}",
                operation="list_objects",
            ) from exc
        return keys
