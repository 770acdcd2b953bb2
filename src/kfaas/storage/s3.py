from __future__ import annotations

from typing import Any, Callable

import aioboto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from kfaas.core.errors import StorageBackendError
from kfaas.domain.models import MinIOProvider, S3Provider

logger = structlog.get_logger()

# botocore raises ValueError for malformed endpoint URLs while building the client.
S3_ERRORS = (ClientError, BotoCoreError, ValueError)
BUCKET_EXISTS_CODES = frozenset({"BucketAlreadyExists", "BucketAlreadyOwnedByYou"})
# Keys accepted by PutBucketNotificationConfiguration.
NOTIFICATION_KEYS = (
    "TopicConfigurations",
    "QueueConfigurations",
    "LambdaFunctionConfigurations",
    "EventBridgeConfiguration",
)
US_EAST_1 = "us-east-1"


class S3BucketClient:
    """Bucket-level operations against an S3-compatible endpoint (MinIO or AWS S3)."""

    def __init__(
        self,
        *,
        access_key: str,
        secret_key: str,
        region: str = US_EAST_1,
        endpoint: str | None = None,
        verify: bool = True,
        session_factory: Callable[..., Any] = aioboto3.Session,
    ) -> None:
        self._endpoint = endpoint
        self._region = region
        self._verify = verify
        self._session = session_factory(
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
        )

    @classmethod
    def from_provider(cls, provider: MinIOProvider | S3Provider) -> S3BucketClient:
        return cls(
            access_key=provider.access_key,
            secret_key=provider.secret_key,
            region=provider.region,
            endpoint=provider.endpoint,
            verify=getattr(provider, "verify", True),
        )

    def _client(self) -> Any:
        return self._session.client("s3", endpoint_url=self._endpoint, verify=self._verify)

    async def create_bucket(self, bucket: str) -> bool:
        """Create ``bucket``. Returns False when it already exists."""
        params: dict[str, Any] = {"Bucket": bucket}
        if self._region and self._region != US_EAST_1:
            params["CreateBucketConfiguration"] = {"LocationConstraint": self._region}
        try:
            async with self._client() as client:
                await client.create_bucket(**params)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in BUCKET_EXISTS_CODES:
                return False
            raise StorageBackendError(
                f"error creating bucket {bucket}: {exc}", {"bucket": bucket}
            ) from exc
        except (BotoCoreError, ValueError) as exc:
            raise StorageBackendError(
                f"error creating bucket {bucket}: {exc}", {"bucket": bucket}
            ) from exc
        return True

    async def put_empty_object(self, bucket: str, key: str) -> None:
        try:
            async with self._client() as client:
                await client.put_object(Bucket=bucket, Key=key, Body=b"")
        except S3_ERRORS as exc:
            raise StorageBackendError(
                f'error creating folder "{key}" in bucket "{bucket}": {exc}',
                {"bucket": bucket, "key": key},
            ) from exc

    async def get_notification_config(self, bucket: str) -> dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.get_bucket_notification_configuration(Bucket=bucket)
        except S3_ERRORS as exc:
            raise StorageBackendError(
                f'error getting bucket "{bucket}" notifications: {exc}', {"bucket": bucket}
            ) from exc
        return {key: response[key] for key in NOTIFICATION_KEYS if key in response}

    async def put_notification_config(self, bucket: str, config: dict[str, Any]) -> None:
        try:
            async with self._client() as client:
                await client.put_bucket_notification_configuration(
                    Bucket=bucket, NotificationConfiguration=config
                )
        except S3_ERRORS as exc:
            raise StorageBackendError(
                f"error writing bucket notification configuration: {exc}", {"bucket": bucket}
            ) from exc
