"""Root test configuration and shared fakes."""

import logging
from typing import Any

import pytest
import structlog

from kfaas.domain.models import MinIOProvider, S3Provider


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


class FakeS3Client:
    """In-memory stand-in for S3BucketClient, one per provider endpoint."""

    def __init__(self, endpoint: str | None = None) -> None:
        self.endpoint = endpoint
        self.buckets: set[str] = set()
        self.objects: list[tuple[str, str]] = []
        self.notifications: dict[str, dict[str, Any]] = {}
        self.fail_create_bucket: Exception | None = None

    async def create_bucket(self, bucket: str) -> bool:
        if self.fail_create_bucket is not None:
            raise self.fail_create_bucket
        if bucket in self.buckets:
            return False
        self.buckets.add(bucket)
        return True

    async def put_empty_object(self, bucket: str, key: str) -> None:
        if (bucket, key) not in self.objects:
            self.objects.append((bucket, key))

    async def get_notification_config(self, bucket: str) -> dict[str, Any]:
        config = self.notifications.get(bucket, {})
        return {key: [dict(item) for item in value] for key, value in config.items()}

    async def put_notification_config(self, bucket: str, config: dict[str, Any]) -> None:
        self.notifications[bucket] = config

    def subscriptions(self, bucket: str) -> list[dict[str, Any]]:
        return self.notifications.get(bucket, {}).get("QueueConfigurations", [])


class FakeS3Factory:
    """Hands out one FakeS3Client per endpoint, so tests can inspect each store."""

    def __init__(self) -> None:
        self.clients: dict[str | None, FakeS3Client] = {}

    def __call__(self, provider: MinIOProvider | S3Provider) -> FakeS3Client:
        if provider.endpoint not in self.clients:
            self.clients[provider.endpoint] = FakeS3Client(provider.endpoint)
        return self.clients[provider.endpoint]


@pytest.fixture
def platform_minio() -> MinIOProvider:
    return MinIOProvider(
        endpoint="http://minio.minio:9000",
        region="us-east-1",
        access_key="minio",
        secret_key="minio123",
        verify=True,
    )


@pytest.fixture
def s3_factory() -> FakeS3Factory:
    return FakeS3Factory()
