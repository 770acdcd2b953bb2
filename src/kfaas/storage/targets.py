"""
Storage targets: one variant per provider kind.

A binding's provider reference is resolved once into a target; the provisioner
then only talks to the target's capabilities (bucket/container creation, and
notifications for MinIO) instead of switching on kind names.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol

import structlog
from circuitbreaker import CircuitBreakerError
from pydantic import BaseModel

from kfaas.clients.base import PermanentHTTPError, RetryableHTTPError
from kfaas.core.errors import ProviderNotDefinedError, StorageBackendError
from kfaas.domain.models import (
    MinIOProvider,
    OnedataProvider,
    S3Provider,
    StorageProviders,
    WebDavProvider,
)
from kfaas.storage.onedata import CDMIBadRequestError, CDMIClient
from kfaas.storage.refs import ProviderKind, ProviderRef, StoragePath, split_path, trim_path
from kfaas.storage.s3 import S3BucketClient

logger = structlog.get_logger()

OBJECT_CREATED_EVENT = "s3:ObjectCreated:*"


class StorageTarget(Protocol):
    kind: ProviderKind
    provider_id: str

    async def create_bucket_or_container(self, path: str) -> None: ...


class NotificationTarget(Protocol):
    kind: ProviderKind
    provider_id: str

    async def create_bucket_or_container(self, path: str) -> None: ...

    async def enable_notification(self, path: StoragePath, arn: str) -> bool: ...

    async def disable_notification(self, path: StoragePath, arn: str) -> None: ...


def _filter_prefix(queue_config: dict[str, Any]) -> str | None:
    rules = queue_config.get("Filter", {}).get("Key", {}).get("FilterRules", [])
    for rule in rules:
        if str(rule.get("Name", "")).lower() == "prefix":
            return rule.get("Value")
    return None


def _is_subscription(queue_config: dict[str, Any], arn: str, prefix: str | None) -> bool:
    return queue_config.get("QueueArn") == arn and _filter_prefix(queue_config) == prefix


class S3Target:
    """Bucket + folder creation on an S3-compatible provider."""

    def __init__(self, kind: ProviderKind, provider_id: str, client: S3BucketClient) -> None:
        self.kind = kind
        self.provider_id = provider_id
        self._client = client

    async def create_bucket_or_container(self, path: str) -> None:
        target = split_path(path)
        if await self._client.create_bucket(target.bucket):
            logger.info("bucket_created", provider=self.kind, bucket=target.bucket)
        else:
            logger.info("bucket_already_exists", provider=self.kind, bucket=target.bucket)

        if target.folder_key:
            await self._client.put_empty_object(target.bucket, target.folder_key)
            logger.info("folder_created", bucket=target.bucket, key=target.folder_key)


class MinIOTarget(S3Target):
    """S3 target that can also route "object created" events to the webhook channel."""

    def __init__(self, provider_id: str, client: S3BucketClient) -> None:
        super().__init__(ProviderKind.MINIO, provider_id, client)

    async def enable_notification(self, path: StoragePath, arn: str) -> bool:
        """Subscribe ``arn`` to object creation under ``path``.

        Subscriptions of other services are kept untouched. Returns False when an
        identical subscription (same ARN and prefix) is already present.
        """
        config = await self._client.get_notification_config(path.bucket)
        queues = config.setdefault("QueueConfigurations", [])
        if any(_is_subscription(queue, arn, path.folder_key) for queue in queues):
            logger.info("notification_already_enabled", bucket=path.bucket, prefix=path.folder_key)
            return False

        subscription: dict[str, Any] = {"QueueArn": arn, "Events": [OBJECT_CREATED_EVENT]}
        if path.folder_key:
            subscription["Filter"] = {
                "Key": {"FilterRules": [{"Name": "prefix", "Value": path.folder_key}]}
            }
        queues.append(subscription)
        await self._client.put_notification_config(path.bucket, config)
        logger.info("notification_enabled", bucket=path.bucket, prefix=path.folder_key)
        return True

    async def disable_notification(self, path: StoragePath, arn: str) -> None:
        config = await self._client.get_notification_config(path.bucket)
        queues = config.get("QueueConfigurations", [])
        kept = [queue for queue in queues if not _is_subscription(queue, arn, path.folder_key)]
        if len(kept) == len(queues):
            return
        config["QueueConfigurations"] = kept
        await self._client.put_notification_config(path.bucket, config)
        logger.info("notification_disabled", bucket=path.bucket, prefix=path.folder_key)


class OnedataTarget:
    def __init__(self, provider_id: str, provider: OnedataProvider, client: CDMIClient) -> None:
        self.kind = ProviderKind.ONEDATA
        self.provider_id = provider_id
        self._provider = provider
        self._client = client

    async def create_bucket_or_container(self, path: str) -> None:
        container = f"{self._provider.space}/{trim_path(path)}"
        try:
            await self._client.create_container(container, create_parents=True)
        except CDMIBadRequestError as exc:
            # Usually means the container already exists.
            logger.info("onedata_container_not_created", container=container, error=str(exc))
        except (PermanentHTTPError, RetryableHTTPError, CircuitBreakerError) as exc:
            raise StorageBackendError(
                f"error connecting to Onedata's Oneprovider "
                f'"{self._provider.oneprovider_host}": {exc}',
                {"provider_kind": self.kind.value, "provider_id": self.provider_id},
            ) from exc
        else:
            logger.info("onedata_container_created", container=container)


class WebDavTarget:
    """WebDAV storage is read and written at invocation time; nothing to provision."""

    def __init__(self, provider_id: str) -> None:
        self.kind = ProviderKind.WEBDAV
        self.provider_id = provider_id

    async def create_bucket_or_container(self, path: str) -> None:
        logger.debug("webdav_provisioning_skipped", provider_id=self.provider_id, path=path)


S3ClientFactory = Callable[[MinIOProvider | S3Provider], S3BucketClient]
CDMIClientFactory = Callable[[OnedataProvider], CDMIClient]


def default_cdmi_client(
    provider: OnedataProvider,
    *,
    timeout: float = 30.0,
    max_retries: int = 3,
    backoff_factor: float = 2.0,
) -> CDMIClient:
    return CDMIClient(
        provider.oneprovider_host,
        provider.token,
        timeout=timeout,
        max_retries=max_retries,
        backoff_factor=backoff_factor,
    )


class StorageTargetResolver:
    """Turns provider references into storage targets."""

    def __init__(
        self,
        *,
        s3_client_factory: S3ClientFactory = S3BucketClient.from_provider,
        cdmi_client_factory: CDMIClientFactory = default_cdmi_client,
    ) -> None:
        self._s3_client_factory = s3_client_factory
        self._cdmi_client_factory = cdmi_client_factory
        self._builders: dict[ProviderKind, Callable[[str, Any], StorageTarget]] = {
            ProviderKind.MINIO: self._build_minio,
            ProviderKind.S3: self._build_s3,
            ProviderKind.ONEDATA: self._build_onedata,
            ProviderKind.WEBDAV: self._build_webdav,
        }

    def lookup(self, ref: ProviderRef, providers: StorageProviders | None) -> BaseModel:
        """Configuration of the referenced provider, or ProviderNotDefinedError."""
        if ref.kind is None or providers is None:
            raise ProviderNotDefinedError(ref.raw_kind, ref.id)
        configs = getattr(providers, ref.kind.value) or {}
        config = configs.get(ref.id)
        if config is None:
            raise ProviderNotDefinedError(ref.raw_kind, ref.id)
        return config

    def build(self, ref: ProviderRef, config: BaseModel) -> StorageTarget:
        if ref.kind is None:
            raise ProviderNotDefinedError(ref.raw_kind, ref.id)
        return self._builders[ref.kind](ref.id, config)

    def resolve(self, ref: ProviderRef, providers: StorageProviders | None) -> StorageTarget:
        return self.build(ref, self.lookup(ref, providers))

    def _build_minio(self, provider_id: str, config: MinIOProvider) -> MinIOTarget:
        return MinIOTarget(provider_id, self._s3_client_factory(config))

    def _build_s3(self, provider_id: str, config: S3Provider) -> S3Target:
        return S3Target(ProviderKind.S3, provider_id, self._s3_client_factory(config))

    def _build_onedata(self, provider_id: str, config: OnedataProvider) -> OnedataTarget:
        return OnedataTarget(provider_id, config, self._cdmi_client_factory(config))

    def _build_webdav(self, provider_id: str, config: WebDavProvider) -> WebDavTarget:
        return WebDavTarget(provider_id)
