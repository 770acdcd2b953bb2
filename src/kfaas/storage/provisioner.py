from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import cast

import structlog

from kfaas.core.errors import UnsupportedInputProviderError, UntrustedProviderError
from kfaas.domain.models import DEFAULT_PROVIDER, MinIOProvider, Service, StorageIOConfig
from kfaas.storage.refs import (
    INPUT_KINDS,
    ProviderKind,
    ProviderRef,
    StoragePath,
    parse_provider_ref,
    split_path,
)
from kfaas.storage.targets import NotificationTarget, StorageTargetResolver

logger = structlog.get_logger()


@dataclass(frozen=True)
class EnabledNotification:
    target: NotificationTarget
    path: StoragePath


@dataclass
class StorageProvisionResult:
    """Side effects applied for one service."""

    inputs: list[ProviderRef] = field(default_factory=list)
    outputs: list[ProviderRef] = field(default_factory=list)
    notifications: list[EnabledNotification] = field(default_factory=list)


class StorageProvisioner:
    """Creates the buckets, folders and trigger subscriptions a service's bindings need.

    Inputs are provisioned strictly before outputs so that an output failure can
    disable the input notifications already enabled in the same request. Rolling
    back the workload itself is the caller's job.
    """

    def __init__(
        self,
        platform_minio: MinIOProvider,
        *,
        resolver: StorageTargetResolver | None = None,
    ) -> None:
        self._platform_minio = platform_minio
        self._resolver = resolver or StorageTargetResolver()

    async def provision(self, service: Service) -> StorageProvisionResult:
        result = StorageProvisionResult()
        arn = service.minio_webhook_arn()
        try:
            for binding in service.input:
                await self._provision_input(service, binding, arn, result)
            for binding in service.output:
                await self._provision_output(service, binding, result)
        except (Exception, asyncio.CancelledError):
            await self.disable_notifications(result.notifications, arn)
            raise
        return result

    async def _provision_input(
        self,
        service: Service,
        binding: StorageIOConfig,
        arn: str,
        result: StorageProvisionResult,
    ) -> None:
        ref = parse_provider_ref(binding.provider)
        if ref.kind not in INPUT_KINDS:
            raise UnsupportedInputProviderError(ref.raw_kind)

        if ref.kind is ProviderKind.WEBDAV:
            # Pulled at invocation time, no bucket or notification to set up.
            result.inputs.append(ref)
            return

        config = self._resolver.lookup(ref, service.storage_providers)
        if ref.id != DEFAULT_PROVIDER and not self._platform_minio.is_same_endpoint(config):
            raise UntrustedProviderError(ref.id, config.endpoint)

        target = cast(NotificationTarget, self._resolver.build(ref, config))
        await target.create_bucket_or_container(binding.path)

        path = split_path(binding.path)
        if await target.enable_notification(path, arn):
            result.notifications.append(EnabledNotification(target=target, path=path))
        result.inputs.append(ref)

    async def _provision_output(
        self,
        service: Service,
        binding: StorageIOConfig,
        result: StorageProvisionResult,
    ) -> None:
        ref = parse_provider_ref(binding.provider)
        target = self._resolver.resolve(ref, service.storage_providers)
        await target.create_bucket_or_container(binding.path)
        result.outputs.append(ref)

    async def disable_notifications(
        self, notifications: list[EnabledNotification], arn: str
    ) -> None:
        """Best-effort compensation: failures are logged, never raised."""
        for enabled in reversed(notifications):
            try:
                await enabled.target.disable_notification(enabled.path, arn)
            except Exception as exc:
                logger.error(
                    "notification_rollback_failed",
                    bucket=enabled.path.bucket,
                    error=str(exc),
                )
