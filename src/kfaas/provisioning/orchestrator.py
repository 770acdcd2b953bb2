"""
Service provisioning pipeline.

Drives one creation request through its states:

    received -> authorized -> normalized -> workload_created
             -> webhook_registered -> storage_provisioned -> complete

Once the workload exists, any failure (or cancellation of the request task) moves
the pipeline to ``aborting``: the workload is deleted, best effort, before the
original error is re-raised and the pipeline ends ``failed``. The webhook target is
left registered; the storage provisioner undoes its own notifications.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

import structlog

from kfaas.auth.oidc import OIDCManager
from kfaas.core.errors import (
    InternalProvisioningError,
    KfaasError,
    NotEnrolledError,
    ServiceConflictError,
    UnauthorizedError,
    WorkloadBackendError,
)
from kfaas.domain.models import DEFAULT_PROVIDER, MinIOProvider, Service
from kfaas.logging import bind_service_context
from kfaas.provisioning.normalizer import normalize_service, validate_input_kinds
from kfaas.storage.provisioner import StorageProvisioner, StorageProvisionResult
from kfaas.webhooks.registrar import WebhookRegistrar
from kfaas.workloads.base import WorkloadAlreadyExistsError, WorkloadBackend

logger = structlog.get_logger()


class ProvisioningState(StrEnum):
    RECEIVED = "received"
    AUTHORIZED = "authorized"
    NORMALIZED = "normalized"
    WORKLOAD_CREATED = "workload_created"
    WEBHOOK_REGISTERED = "webhook_registered"
    STORAGE_PROVISIONED = "storage_provisioned"
    COMPLETE = "complete"
    ABORTING = "aborting"
    FAILED = "failed"


class QueueRegistrar(Protocol):
    async def add_queue(self, service: Service) -> bool: ...


@dataclass
class ProvisioningResult:
    """Outcome of a provisioning run."""

    service: Service
    states: list[ProvisioningState] = field(default_factory=lambda: [ProvisioningState.RECEIVED])
    storage: StorageProvisionResult | None = None

    @property
    def state(self) -> ProvisioningState:
        return self.states[-1]

    def advance(self, state: ProvisioningState) -> None:
        self.states.append(state)
        logger.debug("provisioning_state", service=self.service.name, state=state.value)


class ProvisioningOrchestrator:
    """Creates services: authorization, normalization, workload, webhook and storage."""

    def __init__(
        self,
        *,
        platform_minio: MinIOProvider,
        backend: WorkloadBackend,
        webhook_registrar: WebhookRegistrar,
        storage_provisioner: StorageProvisioner,
        oidc_manager: OIDCManager,
        queue_registrar: QueueRegistrar | None = None,
    ) -> None:
        self._platform_minio = platform_minio
        self._backend = backend
        self._webhook_registrar = webhook_registrar
        self._storage_provisioner = storage_provisioner
        self._oidc_manager = oidc_manager
        self._queue_registrar = queue_registrar

    async def create(self, service: Service, raw_token: str | None = None) -> ProvisioningResult:
        """Provision ``service``. Raises the ``KfaasError`` that stopped the pipeline."""
        result = ProvisioningResult(service=service)
        await self.run(result, raw_token)
        return result

    async def run(self, result: ProvisioningResult, raw_token: str | None = None) -> None:
        """Drive ``result.service`` through the pipeline, recording states on ``result``."""
        service = result.service
        log = bind_service_context(service.name)

        try:
            await self._authorize(service, raw_token)
            result.advance(ProvisioningState.AUTHORIZED)

            normalize_service(service, self._platform_minio)
            validate_input_kinds(service)
            result.advance(ProvisioningState.NORMALIZED)

            await self._create_workload(service)
            result.advance(ProvisioningState.WORKLOAD_CREATED)
        except KfaasError as exc:
            result.advance(ProvisioningState.FAILED)
            log.warning("service_rejected", error=exc.message, kind=exc.kind.value)
            raise
        except asyncio.CancelledError:
            result.advance(ProvisioningState.FAILED)
            raise
        except Exception as exc:
            result.advance(ProvisioningState.FAILED)
            log.error("service_rejected", error=str(exc))
            raise _unexpected(exc, service.name) from exc

        try:
            default_minio = self._default_minio(service)
            await self._webhook_registrar.register(service.name, service.token, default_minio)
            result.advance(ProvisioningState.WEBHOOK_REGISTERED)

            result.storage = await self._storage_provisioner.provision(service)
            result.advance(ProvisioningState.STORAGE_PROVISIONED)
        except (Exception, asyncio.CancelledError) as exc:
            result.advance(ProvisioningState.ABORTING)
            log.error("service_provisioning_failed", error=str(exc), state=result.states[-2].value)
            await self._delete_workload(service.name)
            result.advance(ProvisioningState.FAILED)
            if isinstance(exc, Exception) and not isinstance(exc, KfaasError):
                raise _unexpected(exc, service.name) from exc
            raise

        await self._add_queue(service)
        result.advance(ProvisioningState.COMPLETE)
        log.info("service_created")

    async def _authorize(self, service: Service, raw_token: str | None) -> None:
        """VO membership gate. Services without a VO skip it entirely."""
        if not service.vo:
            return
        if not raw_token:
            raise UnauthorizedError("missing bearer token", {"vo": service.vo})
        if not await self._oidc_manager.user_has_vo(raw_token, service.vo):
            raise NotEnrolledError(service.vo)

    async def _create_workload(self, service: Service) -> None:
        try:
            await self._backend.create_workload(service)
        except WorkloadAlreadyExistsError as exc:
            raise ServiceConflictError(
                f'a service named "{service.name}" already exists',
                {"service": service.name},
            ) from exc
        except Exception as exc:
            raise WorkloadBackendError(
                f"error creating the service's workload: {exc}",
                {"service": service.name},
            ) from exc

    async def _delete_workload(self, name: str) -> None:
        try:
            await self._backend.delete_workload(name)
        except Exception as exc:
            logger.error("workload_rollback_failed", service=name, error=str(exc))
        else:
            logger.info("workload_rolled_back", service=name)

    async def _add_queue(self, service: Service) -> None:
        if self._queue_registrar is None:
            return
        try:
            await self._queue_registrar.add_queue(service)
        except Exception as exc:
            logger.error("yunikorn_queue_failed", service=service.name, error=str(exc))

    def _default_minio(self, service: Service) -> MinIOProvider:
        if service.storage_providers and service.storage_providers.minio:
            return service.storage_providers.minio.get(DEFAULT_PROVIDER, self._platform_minio)
        return self._platform_minio


def _unexpected(exc: Exception, service_name: str) -> InternalProvisioningError:
    return InternalProvisioningError(
        f"unexpected error provisioning the service: {exc}", {"service": service_name}
    )
