from __future__ import annotations

from functools import partial

from fastapi import Depends

from kfaas.auth.oidc import OIDCManager
from kfaas.config import Settings, get_settings
from kfaas.provisioning.orchestrator import ProvisioningOrchestrator
from kfaas.scheduling.yunikorn import YunikornQueueRegistrar
from kfaas.storage.provisioner import StorageProvisioner
from kfaas.storage.targets import StorageTargetResolver, default_cdmi_client
from kfaas.webhooks.registrar import WebhookRegistrar
from kfaas.workloads.base import WorkloadBackend
from kfaas.workloads.kube import KubeWorkloadBackend
from kfaas.workloads.memory import InMemoryWorkloadBackend

_oidc_manager: OIDCManager | None = None
_workload_backend: WorkloadBackend | None = None


def get_oidc_manager(settings: Settings = Depends(get_settings)) -> OIDCManager:  # noqa: B008
    # Shared so the verified-identity cache survives across requests.
    global _oidc_manager

    if _oidc_manager is None:
        _oidc_manager = OIDCManager(
            issuer=settings.oidc_issuer,
            subject=settings.oidc_subject,
            groups=list(settings.oidc_groups),
            algorithms=list(settings.oidc_signing_algorithms),
            timeout=settings.http_timeout,
        )
    return _oidc_manager


def get_workload_backend(settings: Settings = Depends(get_settings)) -> WorkloadBackend:  # noqa: B008
    global _workload_backend

    if _workload_backend is not None:
        return _workload_backend

    if settings.workload_backend == "memory":
        _workload_backend = InMemoryWorkloadBackend()
    elif settings.workload_backend == "kube":
        _workload_backend = KubeWorkloadBackend(
            namespace=settings.services_namespace,
            kubeconfig=settings.kubeconfig,
            context=settings.kube_context,
        )
    else:
        raise ValueError(f"Unsupported workload backend: {settings.workload_backend}")
    return _workload_backend


def build_target_resolver(settings: Settings) -> StorageTargetResolver:
    cdmi_client_factory = partial(
        default_cdmi_client,
        timeout=settings.http_timeout,
        max_retries=settings.http_max_retries,
        backoff_factor=settings.http_retry_backoff_factor,
    )
    return StorageTargetResolver(cdmi_client_factory=cdmi_client_factory)


def get_orchestrator(
    settings: Settings = Depends(get_settings),  # noqa: B008
    backend: WorkloadBackend = Depends(get_workload_backend),  # noqa: B008
    oidc_manager: OIDCManager = Depends(get_oidc_manager),  # noqa: B008
) -> ProvisioningOrchestrator:
    platform_minio = settings.minio_provider()
    queue_registrar = None
    if settings.yunikorn_enable:
        queue_registrar = YunikornQueueRegistrar(
            namespace=settings.yunikorn_namespace,
            configmap=settings.yunikorn_configmap,
            config_file=settings.yunikorn_config_file,
            kubeconfig=settings.kubeconfig,
            context=settings.kube_context,
        )

    return ProvisioningOrchestrator(
        platform_minio=platform_minio,
        backend=backend,
        webhook_registrar=WebhookRegistrar(platform_minio, settings.webhook_base_url),
        storage_provisioner=StorageProvisioner(
            platform_minio, resolver=build_target_resolver(settings)
        ),
        oidc_manager=oidc_manager,
        queue_registrar=queue_registrar,
    )
