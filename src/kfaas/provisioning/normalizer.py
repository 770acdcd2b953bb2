"""
Service normalization: defaults, reserved labels, the platform MinIO provider and
the access token. Pure apart from token generation; downstream components (the
workload scheduler) remain authoritative for resource quantities.
"""

from __future__ import annotations

import secrets

from kfaas.core.errors import UnsupportedInputProviderError
from kfaas.domain.models import (
    DEFAULT_PROVIDER,
    LogLevel,
    MinIOProvider,
    Service,
    StorageProviders,
)
from kfaas.storage.refs import INPUT_KINDS, parse_provider_ref

DEFAULT_MEMORY = "256Mi"
DEFAULT_CPU = "0.2"
DEFAULT_LOG_LEVEL = LogLevel.INFO

SERVICE_LABEL = "kfaas_service"
APPLICATION_ID_LABEL = "applicationId"
QUEUE_LABEL = "queue"
VO_LABEL = "vo"
ROOT_QUEUE = "root"
PLATFORM_QUEUE = "kfaas-queue"

TOKEN_BYTES = 32


def generate_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def queue_path(service_name: str) -> str:
    return f"{ROOT_QUEUE}.{PLATFORM_QUEUE}.{service_name}"


def normalize_service(service: Service, platform_minio: MinIOProvider) -> Service:
    """Apply defaults and platform-owned values to ``service`` in place."""
    if not service.memory:
        service.memory = DEFAULT_MEMORY
    if not service.cpu:
        service.cpu = DEFAULT_CPU

    level = (service.log_level or "").upper()
    service.log_level = level if level in LogLevel.__members__ else DEFAULT_LOG_LEVEL.value

    if service.labels is None:
        service.labels = {}
    service.labels[SERVICE_LABEL] = service.name
    service.labels[APPLICATION_ID_LABEL] = service.name
    service.labels[QUEUE_LABEL] = queue_path(service.name)
    if service.vo:
        service.labels[VO_LABEL] = service.vo

    if service.annotations is None:
        service.annotations = {}

    # A caller-supplied "default" entry is always replaced: the platform's own
    # object store is the only trusted default.
    if service.storage_providers is None:
        service.storage_providers = StorageProviders()
    if service.storage_providers.minio is None:
        service.storage_providers.minio = {}
    service.storage_providers.minio[DEFAULT_PROVIDER] = platform_minio.model_copy()

    service.token = generate_token()
    return service


def validate_input_kinds(service: Service) -> None:
    """Reject input bindings whose provider kind cannot deliver triggers.

    Runs before anything is created, so an invalid input kind leaves no workload,
    webhook or bucket behind.
    """
    for binding in service.input:
        ref = parse_provider_ref(binding.provider)
        if ref.kind not in INPUT_KINDS:
            raise UnsupportedInputProviderError(ref.raw_kind)
