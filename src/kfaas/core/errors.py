"""
Error taxonomy for the provisioning pipeline.

Every failure raised by a pipeline component derives from ``KfaasError`` and carries:

- ``kind``: a member of the closed ``ErrorKind`` enumeration, used for matching
- ``status_code``: the HTTP status the API surfaces for it
- ``details``: structured context (provider kind/id, bucket, service name, ...)

Status classes:
- 400: client-caused validation and VO enrollment failures
- 401: missing or rejected credentials
- 409: service name conflict
- 500: backend, integration and identity-provider availability failures
"""

from __future__ import annotations

from enum import StrEnum
from http import HTTPStatus
from typing import Any


class ErrorKind(StrEnum):
    """Closed set of pipeline failure kinds."""

    VALIDATION = "validation"
    UNSUPPORTED_INPUT_PROVIDER = "unsupported_input_provider"
    PROVIDER_NOT_DEFINED = "provider_not_defined"
    UNTRUSTED_PROVIDER = "untrusted_provider"
    UNAUTHORIZED = "unauthorized"
    NOT_ENROLLED = "not_enrolled"
    IDENTITY_RESOLUTION = "identity_resolution"
    CONFLICT = "conflict"
    WORKLOAD_BACKEND = "workload_backend"
    WEBHOOK_REGISTRATION = "webhook_registration"
    STORAGE_BACKEND = "storage_backend"
    INTERNAL = "internal"


class KfaasError(Exception):
    """Base exception for pipeline errors with HTTP status support."""

    kind: ErrorKind = ErrorKind.VALIDATION
    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def is_client_error(self) -> bool:
        return self.status_code < HTTPStatus.INTERNAL_SERVER_ERROR


class ServiceValidationError(KfaasError):
    """Raised when the service definition is malformed."""

    kind = ErrorKind.VALIDATION
    status_code = HTTPStatus.BAD_REQUEST


class UnsupportedInputProviderError(ServiceValidationError):
    """Raised when an input binding uses a provider kind that cannot trigger services."""

    kind = ErrorKind.UNSUPPORTED_INPUT_PROVIDER

    def __init__(self, provider_kind: str):
        super().__init__(
            f'unrecognized input provider "{provider_kind}" (valid inputs are MinIO and WebDAV)',
            {"provider_kind": provider_kind},
        )


class ProviderNotDefinedError(ServiceValidationError):
    """Raised when a binding references a provider missing from storage_providers."""

    kind = ErrorKind.PROVIDER_NOT_DEFINED

    def __init__(self, provider_kind: str, provider_id: str):
        super().__init__(
            f'the StorageProvider "{provider_kind}.{provider_id}" is not defined',
            {"provider_kind": provider_kind, "provider_id": provider_id},
        )


class UntrustedProviderError(ServiceValidationError):
    """Raised when an input MinIO provider is not the platform's own object store."""

    kind = ErrorKind.UNTRUSTED_PROVIDER

    def __init__(self, provider_id: str, endpoint: str):
        super().__init__(
            f'the provided MinIO server "{endpoint}" is not the one configured in the platform',
            {"provider_kind": "minio", "provider_id": provider_id, "endpoint": endpoint},
        )


class UnauthorizedError(KfaasError):
    """Raised when a request carries no usable credentials."""

    kind = ErrorKind.UNAUTHORIZED
    status_code = HTTPStatus.UNAUTHORIZED


class NotEnrolledError(KfaasError):
    """Raised when the requester is not a member of the service's VO."""

    kind = ErrorKind.NOT_ENROLLED
    status_code = HTTPStatus.BAD_REQUEST

    def __init__(self, vo: str):
        super().__init__(f"This user isn't enrolled in the vo: {vo}", {"vo": vo})


class IdentityResolutionError(KfaasError):
    """Raised when the identity provider cannot resolve a token's identity."""

    kind = ErrorKind.IDENTITY_RESOLUTION


class ServiceConflictError(KfaasError):
    kind = ErrorKind.CONFLICT
    status_code = HTTPStatus.CONFLICT


class WorkloadBackendError(KfaasError):
    kind = ErrorKind.WORKLOAD_BACKEND


class WebhookRegistrationError(KfaasError):
    kind = ErrorKind.WEBHOOK_REGISTRATION


class StorageBackendError(KfaasError):
    """Raised when a storage backend call fails for reasons other than idempotency."""

    kind = ErrorKind.STORAGE_BACKEND


class InternalProvisioningError(KfaasError):
    """Raised in place of an unexpected exception from a pipeline component."""

    kind = ErrorKind.INTERNAL


def format_error_message(error: KfaasError) -> str:
    """Format an error message for logs and CLI display."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg
