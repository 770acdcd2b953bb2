"""Tests for the pipeline error taxonomy."""

import pytest

from kfaas.core.errors import (
    ErrorKind,
    IdentityResolutionError,
    InternalProvisioningError,
    NotEnrolledError,
    ProviderNotDefinedError,
    ServiceConflictError,
    StorageBackendError,
    UnauthorizedError,
    UnsupportedInputProviderError,
    UntrustedProviderError,
    WebhookRegistrationError,
    WorkloadBackendError,
    format_error_message,
)


@pytest.mark.parametrize(
    "error,kind,status",
    [
        (UnsupportedInputProviderError("s3"), ErrorKind.UNSUPPORTED_INPUT_PROVIDER, 400),
        (ProviderNotDefinedError("s3", "prov1"), ErrorKind.PROVIDER_NOT_DEFINED, 400),
        (UntrustedProviderError("other", "http://x"), ErrorKind.UNTRUSTED_PROVIDER, 400),
        (NotEnrolledError("vo-b"), ErrorKind.NOT_ENROLLED, 400),
        (UnauthorizedError("no token"), ErrorKind.UNAUTHORIZED, 401),
        (ServiceConflictError("exists"), ErrorKind.CONFLICT, 409),
        (IdentityResolutionError("down"), ErrorKind.IDENTITY_RESOLUTION, 500),
        (WorkloadBackendError("down"), ErrorKind.WORKLOAD_BACKEND, 500),
        (WebhookRegistrationError("down"), ErrorKind.WEBHOOK_REGISTRATION, 500),
        (StorageBackendError("down"), ErrorKind.STORAGE_BACKEND, 500),
        (InternalProvisioningError("boom"), ErrorKind.INTERNAL, 500),
    ],
)
def test_kind_and_status(error, kind, status):
    assert error.kind is kind
    assert error.status_code == status
    assert error.is_client_error is (status < 500)


def test_provider_not_defined_message():
    error = ProviderNotDefinedError("s3", "prov1")

    assert error.message == 'the StorageProvider "s3.prov1" is not defined'
    assert error.details == {"provider_kind": "s3", "provider_id": "prov1"}


def test_format_error_message():
    error = StorageBackendError("cannot create bucket", {"bucket": "in"})

    assert format_error_message(error) == "cannot create bucket (bucket=in)"
