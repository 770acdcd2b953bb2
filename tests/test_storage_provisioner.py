"""Tests for bucket, folder and notification provisioning."""

import asyncio

import pytest

from kfaas.clients.base import PermanentHTTPError
from kfaas.core.errors import (
    ProviderNotDefinedError,
    StorageBackendError,
    UnsupportedInputProviderError,
    UntrustedProviderError,
)
from kfaas.domain.models import Service
from kfaas.provisioning.normalizer import normalize_service
from kfaas.storage.onedata import CDMIBadRequestError
from kfaas.storage.provisioner import StorageProvisioner
from kfaas.storage.targets import StorageTargetResolver

ARN = "arn:minio:sqs:us-east-1:svc:webhook"
PLATFORM = "http://minio.minio:9000"


class FakeCDMIClient:
    def __init__(self, error: Exception | None = None) -> None:
        self.containers: list[tuple[str, bool]] = []
        self.error = error

    async def create_container(self, path: str, create_parents: bool = False) -> None:
        self.containers.append((path, create_parents))
        if self.error is not None:
            raise self.error


def make_service(platform_minio, **fields):
    service = Service.model_validate({"name": "svc", **fields})
    return normalize_service(service, platform_minio)


def make_provisioner(platform_minio, s3_factory, cdmi=None):
    cdmi = cdmi or FakeCDMIClient()
    resolver = StorageTargetResolver(
        s3_client_factory=s3_factory,
        cdmi_client_factory=lambda provider: cdmi,
    )
    return StorageProvisioner(platform_minio, resolver=resolver)


@pytest.mark.asyncio
async def test_input_creates_bucket_folder_and_notification(platform_minio, s3_factory):
    service = make_service(
        platform_minio, input=[{"provider": "minio", "path": "in-bucket/incoming"}]
    )
    provisioner = make_provisioner(platform_minio, s3_factory)

    result = await provisioner.provision(service)

    minio = s3_factory.clients[PLATFORM]
    assert minio.buckets == {"in-bucket"}
    assert minio.objects == [("in-bucket", "incoming/")]
    assert minio.subscriptions("in-bucket") == [
        {
            "QueueArn": ARN,
            "Events": ["s3:ObjectCreated:*"],
            "Filter": {"Key": {"FilterRules": [{"Name": "prefix", "Value": "incoming/"}]}},
        }
    ]
    assert len(result.notifications) == 1
    assert [str(ref) for ref in result.inputs] == ["minio.default"]


@pytest.mark.asyncio
async def test_bucket_without_folder_has_unfiltered_subscription(platform_minio, s3_factory):
    service = make_service(platform_minio, input=[{"provider": "minio", "path": "/in-bucket/"}])
    provisioner = make_provisioner(platform_minio, s3_factory)

    await provisioner.provision(service)

    minio = s3_factory.clients[PLATFORM]
    assert minio.objects == []
    assert minio.subscriptions("in-bucket") == [
        {"QueueArn": ARN, "Events": ["s3:ObjectCreated:*"]}
    ]


@pytest.mark.asyncio
async def test_repeated_request_is_idempotent(platform_minio, s3_factory):
    fields = {"input": [{"provider": "minio", "path": "in-bucket/incoming"}]}
    provisioner = make_provisioner(platform_minio, s3_factory)

    await provisioner.provision(make_service(platform_minio, **fields))
    second = await provisioner.provision(make_service(platform_minio, **fields))

    minio = s3_factory.clients[PLATFORM]
    assert minio.objects == [("in-bucket", "incoming/")]
    assert len(minio.subscriptions("in-bucket")) == 1
    assert second.notifications == []


@pytest.mark.asyncio
async def test_existing_subscriptions_are_preserved(platform_minio, s3_factory):
    other = {"QueueArn": "arn:minio:sqs:us-east-1:other:webhook", "Events": ["s3:ObjectCreated:*"]}
    minio = s3_factory(platform_minio)
    minio.notifications["in-bucket"] = {"QueueConfigurations": [other]}
    service = make_service(platform_minio, input=[{"provider": "minio", "path": "in-bucket"}])

    await make_provisioner(platform_minio, s3_factory).provision(service)

    queues = minio.subscriptions("in-bucket")
    assert queues[0] == other
    assert queues[1]["QueueArn"] == ARN


@pytest.mark.asyncio
async def test_webdav_input_has_no_side_effects(platform_minio, s3_factory):
    service = make_service(platform_minio, input=[{"provider": "webdav.dav", "path": "folder"}])

    result = await make_provisioner(platform_minio, s3_factory).provision(service)

    assert [str(ref) for ref in result.inputs] == ["webdav.dav"]
    assert s3_factory.clients == {}


@pytest.mark.asyncio
async def test_unsupported_input_kind(platform_minio, s3_factory):
    service = make_service(platform_minio, input=[{"provider": "s3", "path": "bucket"}])

    with pytest.raises(UnsupportedInputProviderError):
        await make_provisioner(platform_minio, s3_factory).provision(service)

    assert s3_factory.clients == {}


@pytest.mark.asyncio
async def test_input_provider_not_defined(platform_minio, s3_factory):
    service = make_service(platform_minio, input=[{"provider": "minio.other", "path": "bucket"}])

    with pytest.raises(ProviderNotDefinedError, match='"minio.other" is not defined'):
        await make_provisioner(platform_minio, s3_factory).provision(service)


@pytest.mark.asyncio
async def test_untrusted_minio_input(platform_minio, s3_factory):
    service = make_service(
        platform_minio,
        storage_providers={
            "minio": {
                "other": {
                    "endpoint": "http://elsewhere:9000",
                    "access_key": "minio",
                    "secret_key": "minio123",
                }
            }
        },
        input=[{"provider": "minio.other", "path": "bucket"}],
    )

    with pytest.raises(UntrustedProviderError) as exc_info:
        await make_provisioner(platform_minio, s3_factory).provision(service)

    assert exc_info.value.status_code == 400
    assert s3_factory.clients == {}


@pytest.mark.asyncio
async def test_non_default_minio_with_platform_config_is_trusted(platform_minio, s3_factory):
    service = make_service(
        platform_minio,
        storage_providers={"minio": {"alias": platform_minio.model_dump()}},
        input=[{"provider": "minio.alias", "path": "bucket"}],
    )

    await make_provisioner(platform_minio, s3_factory).provision(service)

    assert s3_factory.clients[PLATFORM].buckets == {"bucket"}


@pytest.mark.asyncio
async def test_s3_output_creates_bucket_and_folder(platform_minio, s3_factory):
    service = make_service(
        platform_minio,
        storage_providers={
            "s3": {"prov1": {"access_key": "ak", "secret_key": "sk", "region": "eu-west-1"}}
        },
        output=[{"provider": "s3.prov1", "path": "out-bucket/results"}],
    )

    result = await make_provisioner(platform_minio, s3_factory).provision(service)

    s3 = s3_factory.clients[None]
    assert s3.buckets == {"out-bucket"}
    assert s3.objects == [("out-bucket", "results/")]
    assert s3.notifications == {}
    assert [str(ref) for ref in result.outputs] == ["s3.prov1"]


@pytest.mark.asyncio
async def test_output_failure_disables_input_notifications(platform_minio, s3_factory):
    service = make_service(
        platform_minio,
        input=[{"provider": "minio", "path": "in-bucket/incoming"}],
        output=[{"provider": "s3.prov1", "path": "out-bucket"}],
    )

    with pytest.raises(ProviderNotDefinedError):
        await make_provisioner(platform_minio, s3_factory).provision(service)

    minio = s3_factory.clients[PLATFORM]
    assert minio.subscriptions("in-bucket") == []
    assert None not in s3_factory.clients


@pytest.mark.asyncio
async def test_input_failure_disables_earlier_notifications(platform_minio, s3_factory):
    service = make_service(
        platform_minio,
        input=[
            {"provider": "minio", "path": "first"},
            {"provider": "minio.missing", "path": "second"},
        ],
    )

    with pytest.raises(ProviderNotDefinedError):
        await make_provisioner(platform_minio, s3_factory).provision(service)

    assert s3_factory.clients[PLATFORM].subscriptions("first") == []


@pytest.mark.asyncio
async def test_cancellation_disables_notifications(platform_minio, s3_factory):
    class CancellingCDMI(FakeCDMIClient):
        async def create_container(self, path, create_parents=False):
            raise asyncio.CancelledError()

    service = make_service(
        platform_minio,
        storage_providers={"onedata": {"od": {"oneprovider_host": "op", "token": "t", "space": "s"}}},
        input=[{"provider": "minio", "path": "in-bucket"}],
        output=[{"provider": "onedata.od", "path": "out"}],
    )

    with pytest.raises(asyncio.CancelledError):
        await make_provisioner(platform_minio, s3_factory, CancellingCDMI()).provision(service)

    assert s3_factory.clients[PLATFORM].subscriptions("in-bucket") == []


@pytest.mark.asyncio
async def test_rollback_errors_are_swallowed(platform_minio, s3_factory):
    service = make_service(
        platform_minio,
        input=[{"provider": "minio", "path": "in-bucket"}],
        output=[{"provider": "s3.missing", "path": "out"}],
    )
    minio = s3_factory(platform_minio)

    async def broken_get(bucket):
        raise StorageBackendError("unreachable")

    provisioner = make_provisioner(platform_minio, s3_factory)
    original_put = minio.put_notification_config

    async def put_then_break(bucket, config):
        await original_put(bucket, config)
        minio.get_notification_config = broken_get

    minio.put_notification_config = put_then_break

    with pytest.raises(ProviderNotDefinedError):
        await provisioner.provision(service)


@pytest.mark.asyncio
async def test_onedata_output_creates_container_with_parents(platform_minio, s3_factory):
    cdmi = FakeCDMIClient()
    service = make_service(
        platform_minio,
        storage_providers={
            "onedata": {"od": {"oneprovider_host": "op.example", "token": "t", "space": "space"}}
        },
        output=[{"provider": "onedata.od", "path": "/results/run/"}],
    )

    await make_provisioner(platform_minio, s3_factory, cdmi).provision(service)

    assert cdmi.containers == [("space/results/run", True)]


@pytest.mark.asyncio
async def test_onedata_bad_request_is_tolerated(platform_minio, s3_factory):
    cdmi = FakeCDMIClient(error=CDMIBadRequestError("exists"))
    service = make_service(
        platform_minio,
        storage_providers={"onedata": {"od": {"oneprovider_host": "op", "token": "t", "space": "s"}}},
        output=[{"provider": "onedata.od", "path": "out"}],
    )

    result = await make_provisioner(platform_minio, s3_factory, cdmi).provision(service)

    assert [str(ref) for ref in result.outputs] == ["onedata.od"]


@pytest.mark.asyncio
async def test_webdav_output_only_checks_definition(platform_minio, s3_factory):
    defined = make_service(
        platform_minio,
        storage_providers={"webdav": {"dav": {"hostname": "dav.example"}}},
        output=[{"provider": "webdav.dav", "path": "out"}],
    )
    undefined = make_service(platform_minio, output=[{"provider": "webdav.dav", "path": "out"}])
    provisioner = make_provisioner(platform_minio, s3_factory)

    await provisioner.provision(defined)
    with pytest.raises(ProviderNotDefinedError):
        await provisioner.provision(undefined)


@pytest.mark.asyncio
async def test_unknown_output_kind_is_not_defined(platform_minio, s3_factory):
    service = make_service(platform_minio, output=[{"provider": "dcache.x", "path": "out"}])

    with pytest.raises(ProviderNotDefinedError, match='"dcache.x"'):
        await make_provisioner(platform_minio, s3_factory).provision(service)


@pytest.mark.asyncio
async def test_bucket_creation_error_propagates(platform_minio, s3_factory):
    minio = s3_factory(platform_minio)
    minio.fail_create_bucket = StorageBackendError("denied")
    service = make_service(platform_minio, input=[{"provider": "minio", "path": "bucket"}])

    with pytest.raises(StorageBackendError):
        await make_provisioner(platform_minio, s3_factory).provision(service)


@pytest.mark.asyncio
async def test_onedata_other_errors_are_fatal(platform_minio, s3_factory):
    cdmi = FakeCDMIClient(error=PermanentHTTPError("forbidden", status_code=403))
    service = make_service(
        platform_minio,
        storage_providers={"onedata": {"od": {"oneprovider_host": "op", "token": "t", "space": "s"}}},
        input=[{"provider": "minio", "path": "in-bucket"}],
        output=[{"provider": "onedata.od", "path": "out"}],
    )

    with pytest.raises(StorageBackendError) as exc_info:
        await make_provisioner(platform_minio, s3_factory, cdmi).provision(service)

    assert exc_info.value.details == {"provider_kind": "onedata", "provider_id": "od"}
    assert s3_factory.clients[PLATFORM].subscriptions("in-bucket") == []


@pytest.mark.asyncio
async def test_invalid_s3_endpoint_is_a_storage_error(platform_minio):
    service = make_service(
        platform_minio,
        storage_providers={
            "s3": {"p": {"access_key": "ak", "secret_key": "sk", "endpoint": "not a url"}}
        },
        output=[{"provider": "s3.p", "path": "out-bucket"}],
    )

    with pytest.raises(StorageBackendError, match="not a url"):
        await StorageProvisioner(platform_minio).provision(service)
