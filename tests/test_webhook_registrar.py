"""Tests for MinIO webhook registration."""

from unittest.mock import create_autospec

import pytest

from minio.minioadmin import MinioAdmin

from kfaas.core.errors import WebhookRegistrationError
from kfaas.domain.models import MinIOProvider
from kfaas.webhooks.registrar import MinIOAdminClient, WebhookRegistrar


class FakeAdminClient:
    def __init__(self, provider, fail_on=None):
        self.provider = provider
        self.fail_on = fail_on
        self.calls = []

    async def register_webhook(self, name, token, endpoint):
        self.calls.append(("register_webhook", name, token, endpoint))
        if self.fail_on == "register_webhook":
            raise RuntimeError("config set failed")

    async def restart_server(self):
        self.calls.append(("restart_server",))
        if self.fail_on == "restart_server":
            raise RuntimeError("restart failed")


def make_registrar(platform_minio, fail_on=None):
    clients = []

    def factory(provider):
        client = FakeAdminClient(provider, fail_on)
        clients.append(client)
        return client

    registrar = WebhookRegistrar(
        platform_minio, "http://kfaas.kfaas:8080/", admin_client_factory=factory
    )
    return registrar, clients


def test_endpoint_for(platform_minio):
    registrar, _ = make_registrar(platform_minio)

    assert registrar.endpoint_for("svc") == "http://kfaas.kfaas:8080/job/svc"


@pytest.mark.asyncio
async def test_register_sets_webhook_then_restarts(platform_minio):
    registrar, clients = make_registrar(platform_minio)

    await registrar.register("svc", "secret-token")

    assert clients[0].provider == platform_minio
    assert clients[0].calls == [
        ("register_webhook", "svc", "secret-token", "http://kfaas.kfaas:8080/job/svc"),
        ("restart_server",),
    ]


@pytest.mark.asyncio
async def test_register_uses_given_default_provider(platform_minio):
    registrar, clients = make_registrar(platform_minio)
    default = platform_minio.model_copy(update={"region": "eu-west-1"})

    await registrar.register("svc", "secret-token", default)

    assert clients[0].provider.region == "eu-west-1"


@pytest.mark.asyncio
@pytest.mark.parametrize("fail_on", ["register_webhook", "restart_server"])
async def test_failures_raise_registration_error(platform_minio, fail_on):
    registrar, _ = make_registrar(platform_minio, fail_on=fail_on)

    with pytest.raises(WebhookRegistrationError) as exc_info:
        await registrar.register("svc", "secret-token")

    assert exc_info.value.status_code == 500
    assert "secret-token" not in exc_info.value.message


@pytest.mark.asyncio
async def test_invalid_endpoint_raises_registration_error():
    registrar = WebhookRegistrar(MinIOProvider(endpoint="minio"), "http://kfaas:8080")

    with pytest.raises(WebhookRegistrationError, match="not valid"):
        await registrar.register("svc", "secret-token")


@pytest.mark.asyncio
async def test_factory_errors_raise_registration_error(platform_minio):
    def factory(provider):
        raise TypeError("unexpected argument")

    registrar = WebhookRegistrar(platform_minio, "http://kfaas:8080", admin_client_factory=factory)

    with pytest.raises(WebhookRegistrationError, match="not valid"):
        await registrar.register("svc", "secret-token")


class TestMinIOAdminClient:
    def test_builds_admin_from_provider(self):
        admin_factory = create_autospec(MinioAdmin)
        provider = MinIOProvider(
            endpoint="https://minio.example:9000",
            region="eu-west-1",
            access_key="ak",
            secret_key="sk",
            verify=False,
        )

        MinIOAdminClient(provider, admin_factory=admin_factory)

        kwargs = admin_factory.call_args.kwargs
        assert kwargs["endpoint"] == "minio.example:9000"
        assert kwargs["region"] == "eu-west-1"
        assert kwargs["secure"] is True
        assert kwargs["cert_check"] is False

    def test_builds_real_sdk_admin(self, platform_minio):
        client = MinIOAdminClient(platform_minio)

        assert isinstance(client._admin, MinioAdmin)

    @pytest.mark.asyncio
    async def test_register_webhook_sets_notify_target(self, platform_minio):
        admin_factory = create_autospec(MinioAdmin)
        client = MinIOAdminClient(platform_minio, admin_factory=admin_factory)

        await client.register_webhook("svc", "tok", "http://kfaas:8080/job/svc")
        await client.restart_server()

        admin = admin_factory.return_value
        admin.config_set.assert_called_once_with(
            "notify_webhook:svc",
            {"endpoint": "http://kfaas:8080/job/svc", "auth_token": "tok"},
        )
        admin.service_restart.assert_called_once_with()
