from __future__ import annotations

import asyncio
from typing import Any, Callable
from urllib.parse import urlsplit

import structlog
from minio.credentials import StaticProvider
from minio.minioadmin import MinioAdmin

from kfaas.core.errors import WebhookRegistrationError
from kfaas.domain.models import MinIOProvider

logger = structlog.get_logger()


class MinIOAdminClient:
    """Administrative operations on the platform MinIO, backed by the official SDK."""

    def __init__(
        self,
        provider: MinIOProvider,
        *,
        admin_factory: Callable[..., Any] = MinioAdmin,
    ) -> None:
        endpoint = urlsplit(provider.endpoint)
        if not endpoint.netloc:
            raise ValueError(f"invalid MinIO endpoint: {provider.endpoint!r}")
        self._admin = admin_factory(
            endpoint=endpoint.netloc,
            credentials=StaticProvider(provider.access_key, provider.secret_key),
            region=provider.region,
            secure=endpoint.scheme == "https",
            cert_check=provider.verify,
        )

    async def register_webhook(self, name: str, token: str, endpoint: str) -> None:
        """Create or replace the ``notify_webhook:<name>`` target."""
        await asyncio.to_thread(
            self._admin.config_set,
            f"notify_webhook:{name}",
            {"endpoint": endpoint, "auth_token": token},
        )

    async def restart_server(self) -> None:
        await asyncio.to_thread(self._admin.service_restart)


AdminClientFactory = Callable[[MinIOProvider], MinIOAdminClient]


class WebhookRegistrar:
    """Registers a service's delivery endpoint on the platform MinIO and reloads it."""

    def __init__(
        self,
        platform_minio: MinIOProvider,
        base_url: str,
        *,
        admin_client_factory: AdminClientFactory = MinIOAdminClient,
    ) -> None:
        self._platform_minio = platform_minio
        self._base_url = base_url.rstrip("/")
        self._admin_client_factory = admin_client_factory

    def endpoint_for(self, service_name: str) -> str:
        return f"{self._base_url}/job/{service_name}"

    async def register(
        self,
        service_name: str,
        access_token: str,
        default_provider: MinIOProvider | None = None,
    ) -> None:
        provider = default_provider or self._platform_minio
        try:
            admin = self._admin_client_factory(provider)
        except Exception as exc:
            raise WebhookRegistrationError(
                f"the provided MinIO configuration is not valid: {exc}",
                {"service": service_name},
            ) from exc

        endpoint = self.endpoint_for(service_name)
        try:
            await admin.register_webhook(service_name, access_token, endpoint)
        except Exception as exc:
            raise WebhookRegistrationError(
                f"error registering the service's webhook: {exc}",
                {"service": service_name},
            ) from exc
        logger.info("webhook_registered", service=service_name, endpoint=endpoint)

        try:
            await admin.restart_server()
        except Exception as exc:
            raise WebhookRegistrationError(
                f"error restarting the MinIO server: {exc}",
                {"service": service_name},
            ) from exc
        logger.info("minio_restarted", service=service_name)
