"""
Application settings using Pydantic.

Provides environment-based configuration loading with KFAAS_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from kfaas.domain.models import MinIOProvider


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="KFAAS_",
    )

    # API
    api_prefix: str = "/system"
    cors_origins: list[str] = []

    # Platform service (used to build the webhook delivery endpoint)
    service_name: str = "kfaas"
    namespace: str = "kfaas"
    service_port: int = 8080

    # Workloads
    workload_backend: str = "kube"  # kube, memory
    services_namespace: str = "kfaas-svc"
    kubeconfig: str | None = None
    kube_context: str | None = None

    # Platform MinIO (the only trusted trigger source)
    minio_endpoint: str = "http://minio.minio:9000"
    minio_region: str = "us-east-1"
    minio_access_key: str = "minio"
    minio_secret_key: str = "minio123"
    minio_verify: bool = True

    # OIDC (for API authentication and VO checks)
    oidc_enable: bool = False
    oidc_issuer: str = "https://aai.egi.eu/auth/realms/egi"
    oidc_subject: str = ""
    oidc_groups: list[str] = []
    oidc_signing_algorithms: list[str] = ["RS256", "RS384", "RS512", "ES256", "ES384", "ES512"]

    # Yunikorn scheduling queues
    yunikorn_enable: bool = False
    yunikorn_namespace: str = "yunikorn"
    yunikorn_configmap: str = "yunikorn-configs"
    yunikorn_config_file: str = "queues.yaml"

    # HTTP client settings
    http_timeout: int = 30
    http_max_retries: int = 3
    http_retry_backoff_factor: float = 0.5

    def minio_provider(self) -> MinIOProvider:
        """Platform MinIO provider, the only trusted ``default`` entry."""
        return MinIOProvider(
            endpoint=self.minio_endpoint,
            region=self.minio_region,
            access_key=self.minio_access_key,
            secret_key=self.minio_secret_key,
            verify=self.minio_verify,
        )

    @property
    def webhook_base_url(self) -> str:
        return f"http://{self.service_name}.{self.namespace}:{self.service_port}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
