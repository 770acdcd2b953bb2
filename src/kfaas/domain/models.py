from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator

DEFAULT_PROVIDER = "default"
PROVIDER_SEPARATOR = "."


class LogLevel(StrEnum):
    """Log levels understood by the function supervisor."""

    NOTSET = "NOTSET"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class MinIOProvider(BaseModel):
    endpoint: str
    region: str = "us-east-1"
    access_key: str = ""
    secret_key: str = Field(default="", repr=False)
    verify: bool = True

    def is_same_endpoint(self, other: MinIOProvider) -> bool:
        """Trust boundary check: same server reached with the same credentials.

        Compared field by field on the configuration's identity rather than on
        model equality, so unrelated fields added later do not change who is trusted.
        """
        return (
            self.endpoint == other.endpoint
            and self.region == other.region
            and self.verify == other.verify
            and self.access_key == other.access_key
            and self.secret_key == other.secret_key
        )


class S3Provider(BaseModel):
    access_key: str = ""
    secret_key: str = Field(default="", repr=False)
    region: str = "us-east-1"
    endpoint: str | None = None


class OnedataProvider(BaseModel):
    oneprovider_host: str
    token: str = Field(default="", repr=False)
    space: str


class WebDavProvider(BaseModel):
    hostname: str
    login: str = ""
    password: str = Field(default="", repr=False)


class StorageProviders(BaseModel):
    minio: dict[str, MinIOProvider] | None = None
    s3: dict[str, S3Provider] | None = None
    onedata: dict[str, OnedataProvider] | None = None
    webdav: dict[str, WebDavProvider] | None = None

    @field_validator("minio", mode="before")
    @classmethod
    def _drop_caller_default(cls, value: Any) -> Any:
        # The platform store is always injected as "default" later on.
        if isinstance(value, dict) and DEFAULT_PROVIDER in value:
            value = {key: entry for key, entry in value.items() if key != DEFAULT_PROVIDER}
        return value


class StorageIOConfig(BaseModel):
    """A binding between a provider reference (``kind`` or ``kind.id``) and a path."""

    provider: str
    path: str
    suffix: list[str] = Field(default_factory=list)
    prefix: list[str] = Field(default_factory=list)


class ServiceEnvironment(BaseModel):
    variables: dict[str, str] = Field(default_factory=dict)


class Service(BaseModel):
    """Declarative definition of a service to provision."""

    name: str = Field(min_length=1)
    image: str = ""
    script: str = ""
    alpine: bool = False
    memory: str = ""
    cpu: str = ""
    log_level: str = ""
    environment: ServiceEnvironment = Field(default_factory=ServiceEnvironment)
    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None
    vo: str = ""
    storage_providers: StorageProviders | None = None
    input: list[StorageIOConfig] = Field(default_factory=list)
    output: list[StorageIOConfig] = Field(default_factory=list)
    # Generated by the normalizer, never accepted from the request body.
    token: str = Field(default="", repr=False, exclude=True)

    def minio_webhook_arn(self) -> str:
        """ARN of the webhook target registered for this service on the platform MinIO."""
        region = "us-east-1"
        if self.storage_providers and self.storage_providers.minio:
            default = self.storage_providers.minio.get(DEFAULT_PROVIDER)
            if default is not None:
                region = default.region
        return f"arn:minio:sqs:{region}:{self.name}:webhook"
