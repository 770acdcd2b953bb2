from kfaas.domain.models import (
    DEFAULT_PROVIDER,
    LogLevel,
    MinIOProvider,
    OnedataProvider,
    S3Provider,
    Service,
    StorageIOConfig,
    StorageProviders,
    WebDavProvider,
)

__all__ = [
    "DEFAULT_PROVIDER",
    "LogLevel",
    "MinIOProvider",
    "OnedataProvider",
    "S3Provider",
    "Service",
    "StorageIOConfig",
    "StorageProviders",
    "WebDavProvider",
]
