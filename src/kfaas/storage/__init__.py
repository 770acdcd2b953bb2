from kfaas.storage.provisioner import StorageProvisioner, StorageProvisionResult
from kfaas.storage.refs import ProviderKind, ProviderRef, StoragePath, parse_provider_ref, split_path
from kfaas.storage.targets import StorageTargetResolver

__all__ = [
    "ProviderKind",
    "ProviderRef",
    "StoragePath",
    "StorageProvisionResult",
    "StorageProvisioner",
    "StorageTargetResolver",
    "parse_provider_ref",
    "split_path",
]
