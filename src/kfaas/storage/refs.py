from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from kfaas.domain.models import DEFAULT_PROVIDER, PROVIDER_SEPARATOR


class ProviderKind(StrEnum):
    """Storage backend families a binding can reference."""

    MINIO = "minio"
    S3 = "s3"
    ONEDATA = "onedata"
    WEBDAV = "webdav"


INPUT_KINDS = frozenset({ProviderKind.MINIO, ProviderKind.WEBDAV})


@dataclass(frozen=True)
class ProviderRef:
    """A parsed ``kind`` or ``kind.id`` provider reference.

    ``kind`` is None when ``raw_kind`` names no known backend family.
    """

    raw_kind: str
    id: str
    kind: ProviderKind | None

    def __str__(self) -> str:
        return f"{self.raw_kind}{PROVIDER_SEPARATOR}{self.id}"


@dataclass(frozen=True)
class StoragePath:
    bucket: str
    folder: str | None = None

    @property
    def folder_key(self) -> str | None:
        """Key of the zero-byte object that materializes the folder."""
        return f"{self.folder}/" if self.folder else None

    def __str__(self) -> str:
        return f"{self.bucket}/{self.folder}" if self.folder else self.bucket


def parse_provider_ref(reference: str) -> ProviderRef:
    raw_kind, _, provider_id = reference.strip().partition(PROVIDER_SEPARATOR)
    raw_kind = raw_kind.lower()
    try:
        kind: ProviderKind | None = ProviderKind(raw_kind)
    except ValueError:
        kind = None
    return ProviderRef(raw_kind=raw_kind, id=provider_id or DEFAULT_PROVIDER, kind=kind)


def trim_path(path: str) -> str:
    return path.strip(" /")


def split_path(path: str) -> StoragePath:
    """Split ``bucket[/folder...]`` after trimming spaces and slashes from both ends."""
    bucket, _, folder = trim_path(path).partition("/")
    return StoragePath(bucket=bucket, folder=folder or None)
