from __future__ import annotations

from typing import Protocol

from kfaas.domain.models import Service


class WorkloadAlreadyExistsError(Exception):
    """Raised by a backend when a workload with the same name already exists."""

    def __init__(self, name: str) -> None:
        super().__init__(f'a workload named "{name}" already exists')
        self.name = name


class WorkloadBackend(Protocol):
    """Creates and deletes the workload that runs a service."""

    async def create_workload(self, service: Service) -> None: ...

    async def delete_workload(self, name: str) -> None: ...
