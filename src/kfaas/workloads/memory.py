from __future__ import annotations

import asyncio

from kfaas.domain.models import Service
from kfaas.workloads.base import WorkloadAlreadyExistsError


class InMemoryWorkloadBackend:
    """Dict-backed workload store for local development."""

    def __init__(self) -> None:
        self._workloads: dict[str, Service] = {}
        self._lock = asyncio.Lock()

    async def create_workload(self, service: Service) -> None:
        async with self._lock:
            if service.name in self._workloads:
                raise WorkloadAlreadyExistsError(service.name)
            self._workloads[service.name] = service.model_copy(deep=True)

    async def delete_workload(self, name: str) -> None:
        async with self._lock:
            self._workloads.pop(name, None)

    def get(self, name: str) -> Service | None:
        return self._workloads.get(name)

    def names(self) -> list[str]:
        return sorted(self._workloads)
