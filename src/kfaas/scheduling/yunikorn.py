"""
Yunikorn scheduling queues.

Each service gets a leaf queue ``root.kfaas-queue.<service>`` whose max resources
follow the service's memory and cpu, so the scheduler caps what its jobs consume.
The queue tree lives in a YAML document inside the scheduler's ConfigMap.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from functools import partial
from typing import Any

import structlog
import yaml

from kfaas.domain.models import Service
from kfaas.provisioning.normalizer import PLATFORM_QUEUE, ROOT_QUEUE
from kfaas.workloads.kube import load_core_api

logger = structlog.get_logger()

DEFAULT_PARTITION = "default"


def _child(queues: list[dict[str, Any]], name: str) -> dict[str, Any]:
    for queue in queues:
        if queue.get("name") == name:
            return queue
    created: dict[str, Any] = {"name": name}
    queues.append(created)
    return created


def add_service_queue(config: dict[str, Any], service: Service) -> bool:
    """Insert or update the service's leaf queue in a parsed queues document.

    Returns True when ``config`` was modified.
    """
    partitions = config.setdefault("partitions", [])
    partition = _child(partitions, DEFAULT_PARTITION)
    root = _child(partition.setdefault("queues", []), ROOT_QUEUE)
    platform = _child(root.setdefault("queues", []), PLATFORM_QUEUE)
    leaf = _child(platform.setdefault("queues", []), service.name)

    resources = {"max": {"memory": service.memory, "vcore": service.cpu}}
    if leaf.get("resources") == resources:
        return False
    leaf["resources"] = resources
    return True


@dataclass
class YunikornQueueRegistrar:
    """Keeps the Yunikorn queue configuration in sync with created services."""

    namespace: str
    configmap: str
    config_file: str = "queues.yaml"
    kubeconfig: str | None = None
    context: str | None = None

    _core_api: Any = field(default=None, repr=False, compare=False)

    async def _get_core_api(self) -> Any:
        if self._core_api is None:
            self._core_api = await self._run_sync(load_core_api, self.kubeconfig, self.context)
        return self._core_api

    async def _run_sync(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    async def add_queue(self, service: Service) -> bool:
        api = await self._get_core_api()
        configmap = await self._run_sync(
            api.read_namespaced_config_map, self.configmap, self.namespace
        )
        data = dict(configmap.data or {})
        config = yaml.safe_load(data.get(self.config_file) or "") or {}

        if not add_service_queue(config, service):
            logger.debug("yunikorn_queue_unchanged", service=service.name)
            return False

        data[self.config_file] = yaml.safe_dump(config, sort_keys=False)
        await self._run_sync(
            api.patch_namespaced_config_map,
            self.configmap,
            self.namespace,
            {"data": data},
        )
        logger.info("yunikorn_queue_added", service=service.name, configmap=self.configmap)
        return True
