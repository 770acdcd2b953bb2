"""
Kubernetes workload backend.

A service is stored as two namespaced objects sharing the service name:
- a ConfigMap holding the user script and the function definition
- a PodTemplate describing the container the jobs of this service run

Kubernetes enforces name uniqueness, so a 409 from the API is the conflict signal
for same-named services created concurrently.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from functools import partial
from typing import Any

import structlog
import yaml

from kfaas.domain.models import Service
from kfaas.workloads.base import WorkloadAlreadyExistsError

logger = structlog.get_logger()

SCRIPT_KEY = "script.sh"
FDL_KEY = "function_config.yaml"
CONFIG_MOUNT_PATH = "/kfaas/config"
SUPERVISOR_CONTAINER = "function"


class KubeConfigError(RuntimeError):
    """Raised when the Kubernetes client cannot be initialized."""


def _status(exc: Exception) -> int | None:
    return getattr(exc, "status", None)


def load_core_api(kubeconfig: str | None = None, context: str | None = None) -> Any:
    """CoreV1Api from in-cluster config, falling back to kubeconfig."""
    from kubernetes import client, config

    try:
        config.load_incluster_config()
    except config.ConfigException:
        try:
            config.load_kube_config(config_file=kubeconfig, context=context)
        except config.ConfigException as e:
            raise KubeConfigError(f"Failed to load Kubernetes config: {e}") from e

    return client.CoreV1Api()


def build_config_map(service: Service) -> dict[str, Any]:
    definition = service.model_dump(
        include={
            "name", "image", "alpine", "memory", "cpu", "log_level", "input", "output", "vo"
        },
        mode="json",
    )
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": service.name, "labels": dict(service.labels or {})},
        "data": {
            SCRIPT_KEY: service.script,
            FDL_KEY: yaml.safe_dump(definition, sort_keys=False),
        },
    }


def build_pod_template(service: Service) -> dict[str, Any]:
    env = [{"name": key, "value": value} for key, value in service.environment.variables.items()]
    env.append({"name": "LOG_LEVEL", "value": service.log_level})
    return {
        "apiVersion": "v1",
        "kind": "PodTemplate",
        "metadata": {
            "name": service.name,
            "labels": dict(service.labels or {}),
            "annotations": dict(service.annotations or {}),
        },
        "template": {
            "metadata": {
                "labels": dict(service.labels or {}),
                "annotations": dict(service.annotations or {}),
            },
            "spec": {
                "restartPolicy": "Never",
                "containers": [
                    {
                        "name": SUPERVISOR_CONTAINER,
                        "image": service.image,
                        "env": env,
                        "resources": {
                            "limits": {"memory": service.memory, "cpu": service.cpu},
                        },
                        "volumeMounts": [
                            {"name": "function-config", "mountPath": CONFIG_MOUNT_PATH}
                        ],
                    }
                ],
                "volumes": [
                    {
                        "name": "function-config",
                        "configMap": {"name": service.name, "defaultMode": 0o755},
                    }
                ],
            },
        },
    }


@dataclass
class KubeWorkloadBackend:
    """
    Stores services as ConfigMap + PodTemplate pairs.

    Configuration:
        namespace: Namespace holding the services' objects
        kubeconfig: Path to kubeconfig file (optional, in-cluster config is tried first)
        context: Kubeconfig context to use (optional)
    """

    namespace: str
    kubeconfig: str | None = None
    context: str | None = None

    _core_api: Any = field(default=None, repr=False, compare=False)

    async def _get_core_api(self) -> Any:
        if self._core_api is None:
            # Reading kubeconfig touches the filesystem.
            self._core_api = await self._run_sync(load_core_api, self.kubeconfig, self.context)
        return self._core_api

    async def _run_sync(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        """Run synchronous kubernetes API call in executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    async def create_workload(self, service: Service) -> None:
        api = await self._get_core_api()
        try:
            await self._run_sync(
                api.create_namespaced_config_map, self.namespace, build_config_map(service)
            )
        except Exception as exc:
            if _status(exc) == 409:
                raise WorkloadAlreadyExistsError(service.name) from exc
            raise

        try:
            await self._run_sync(
                api.create_namespaced_pod_template, self.namespace, build_pod_template(service)
            )
        except Exception as exc:
            await self._delete_ignoring_missing(api.delete_namespaced_config_map, service.name)
            if _status(exc) == 409:
                raise WorkloadAlreadyExistsError(service.name) from exc
            raise
        logger.info("workload_created", service=service.name, namespace=self.namespace)

    async def delete_workload(self, name: str) -> None:
        api = await self._get_core_api()
        await self._delete_ignoring_missing(api.delete_namespaced_pod_template, name)
        await self._delete_ignoring_missing(api.delete_namespaced_config_map, name)
        logger.info("workload_deleted", service=name, namespace=self.namespace)

    async def _delete_ignoring_missing(self, delete: Any, name: str) -> None:
        try:
            await self._run_sync(delete, name, self.namespace)
        except Exception as exc:
            if _status(exc) != 404:
                raise
