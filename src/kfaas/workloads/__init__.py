from kfaas.workloads.base import WorkloadAlreadyExistsError, WorkloadBackend
from kfaas.workloads.kube import KubeWorkloadBackend
from kfaas.workloads.memory import InMemoryWorkloadBackend

__all__ = [
    "InMemoryWorkloadBackend",
    "KubeWorkloadBackend",
    "WorkloadAlreadyExistsError",
    "WorkloadBackend",
]
