from kfaas.provisioning.normalizer import normalize_service, validate_input_kinds
from kfaas.provisioning.orchestrator import (
    ProvisioningOrchestrator,
    ProvisioningResult,
    ProvisioningState,
)

__all__ = [
    "ProvisioningOrchestrator",
    "ProvisioningResult",
    "ProvisioningState",
    "normalize_service",
    "validate_input_kinds",
]
