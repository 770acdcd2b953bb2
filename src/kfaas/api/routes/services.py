from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from kfaas.api.auth import require_authorization
from kfaas.api.deps import get_orchestrator
from kfaas.core.errors import KfaasError, format_error_message
from kfaas.domain.models import Service
from kfaas.provisioning.orchestrator import ProvisioningOrchestrator

router = APIRouter()
logger = structlog.get_logger()


class ServiceCreatedResponse(BaseModel):
    name: str
    state: str


@router.post(
    "/services",
    status_code=status.HTTP_201_CREATED,
    response_model=ServiceCreatedResponse,
)
async def create_service(
    service: Service,
    raw_token: str | None = Depends(require_authorization),  # noqa: B008
    orchestrator: ProvisioningOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> ServiceCreatedResponse:
    try:
        result = await orchestrator.create(service, raw_token)
    except KfaasError as exc:
        if not exc.is_client_error:
            logger.error(
                "service_creation_failed", service=service.name, error=format_error_message(exc)
            )
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc

    return ServiceCreatedResponse(name=service.name, state=result.state.value)
