"""Service registration and interception toggle endpoints.

Routes mounted at: /api/services

Registry errors propagate to the domain error handler, which maps them
to 404/502/504 structured responses.
"""

from __future__ import annotations

__all__ = ["router"]

from fastapi import APIRouter, Response

from caddy_tap.api.deps import RegistryDep
from caddy_tap.api.errors import APIError, ErrorCode
from caddy_tap.api.schemas import BatchResultResponse, EnableRequest, ServiceResponse
from caddy_tap.mitm.models import ServiceRegistration
from caddy_tap.mitm.registry import InterceptionRegistry

router = APIRouter()


def _service_response(registry: InterceptionRegistry, service_id: str) -> ServiceResponse:
    status = registry.get_status(service_id)
    if status is None:
        raise APIError(
            status_code=404,
            code=ErrorCode.SERVICE_NOT_FOUND,
            message=f"Service not registered: {service_id}",
            details={"service_id": service_id},
        )
    return ServiceResponse.from_status(status)


@router.get("", response_model=list[ServiceResponse])
async def list_services(registry: RegistryDep) -> list[ServiceResponse]:
    """List registered services in registration order."""
    return [ServiceResponse.from_status(s) for s in registry.get_status().values()]


@router.post("", response_model=ServiceResponse, status_code=201)
async def register_service(registration: ServiceRegistration, registry: RegistryDep) -> ServiceResponse:
    """Register (or replace) a service. Interception starts disabled."""
    registry.register(registration)
    return _service_response(registry, registration.id)


# Batch routes are declared before /{service_id} routes so the literal
# paths are not captured as service ids.
@router.post("/enable-all", response_model=BatchResultResponse)
async def enable_all(registry: RegistryDep, body: EnableRequest | None = None) -> BatchResultResponse:
    """Enable interception for every service, continuing past failures."""
    failures = await registry.enable_all(body.proxy if body else None)
    return BatchResultResponse(failed={sid: str(e) for sid, e in failures.items()})


@router.post("/disable-all", response_model=BatchResultResponse)
async def disable_all(registry: RegistryDep) -> BatchResultResponse:
    """Disable interception for every service, continuing past failures."""
    failures = await registry.disable_all()
    return BatchResultResponse(failed={sid: str(e) for sid, e in failures.items()})


@router.get("/{service_id}", response_model=ServiceResponse)
async def get_service(service_id: str, registry: RegistryDep) -> ServiceResponse:
    """Get one service's registration and state."""
    return _service_response(registry, service_id)


@router.delete("/{service_id}", status_code=204)
async def unregister_service(service_id: str, registry: RegistryDep) -> Response:
    """Forget a service locally. Its Caddy route is left in place."""
    if not registry.unregister(service_id):
        raise APIError(
            status_code=404,
            code=ErrorCode.SERVICE_NOT_FOUND,
            message=f"Service not registered: {service_id}",
            details={"service_id": service_id},
        )
    return Response(status_code=204)


@router.post("/{service_id}/enable", response_model=ServiceResponse)
async def enable_service(
    service_id: str,
    registry: RegistryDep,
    body: EnableRequest | None = None,
) -> ServiceResponse:
    """Route the service through a mitmproxy instance."""
    await registry.enable(service_id, body.proxy if body else None)
    return _service_response(registry, service_id)


@router.post("/{service_id}/disable", response_model=ServiceResponse)
async def disable_service(service_id: str, registry: RegistryDep) -> ServiceResponse:
    """Restore direct routing to the service's backend."""
    await registry.disable(service_id)
    return _service_response(registry, service_id)
