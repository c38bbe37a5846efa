"""Shared dependencies for API routes.

Usage with Annotated:
    from caddy_tap.api.deps import RegistryDep

    @router.get("")
    async def list_services(registry: RegistryDep) -> list[ServiceResponse]:
        ...
"""

from __future__ import annotations

__all__ = [
    "RegistryDep",
    "get_registry",
]

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from caddy_tap.mitm.registry import InterceptionRegistry


def get_registry(request: Request) -> InterceptionRegistry:
    """Get the InterceptionRegistry from app.state.

    Raises:
        HTTPException: 503 if the app was created without a registry.
    """
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(status_code=503, detail="Interception registry not available.")
    return registry


RegistryDep = Annotated[InterceptionRegistry, Depends(get_registry)]
