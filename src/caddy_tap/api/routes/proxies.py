"""Interception proxy pool endpoints.

Routes mounted at: /api/proxies
"""

from __future__ import annotations

__all__ = ["router"]

from fastapi import APIRouter

from caddy_tap.api.deps import RegistryDep
from caddy_tap.api.schemas import ProxyResponse

router = APIRouter()


@router.get("", response_model=list[ProxyResponse])
async def list_proxies(registry: RegistryDep) -> list[ProxyResponse]:
    """List pool entries, including the "default" alias."""
    return [
        ProxyResponse(
            name=name,
            host=instance.host,
            port=instance.port,
            dial=instance.dial,
            web_url=instance.web_url,
        )
        for name, instance in registry.pool.items()
    ]
