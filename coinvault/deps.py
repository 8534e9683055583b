# coinvault/deps.py
from __future__ import annotations

from fastapi import HTTPException, Request

from coinvault.providers import ProviderClient
from coinvault.services import ServiceContainer


async def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


async def touch_session(request: Request) -> ServiceContainer:
    """Route dependency: counts the call as user activity."""
    services = request.app.state.services
    services.record_activity()
    return services


def provider_or_404(services: ServiceContainer, name: str) -> ProviderClient:
    try:
        return services.provider(name)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown provider '{name}'.")
