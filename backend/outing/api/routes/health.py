"""Health check endpoints.

- /health: liveness, always 200
- /healthz: component report (discovery modes, reasoner, knowledge base);
  503 when no discovery source is registered
"""

import json
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Response

from backend.outing.api.deps import Services, get_services
from backend.outing.config import get_settings

router = APIRouter()


def discovery_modes(services: Services) -> dict[str, str]:
    """Mode each source would run in: live with credentials, demo without."""
    return {
        source.name: "live" if getattr(source, "has_credentials", False) else "demo"
        for source in services.sources
    }


@router.get("/health")
async def health() -> dict[str, str]:
    """Simple health check for Docker/k8s.

    Returns:
        200 OK always (application is running)
    """
    return {"status": "ok"}


@router.get("/healthz", response_model=None)
async def healthz(services: Annotated[Services, Depends(get_services)]) -> dict[str, Any] | Response:
    """Component health.

    Returns:
        200 with component status, 503 if discovery has no sources
    """
    settings = get_settings()
    openai_key = settings.openai_api_key.get_secret_value() if settings.openai_api_key else ""
    modes = discovery_modes(services)
    core_ok = bool(modes)

    response_body = {
        "status": "ok" if core_ok else "degraded",
        "components": {
            "discovery": modes,
            "reasoner": "configured" if openai_key else "not_configured",
            "knowledge_base": "configured" if settings.knowledge_base_base_url else "not_configured",
            "weather": "enabled" if settings.weather_enabled else "disabled",
        },
        "active_runs": len(services.registry),
    }

    if not core_ok:
        return Response(
            content=json.dumps(response_body),
            status_code=503,
            media_type="application/json",
        )

    return response_body
