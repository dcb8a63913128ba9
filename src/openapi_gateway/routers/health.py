from fastapi import APIRouter, Depends, Request, Response, status

from openapi_gateway.errors import ConfigurationError
from openapi_gateway.routers.dependencies import get_config_store
from openapi_gateway.services.config_store import ProxyConfigStore

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    summary="Service health",
    description="Liveness endpoint for the OpenAPI aggregation gateway.",
)
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/health/live",
    summary="Service liveness",
    description="Liveness endpoint for orchestration and runtime checks.",
)
def live() -> dict[str, str]:
    return {"status": "live"}


@router.get(
    "/health/ready",
    summary="Service readiness",
    description=(
        "Readiness endpoint; reports draining once shutdown has started and "
        "config_invalid while no routing configuration snapshot can be loaded."
    ),
)
def ready(
    request: Request,
    response: Response,
    store: ProxyConfigStore = Depends(get_config_store),
) -> dict[str, str]:
    if bool(getattr(request.app.state, "is_draining", False)):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "draining"}
    try:
        store.current()
    except ConfigurationError:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "config_invalid"}
    return {"status": "ready"}
