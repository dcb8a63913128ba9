from fastapi import APIRouter, Depends, HTTPException, status

from openapi_gateway.errors import ConfigurationError
from openapi_gateway.routers.dependencies import get_config_store
from openapi_gateway.services.config_store import ProxyConfigStore

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post(
    "/config/reload",
    summary="Reload routing configuration",
    description=(
        "Re-reads the routing configuration and swaps the snapshot used by new "
        "aggregation requests. The previous snapshot stays active if the new one is invalid."
    ),
)
def reload_config(
    store: ProxyConfigStore = Depends(get_config_store),
) -> dict[str, int | list[str]]:
    try:
        snapshot = store.reload()
    except ConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc
    return {
        "routes": len(snapshot.routes),
        "clusters": len(snapshot.clusters),
        "documents": snapshot.document_names(),
    }
