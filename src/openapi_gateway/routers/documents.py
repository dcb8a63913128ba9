from typing import Annotated, Any

import yaml
from fastapi import APIRouter, Depends, HTTPException, Path, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from openapi_gateway.errors import FetchError
from openapi_gateway.models.document import AggregationResult
from openapi_gateway.routers.dependencies import get_aggregation_engine, get_config_store
from openapi_gateway.services.aggregation_engine import AggregationEngine
from openapi_gateway.services.config_store import ProxyConfigStore

router = APIRouter(prefix="/openapi-docs", tags=["Documents"])

DocumentName = Annotated[str, Path(description="Published document name.")]


async def _aggregate(
    document_name: str,
    engine: AggregationEngine,
    store: ProxyConfigStore,
) -> AggregationResult:
    config = await run_in_threadpool(store.current)
    if document_name not in config.document_names():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown document: {document_name}",
        )
    try:
        return await engine.aggregate(document_name, config=config)
    except FetchError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"upstream description document unavailable: {exc}",
        ) from exc


def _warning_headers(result: AggregationResult) -> dict[str, str]:
    return {"X-Aggregation-Warnings": str(len(result.failures))}


@router.get(
    "",
    summary="List published documents",
    description="Returns every merged document name the gateway publishes and its URLs.",
)
def list_documents(
    store: ProxyConfigStore = Depends(get_config_store),
) -> list[dict[str, str]]:
    return [
        {
            "name": name,
            "json": f"{router.prefix}/{name}/openapi.json",
            "yaml": f"{router.prefix}/{name}/openapi.yaml",
        }
        for name in store.current().document_names()
    ]


@router.get(
    "/{document_name}/openapi.json",
    response_model=dict[str, Any],
    summary="Get merged document (JSON)",
    description=(
        "Fetches the description documents of every upstream behind the requested "
        "document, keeps only routed operations and returns them merged."
    ),
)
async def get_document_json(
    document_name: DocumentName,
    engine: AggregationEngine = Depends(get_aggregation_engine),
    store: ProxyConfigStore = Depends(get_config_store),
) -> JSONResponse:
    result = await _aggregate(document_name, engine, store)
    return JSONResponse(content=result.document.to_mapping(), headers=_warning_headers(result))


@router.get(
    "/{document_name}/openapi.yaml",
    summary="Get merged document (YAML)",
    description="Same merged document as the JSON endpoint, serialised as YAML.",
)
async def get_document_yaml(
    document_name: DocumentName,
    engine: AggregationEngine = Depends(get_aggregation_engine),
    store: ProxyConfigStore = Depends(get_config_store),
) -> Response:
    result = await _aggregate(document_name, engine, store)
    body = yaml.safe_dump(result.document.to_mapping(), sort_keys=False, allow_unicode=True)
    return Response(
        content=body,
        media_type="application/yaml",
        headers=_warning_headers(result),
    )
