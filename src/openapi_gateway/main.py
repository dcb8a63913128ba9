from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from openapi_gateway.observability import setup_observability
from openapi_gateway.routers.admin import router as admin_router
from openapi_gateway.routers.documents import router as documents_router
from openapi_gateway.routers.health import router as health_router


@asynccontextmanager
async def _app_lifespan(application: FastAPI) -> AsyncIterator[None]:
    application.state.is_draining = False
    yield
    application.state.is_draining = True


app = FastAPI(
    title="OpenAPI Aggregation Gateway",
    version="0.1.0",
    description=(
        "Publishes merged OpenAPI documents for the upstream services behind the gateway, "
        "limited to the operations the gateway routes."
    ),
    openapi_tags=[
        {"name": "Health", "description": "Service health and readiness endpoints."},
        {"name": "Documents", "description": "Merged upstream description documents."},
        {"name": "Admin", "description": "Routing configuration management."},
    ],
    lifespan=_app_lifespan,
)
setup_observability(app)

app.include_router(health_router)
app.include_router(documents_router)
app.include_router(admin_router)
