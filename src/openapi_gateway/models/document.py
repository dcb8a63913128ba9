from typing import Any

import yaml
from pydantic import BaseModel, Field

from openapi_gateway.errors import SourceFailure

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

Operation = dict[str, Any]
PathItem = dict[str, Any]

_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


class StringTimestampLoader(yaml.SafeLoader):
    """SafeLoader that leaves unquoted dates and timestamps as strings.

    Description documents are re-served as JSON, which has no date type, so
    values such as ``example: 2024-01-01`` must come back exactly as written.
    """


StringTimestampLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != _TIMESTAMP_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def load_yaml(raw: str) -> Any:
    return yaml.load(raw, Loader=StringTimestampLoader)


class ApiDocument(BaseModel):
    """In-memory form of an OpenAPI description document.

    Only the sections the aggregation touches are modelled; any other
    top-level keys (servers, webhooks, x- extensions) are kept in ``extra``
    so that serialising a fetched document gives back what was fetched.
    """

    openapi: str = "3.0.1"
    info: dict[str, Any] = Field(default_factory=dict)
    paths: dict[str, PathItem] = Field(default_factory=dict)
    components: dict[str, dict[str, Any]] = Field(default_factory=dict)
    security: list[dict[str, Any]] = Field(default_factory=list)
    tags: list[dict[str, Any]] = Field(default_factory=list)
    extra: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_mapping(cls, payload: dict[str, Any]) -> "ApiDocument":
        known = {"openapi", "swagger", "info", "paths", "components", "security", "tags"}
        return cls(
            openapi=str(payload.get("openapi") or payload.get("swagger") or "3.0.1"),
            info=_as_dict(payload.get("info")),
            paths={
                str(key): value
                for key, value in _as_dict(payload.get("paths")).items()
                if isinstance(value, dict)
            },
            components={
                str(key): value
                for key, value in _as_dict(payload.get("components")).items()
                if isinstance(value, dict)
            },
            security=[item for item in _as_list(payload.get("security")) if isinstance(item, dict)],
            tags=[item for item in _as_list(payload.get("tags")) if isinstance(item, dict)],
            extra={key: value for key, value in payload.items() if key not in known},
        )

    def to_mapping(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"openapi": self.openapi, "info": self.info}
        payload.update(self.extra)
        payload["paths"] = self.paths
        if self.components:
            payload["components"] = self.components
        if self.security:
            payload["security"] = self.security
        if self.tags:
            payload["tags"] = self.tags
        return payload


def operations(path_item: PathItem) -> dict[str, Operation]:
    return {
        method: operation
        for method, operation in path_item.items()
        if method.lower() in HTTP_METHODS and isinstance(operation, dict)
    }


class AggregationResult(BaseModel):
    document_name: str = Field(..., alias="documentName")
    document: ApiDocument
    failures: list[SourceFailure] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    @property
    def is_partial(self) -> bool:
        return bool(self.failures)


def _as_dict(value: object) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {}


def _as_list(value: object) -> list[Any]:
    if isinstance(value, list):
        return value
    return []
