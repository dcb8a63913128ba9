from pydantic import BaseModel, Field, field_validator


class SourceDescriptor(BaseModel):
    document_paths: list[str] = Field(default_factory=list, alias="paths")
    path_prefix: str = Field("", alias="prefixPath")
    filter_pattern: str | None = Field(default=None, alias="pathFilterRegexPattern")
    only_published_paths: bool = Field(False, alias="addOnlyPublishedPaths")
    metadata_marker_path: str | None = Field(default=None, alias="metadataPath")

    model_config = {"populate_by_name": True, "frozen": True}

    @field_validator("document_paths")
    @classmethod
    def _dedupe_paths(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))


class HttpClientOptions(BaseModel):
    headers: dict[str, str] = Field(default_factory=dict)
    verify_tls: bool = Field(True, alias="verifyTls")

    model_config = {"populate_by_name": True, "frozen": True}


class Destination(BaseModel):
    address: str
    sources: list[SourceDescriptor] = Field(default_factory=list, alias="swaggers")
    http_client: HttpClientOptions = Field(default_factory=HttpClientOptions, alias="httpClient")

    model_config = {"populate_by_name": True, "frozen": True}


class Cluster(BaseModel):
    destinations: dict[str, Destination] = Field(default_factory=dict)

    model_config = {"populate_by_name": True, "frozen": True}

    def has_sources(self) -> bool:
        return any(destination.sources for destination in self.destinations.values())


class RouteMatch(BaseModel):
    path: str | None = None
    methods: list[str] | None = None

    model_config = {"populate_by_name": True, "frozen": True}

    @field_validator("methods")
    @classmethod
    def _upper_methods(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return [method.upper() for method in value]


class Route(BaseModel):
    cluster_id: str | None = Field(default=None, alias="clusterId")
    match: RouteMatch = Field(default_factory=RouteMatch)
    transforms: list[dict[str, str]] | None = None

    model_config = {"populate_by_name": True, "frozen": True}


class SwaggerOptions(BaseModel):
    is_common_document: bool = Field(False, alias="isCommonDocument")
    common_document_name: str = Field("default", alias="commonDocumentName")
    rename_duplicate_schemas: bool = Field(False, alias="renameDuplicateSchemas")

    model_config = {"populate_by_name": True, "frozen": True}


class ProxyConfig(BaseModel):
    """Immutable snapshot of the routing configuration read by the engine."""

    routes: dict[str, Route] = Field(default_factory=dict)
    clusters: dict[str, Cluster] = Field(default_factory=dict)
    swagger: SwaggerOptions = Field(default_factory=SwaggerOptions)

    model_config = {"populate_by_name": True, "frozen": True}

    @property
    def is_empty(self) -> bool:
        return not self.routes and not self.clusters

    def document_names(self) -> list[str]:
        if self.swagger.is_common_document:
            return [self.swagger.common_document_name]
        return [key for key, cluster in self.clusters.items() if cluster.has_sources()]

    def select_clusters(self, document_name: str) -> dict[str, Cluster]:
        if self.swagger.is_common_document:
            return dict(self.clusters)
        return {key: cluster for key, cluster in self.clusters.items() if key == document_name}

    def cluster_transforms(self, cluster_id: str) -> list[dict[str, str]]:
        directives: list[dict[str, str]] = []
        for route in self.routes.values():
            if route.cluster_id == cluster_id and route.transforms:
                directives.extend(route.transforms)
        return directives
