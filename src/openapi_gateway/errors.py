from typing import Literal

from pydantic import BaseModel, Field


class AggregationError(Exception):
    """Base class for errors raised while building a merged document."""


class ConfigurationError(AggregationError):
    """Routing configuration cannot be turned into a fetchable source.

    Raised for unresolvable document URLs, malformed filter patterns and
    routing files that fail validation.
    """


class FetchError(AggregationError):
    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class SourceFailure(BaseModel):
    cluster_id: str = Field(..., alias="clusterId")
    destination_id: str = Field(..., alias="destinationId")
    document_path: str | None = Field(default=None, alias="documentPath")
    kind: Literal["configuration", "fetch"]
    detail: str

    model_config = {"populate_by_name": True}

    @classmethod
    def from_error(
        cls,
        error: AggregationError,
        *,
        cluster_id: str,
        destination_id: str,
        document_path: str | None,
    ) -> "SourceFailure":
        kind = "configuration" if isinstance(error, ConfigurationError) else "fetch"
        return cls(
            clusterId=cluster_id,
            destinationId=destination_id,
            documentPath=document_path,
            kind=kind,
            detail=str(error),
        )
