import json
from typing import Any

import httpx
import yaml

from openapi_gateway.clients.http_resilience import get_with_retry
from openapi_gateway.errors import ConfigurationError, FetchError
from openapi_gateway.models.document import ApiDocument, load_yaml
from openapi_gateway.models.routing import Destination
from openapi_gateway.observability import propagation_headers


def resolve_document_url(base_address: str, document_path: str) -> str:
    try:
        base = httpx.URL(base_address)
        if not base.scheme or not base.host:
            raise ConfigurationError(f"destination address is not absolute: {base_address!r}")
        resolved = base.join(document_path)
    except (httpx.InvalidURL, TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"unable to combine {base_address!r} with {document_path!r}: {exc}"
        ) from exc
    if resolved.scheme not in {"http", "https"}:
        raise ConfigurationError(f"unsupported document url scheme: {resolved}")
    return str(resolved)


def decode_document(response: httpx.Response) -> ApiDocument:
    content_type = response.headers.get("content-type", "")
    try:
        if "yaml" in content_type or str(response.url).endswith((".yaml", ".yml")):
            payload: Any = load_yaml(response.text)
        else:
            payload = json.loads(response.content)
    except (ValueError, yaml.YAMLError) as exc:
        raise FetchError(
            f"document at {response.url} is not valid JSON or YAML",
            url=str(response.url),
            status_code=response.status_code,
        ) from exc
    if not isinstance(payload, dict) or not ("openapi" in payload or "swagger" in payload):
        raise FetchError(
            f"document at {response.url} is not an OpenAPI description",
            url=str(response.url),
            status_code=response.status_code,
        )
    return ApiDocument.from_mapping(payload)


class DocumentClient:
    """Fetches description documents from one destination of one cluster."""

    def __init__(
        self,
        cluster_id: str,
        destination_id: str,
        destination: Destination,
        timeout_seconds: float,
        max_retries: int = 2,
        retry_backoff_seconds: float = 0.2,
    ):
        self.cluster_id = cluster_id
        self.destination_id = destination_id
        self._address = destination.address
        self._headers = dict(destination.http_client.headers)
        self._verify = destination.http_client.verify_tls
        self._timeout_seconds = timeout_seconds
        self._max_retries = max_retries
        self._retry_backoff_seconds = retry_backoff_seconds

    @property
    def name(self) -> str:
        return f"{self.cluster_id}_{self.destination_id}"

    async def fetch(self, document_path: str) -> ApiDocument:
        url = resolve_document_url(self._address, document_path)
        headers = {**propagation_headers(), **self._headers}
        try:
            response = await get_with_retry(
                url=url,
                timeout_seconds=self._timeout_seconds,
                headers=headers,
                verify=self._verify,
                max_retries=self._max_retries,
                backoff_seconds=self._retry_backoff_seconds,
            )
        except httpx.HTTPError as exc:
            raise FetchError(
                f"upstream communication failure: {exc.__class__.__name__}", url=url
            ) from exc
        if not response.is_success:
            raise FetchError(
                f"upstream returned HTTP {response.status_code} for {url}",
                url=url,
                status_code=response.status_code,
            )
        return decode_document(response)
