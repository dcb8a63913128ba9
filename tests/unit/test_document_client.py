import json

import httpx
import pytest

from openapi_gateway.clients.document_client import (
    DocumentClient,
    decode_document,
    resolve_document_url,
)
from openapi_gateway.errors import ConfigurationError, FetchError
from openapi_gateway.models.routing import Destination
from openapi_gateway.observability import correlation_id_var


def _response(url: str, content: bytes, content_type: str, status_code: int = 200):
    return httpx.Response(
        status_code=status_code,
        content=content,
        headers={"Content-Type": content_type},
        request=httpx.Request("GET", url),
    )


class _RecordingAsyncClient:
    def __init__(self, response: httpx.Response):
        self.response = response
        self.calls: list[dict] = []
        self.verify: bool | None = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def get(self, url: str, headers: dict):
        self.calls.append({"url": url, "headers": headers})
        return self.response


def _install(monkeypatch, response: httpx.Response) -> _RecordingAsyncClient:
    recorder = _RecordingAsyncClient(response)

    def _factory(timeout, verify=True):
        recorder.verify = verify
        return recorder

    monkeypatch.setattr("openapi_gateway.clients.http_resilience.httpx.AsyncClient", _factory)
    return recorder


def _client(**destination) -> DocumentClient:
    return DocumentClient(
        cluster_id="orders",
        destination_id="d1",
        destination=Destination.model_validate({"address": "http://orders:8080/", **destination}),
        timeout_seconds=1.0,
        max_retries=0,
        retry_backoff_seconds=0.0,
    )


@pytest.mark.parametrize(
    ("base", "path", "expected"),
    [
        ("http://orders:8080/", "/swagger/v1/swagger.json", "http://orders:8080/swagger/v1/swagger.json"),
        ("http://orders:8080/api/", "docs.json", "http://orders:8080/api/docs.json"),
        ("https://orders", "/openapi.yaml", "https://orders/openapi.yaml"),
    ],
)
def test_resolve_document_url(base, path, expected):
    assert resolve_document_url(base, path) == expected


@pytest.mark.parametrize(
    ("base", "path"),
    [
        ("orders", "/swagger.json"),
        ("http://orders", "ftp://elsewhere/swagger.json"),
        ("file:///etc", "/swagger.json"),
    ],
)
def test_resolve_document_url_rejects_unusable_combinations(base, path):
    with pytest.raises(ConfigurationError):
        resolve_document_url(base, path)


def test_decode_document_reads_yaml():
    response = _response(
        "http://orders/openapi.yaml",
        b"openapi: 3.0.1\ninfo:\n  title: Orders\npaths:\n  /orders:\n    get: {}\n",
        "application/yaml",
    )
    document = decode_document(response)
    assert document.info == {"title": "Orders"}
    assert list(document.paths) == ["/orders"]


def test_decode_document_keeps_yaml_dates_as_strings():
    response = _response(
        "http://orders/openapi.yaml",
        b"openapi: 3.0.1\ninfo:\n  title: Orders\n  x-released: 2024-01-01T10:00:00Z\n"
        b"paths:\n  /orders:\n    get:\n      parameters:\n"
        b"        - name: since\n          in: query\n          example: 2024-01-01\n",
        "application/yaml",
    )
    document = decode_document(response)
    assert document.info["x-released"] == "2024-01-01T10:00:00Z"
    assert document.paths["/orders"]["get"]["parameters"][0]["example"] == "2024-01-01"
    json.dumps(document.to_mapping())


@pytest.mark.parametrize(
    "content",
    [b"not json {", b'["a list"]', b'{"title": "no version key"}'],
)
def test_decode_document_rejects_non_openapi_bodies(content):
    with pytest.raises(FetchError):
        decode_document(_response("http://orders/swagger.json", content, "application/json"))


@pytest.mark.asyncio
async def test_fetch_sends_destination_and_propagation_headers(monkeypatch):
    correlation_id_var.set("corr-fetch")
    body = json.dumps({"openapi": "3.0.1", "info": {"title": "Orders"}, "paths": {}}).encode()
    recorder = _install(
        monkeypatch, _response("http://orders:8080/swagger/v1/swagger.json", body, "application/json")
    )

    client = _client(httpClient={"headers": {"Authorization": "Bearer t"}, "verifyTls": False})
    document = await client.fetch("/swagger/v1/swagger.json")

    assert document.info["title"] == "Orders"
    assert recorder.calls[0]["url"] == "http://orders:8080/swagger/v1/swagger.json"
    assert recorder.calls[0]["headers"]["Authorization"] == "Bearer t"
    assert recorder.calls[0]["headers"]["X-Correlation-Id"] == "corr-fetch"
    assert recorder.verify is False
    assert client.name == "orders_d1"


@pytest.mark.asyncio
async def test_fetch_maps_non_success_status_to_fetch_error(monkeypatch):
    _install(monkeypatch, _response("http://orders:8080/swagger.json", b"down", "text/plain", 503))

    with pytest.raises(FetchError) as excinfo:
        await _client().fetch("/swagger.json")
    assert excinfo.value.status_code == 503


@pytest.mark.asyncio
async def test_fetch_maps_transport_failure_to_fetch_error(monkeypatch):
    class _Unreachable:
        def __init__(self, timeout, verify=True):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return False

        async def get(self, url, headers):
            raise httpx.ConnectError("refused")

    monkeypatch.setattr("openapi_gateway.clients.http_resilience.httpx.AsyncClient", _Unreachable)

    with pytest.raises(FetchError, match="ConnectError"):
        await _client().fetch("/swagger.json")


@pytest.mark.asyncio
async def test_fetch_maps_decoding_failure_to_fetch_error(monkeypatch):
    class _CorruptBody:
        def __init__(self, timeout, verify=True):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return False

        async def get(self, url, headers):
            raise httpx.DecodingError("bad gzip")

    monkeypatch.setattr("openapi_gateway.clients.http_resilience.httpx.AsyncClient", _CorruptBody)

    with pytest.raises(FetchError, match="DecodingError"):
        await _client().fetch("/swagger.json")
