import asyncio
import logging
import time
from typing import Callable, NamedTuple

from fastapi.concurrency import run_in_threadpool

from openapi_gateway.clients.document_client import DocumentClient, resolve_document_url
from openapi_gateway.config import Settings, settings
from openapi_gateway.errors import AggregationError, ConfigurationError, FetchError, SourceFailure
from openapi_gateway.models.document import AggregationResult, ApiDocument
from openapi_gateway.models.routing import Cluster, Destination, ProxyConfig, SourceDescriptor
from openapi_gateway.observability import AGGREGATION_DURATION, SOURCE_FAILURES
from openapi_gateway.services.config_store import ProxyConfigStore
from openapi_gateway.services.document_merger import DocumentMerger
from openapi_gateway.services.path_filter import PathFilter, compile_filter
from openapi_gateway.services.transforms import SwaggerTransformFactory, TransformApplier

logger = logging.getLogger("openapi_gateway.aggregation")

ClientFactory = Callable[[str, str, Destination], DocumentClient]


class _SourceJob(NamedTuple):
    cluster_id: str
    destination_id: str
    source: SourceDescriptor
    document_path: str | None
    client: DocumentClient | None
    error: ConfigurationError | None = None


class AggregationEngine:
    """Builds one merged description document per requested document name.

    Fetches run concurrently, bounded by ``fetch_max_concurrency``; the
    filter, transform and merge steps then run one source at a time in
    configuration order (cluster, destination, source descriptor, document
    path) so that collision handling does not depend on fetch timing.
    When several sources carry the metadata marker path, the last one merged
    supplies the ``info`` section.
    """

    def __init__(
        self,
        config_store: ProxyConfigStore | None = None,
        transform_factories: list[SwaggerTransformFactory] | None = None,
        client_factory: ClientFactory | None = None,
        app_settings: Settings | None = None,
    ):
        self._settings = app_settings or settings
        self._config_store = config_store or ProxyConfigStore(self._settings)
        self._transform_applier = TransformApplier(transform_factories)
        self._client_factory = client_factory or self._default_client

    def base_document(self, document_name: str, config: ProxyConfig) -> ApiDocument:
        title = self._settings.document_title
        if not config.swagger.is_common_document:
            title = f"{title} - {document_name}"
        return ApiDocument(
            openapi=self._settings.openapi_version,
            info={"title": title, "version": self._settings.document_version},
        )

    async def aggregate(
        self,
        document_name: str,
        base_document: ApiDocument | None = None,
        config: ProxyConfig | None = None,
    ) -> AggregationResult:
        if config is None:
            config = await run_in_threadpool(self._config_store.current)
        base = base_document
        if base is None:
            base = self.base_document(document_name, config)
        clusters = {} if config.is_empty else config.select_clusters(document_name)
        if not clusters:
            return AggregationResult(documentName=document_name, document=base)

        started = time.perf_counter()
        logger.info(
            "aggregation.started",
            extra={"extra_fields": {"document": document_name, "clusters": list(clusters)}},
        )
        jobs = self._plan(clusters)
        fetched = await self._fetch_all(jobs)

        path_filter = PathFilter(config)
        merger = DocumentMerger(rename_duplicates=config.swagger.rename_duplicate_schemas)
        accumulator = base.model_copy(
            update={"paths": {}, "components": {}, "security": [], "tags": []}
        )
        failures: list[SourceFailure] = []
        for job, outcome in zip(jobs, fetched):
            if isinstance(outcome, FetchError) and self._settings.fail_on_fetch_error:
                raise outcome
            if isinstance(outcome, AggregationError):
                failures.append(self._record_failure(job, outcome))
                continue
            pruned = path_filter.filter(outcome, job.source)
            transformed = self._transform_applier.apply(
                pruned, config.cluster_transforms(job.cluster_id)
            )
            accumulator = merger.merge(
                accumulator,
                transformed,
                job.source.path_prefix,
                source_suffix=f"{job.cluster_id}_{job.destination_id}",
                use_metadata=job.source.metadata_marker_path == job.document_path,
            )

        if failures:
            info = dict(accumulator.info)
            info["x-aggregation-failures"] = [
                failure.model_dump(by_alias=True) for failure in failures
            ]
            accumulator = accumulator.model_copy(update={"info": info})

        elapsed = time.perf_counter() - started
        AGGREGATION_DURATION.labels(document=document_name).observe(elapsed)
        logger.info(
            "aggregation.completed",
            extra={
                "extra_fields": {
                    "document": document_name,
                    "paths": len(accumulator.paths),
                    "failures": len(failures),
                    "latency_ms": round(elapsed * 1000, 2),
                }
            },
        )
        return AggregationResult(
            documentName=document_name, document=accumulator, failures=failures
        )

    def _plan(self, clusters: dict[str, Cluster]) -> list[_SourceJob]:
        jobs: list[_SourceJob] = []
        for cluster_id, cluster in clusters.items():
            for destination_id, destination in cluster.destinations.items():
                if not destination.sources:
                    continue
                client = self._client_factory(cluster_id, destination_id, destination)
                for source in destination.sources:
                    try:
                        compile_filter(source)
                    except ConfigurationError as exc:
                        jobs.append(_SourceJob(cluster_id, destination_id, source, None, None, exc))
                        continue
                    for document_path in source.document_paths:
                        try:
                            resolve_document_url(destination.address, document_path)
                        except ConfigurationError as exc:
                            jobs.append(
                                _SourceJob(
                                    cluster_id, destination_id, source, document_path, None, exc
                                )
                            )
                            continue
                        jobs.append(
                            _SourceJob(cluster_id, destination_id, source, document_path, client)
                        )
        return jobs

    async def _fetch_all(self, jobs: list[_SourceJob]) -> list[ApiDocument | AggregationError]:
        semaphore = asyncio.Semaphore(max(1, self._settings.fetch_max_concurrency))

        async def fetch_one(job: _SourceJob) -> ApiDocument | AggregationError:
            if job.error is not None:
                return job.error
            async with semaphore:
                try:
                    return await asyncio.wait_for(
                        job.client.fetch(job.document_path),
                        timeout=self._fetch_budget_seconds(),
                    )
                except asyncio.TimeoutError:
                    return FetchError(f"timed out fetching {job.document_path}")
                except AggregationError as exc:
                    return exc

        return await asyncio.gather(*(fetch_one(job) for job in jobs))

    def _fetch_budget_seconds(self) -> float:
        attempts = max(0, self._settings.upstream_max_retries) + 1
        backoff = sum(
            self._settings.upstream_retry_backoff_seconds * (2**attempt)
            for attempt in range(attempts - 1)
        )
        return self._settings.upstream_timeout_seconds * attempts + backoff

    def _record_failure(self, job: _SourceJob, error: AggregationError) -> SourceFailure:
        failure = SourceFailure.from_error(
            error,
            cluster_id=job.cluster_id,
            destination_id=job.destination_id,
            document_path=job.document_path,
        )
        SOURCE_FAILURES.labels(cluster=job.cluster_id, kind=failure.kind).inc()
        logger.warning(
            "aggregation.source_skipped",
            extra={"extra_fields": failure.model_dump(by_alias=True)},
        )
        return failure

    def _default_client(
        self, cluster_id: str, destination_id: str, destination: Destination
    ) -> DocumentClient:
        return DocumentClient(
            cluster_id=cluster_id,
            destination_id=destination_id,
            destination=destination,
            timeout_seconds=self._settings.upstream_timeout_seconds,
            max_retries=self._settings.upstream_max_retries,
            retry_backoff_seconds=self._settings.upstream_retry_backoff_seconds,
        )
