import re

from openapi_gateway.errors import ConfigurationError
from openapi_gateway.models.document import HTTP_METHODS, ApiDocument, operations
from openapi_gateway.models.routing import ProxyConfig, SourceDescriptor

# A whitelist value of None means every method is published for that path.
PublishedPaths = dict[str, frozenset[str] | None]


def join_path(prefix: str, key: str) -> str:
    if not prefix:
        return key
    if prefix.endswith("/") and key.startswith("/"):
        return prefix + key[1:]
    return prefix + key


def published_paths(config: ProxyConfig) -> PublishedPaths:
    whitelist: PublishedPaths = {}
    for route in config.routes.values():
        path = route.match.path
        if path is None:
            continue
        methods = route.match.methods
        if path in whitelist and whitelist[path] is None:
            continue
        if methods is None:
            whitelist[path] = None
        else:
            whitelist[path] = (whitelist.get(path) or frozenset()) | frozenset(methods)
    return whitelist


def compile_filter(source: SourceDescriptor) -> re.Pattern[str] | None:
    if not source.filter_pattern or not source.filter_pattern.strip():
        return None
    try:
        return re.compile(source.filter_pattern)
    except re.error as exc:
        raise ConfigurationError(
            f"invalid path filter pattern {source.filter_pattern!r}: {exc}"
        ) from exc


class PathFilter:
    """Prunes a fetched document down to the operations the gateway exposes.

    Path items whose operations are all removed by the published-route
    whitelist are dropped from the document rather than kept empty.
    """

    def __init__(self, config: ProxyConfig):
        self._whitelist: PublishedPaths | None = None
        self._config = config

    @property
    def whitelist(self) -> PublishedPaths:
        if self._whitelist is None:
            self._whitelist = published_paths(self._config)
        return self._whitelist

    def filter(self, document: ApiDocument, source: SourceDescriptor) -> ApiDocument:
        pattern = compile_filter(source)
        kept: dict[str, dict] = {}
        for key, path_item in document.paths.items():
            if pattern is not None and not pattern.fullmatch(key):
                continue
            if source.only_published_paths:
                pruned = self._restrict_methods(join_path(source.path_prefix, key), path_item)
                if pruned is None:
                    continue
                path_item = pruned
            kept[key] = path_item
        return document.model_copy(update={"paths": kept})

    def _restrict_methods(self, prefixed_key: str, path_item: dict) -> dict | None:
        if prefixed_key not in self.whitelist:
            return None
        allowed = self.whitelist[prefixed_key]
        if allowed is None:
            return path_item
        pruned = {
            key: value
            for key, value in path_item.items()
            if key.lower() not in HTTP_METHODS or key.upper() in allowed
        }
        if not operations(pruned):
            return None
        return pruned
