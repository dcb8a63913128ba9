import json
import logging
import threading
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from openapi_gateway.config import Settings, settings
from openapi_gateway.errors import ConfigurationError
from openapi_gateway.models.document import load_yaml
from openapi_gateway.models.routing import ProxyConfig

logger = logging.getLogger("openapi_gateway.config")


def parse_proxy_config(raw: str, *, as_yaml: bool = False) -> ProxyConfig:
    try:
        payload: Any = load_yaml(raw) if as_yaml else json.loads(raw or "{}")
    except (ValueError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"routing configuration is not parseable: {exc}") from exc
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ConfigurationError("routing configuration must be a mapping")
    try:
        return ProxyConfig.model_validate(payload)
    except ValidationError as exc:
        raise ConfigurationError(f"routing configuration is invalid: {exc}") from exc


class ProxyConfigStore:
    """Holds the current routing snapshot and swaps it on change.

    Readers call ``current()`` and get a complete snapshot; a reload
    replaces the reference in one assignment and never edits a snapshot
    that a running aggregation may still be reading.
    """

    def __init__(self, app_settings: Settings | None = None):
        self._settings = app_settings or settings
        self._lock = threading.Lock()
        self._snapshot = ProxyConfig()
        self._mtime_ns: int | None = None
        self._loaded = False

    @property
    def _path(self) -> Path | None:
        if not self._settings.proxy_config_path:
            return None
        return Path(self._settings.proxy_config_path)

    def current(self) -> ProxyConfig:
        if not self._loaded or self._file_changed():
            try:
                self.reload()
            except ConfigurationError:
                if not self._loaded:
                    raise
                logger.warning(
                    "config.reload_failed",
                    extra={"extra_fields": {"path": str(self._path)}},
                    exc_info=True,
                )
        return self._snapshot

    def reload(self) -> ProxyConfig:
        with self._lock:
            path = self._path
            if path is None:
                snapshot = parse_proxy_config(self._settings.proxy_config_json)
                mtime_ns = None
            else:
                try:
                    mtime_ns = path.stat().st_mtime_ns
                    raw = path.read_text(encoding="utf-8")
                except OSError as exc:
                    raise ConfigurationError(f"cannot read routing configuration: {exc}") from exc
                snapshot = parse_proxy_config(raw, as_yaml=path.suffix in {".yaml", ".yml"})
            self._snapshot = snapshot
            self._mtime_ns = mtime_ns
            self._loaded = True
        logger.info(
            "config.reloaded",
            extra={
                "extra_fields": {
                    "routes": len(snapshot.routes),
                    "clusters": len(snapshot.clusters),
                }
            },
        )
        return snapshot

    def _file_changed(self) -> bool:
        path = self._path
        if path is None:
            return False
        try:
            return path.stat().st_mtime_ns != self._mtime_ns
        except OSError:
            return False
