from functools import lru_cache

from fastapi import Depends

from openapi_gateway.services.aggregation_engine import AggregationEngine
from openapi_gateway.services.config_store import ProxyConfigStore


@lru_cache
def get_config_store() -> ProxyConfigStore:
    return ProxyConfigStore()


def get_aggregation_engine(
    store: ProxyConfigStore = Depends(get_config_store),
) -> AggregationEngine:
    return AggregationEngine(config_store=store)
