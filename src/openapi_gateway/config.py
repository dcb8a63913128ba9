from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    proxy_config_path: str | None = Field(None, alias="PROXY_CONFIG_PATH")
    proxy_config_json: str = Field("{}", alias="PROXY_CONFIG_JSON")
    openapi_version: str = Field("3.0.1", alias="OPENAPI_VERSION")
    document_title: str = Field("API Gateway", alias="DOCUMENT_TITLE")
    document_version: str = Field("v1", alias="DOCUMENT_VERSION")
    upstream_timeout_seconds: float = Field(10.0, alias="UPSTREAM_TIMEOUT_SECONDS")
    upstream_max_retries: int = Field(2, alias="UPSTREAM_MAX_RETRIES")
    upstream_retry_backoff_seconds: float = Field(0.2, alias="UPSTREAM_RETRY_BACKOFF_SECONDS")
    fetch_max_concurrency: int = Field(8, alias="FETCH_MAX_CONCURRENCY")
    fail_on_fetch_error: bool = Field(False, alias="FAIL_ON_FETCH_ERROR")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
