"""Process configuration, read from the environment.

Example:
    settings = Settings.from_env()
    adapter = OpenSearchAdapter.from_settings(settings)
"""

from __future__ import annotations

import os
from typing import List, Literal, Mapping, Optional

from pydantic import BaseModel, Field, SecretStr, field_validator


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    # OpenSearch
    opensearch_addresses: List[str] = Field(default_factory=lambda: ["http://localhost:9200"])
    opensearch_index: str = Field(default="casbin_policies", min_length=1)
    opensearch_username: Optional[str] = None
    opensearch_password: Optional[SecretStr] = None
    opensearch_verify_certs: bool = True
    opensearch_timeout: float = Field(default=10.0, gt=0)

    # Policy loading and enforcement
    extraction: Literal["header_role", "query_admin"] = "header_role"
    refresh_interval: float = Field(default=60.0, gt=0)
    page_size: int = Field(default=1000, gt=0, le=10000)
    scroll_ttl: str = "1m"
    legacy_load: bool = False
    model_path: Optional[str] = None

    # Service
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = Field(default=3000, gt=0, lt=65536)
    admin_token: Optional[SecretStr] = None

    @field_validator("opensearch_addresses")
    @classmethod
    def _chk_addresses(cls, v: List[str]) -> List[str]:
        hosts = [h.strip() for h in v if h.strip()]
        if not hosts:
            raise ValueError("at least one OpenSearch address is required")
        return hosts

    @field_validator("log_level")
    @classmethod
    def _chk_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError("log_level must be DEBUG|INFO|WARNING|ERROR|CRITICAL")
        return v

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        values: dict = {}

        def take(key: str, name: str, convert=lambda x: x) -> None:
            raw = env.get(key)
            if raw is not None and raw != "":
                values[name] = convert(raw)

        take("OPENSEARCH_ADDRESSES", "opensearch_addresses", lambda s: s.split(","))
        take("OPENSEARCH_INDEX", "opensearch_index")
        take("OPENSEARCH_USERNAME", "opensearch_username")
        take("OPENSEARCH_PASSWORD", "opensearch_password")
        take("OPENSEARCH_VERIFY_CERTS", "opensearch_verify_certs", _env_bool)
        take("OPENSEARCH_TIMEOUT", "opensearch_timeout")
        take("OSRBAC_EXTRACTION", "extraction")
        take("OSRBAC_REFRESH_INTERVAL", "refresh_interval")
        take("OSRBAC_PAGE_SIZE", "page_size")
        take("OSRBAC_SCROLL_TTL", "scroll_ttl")
        take("OSRBAC_LEGACY_LOAD", "legacy_load", _env_bool)
        take("MODEL_PATH", "model_path")
        take("OSRBAC_LOG_LEVEL", "log_level")
        take("OSRBAC_HOST", "host")
        take("OSRBAC_PORT", "port")
        take("OSRBAC_ADMIN_TOKEN", "admin_token")
        return cls(**values)
