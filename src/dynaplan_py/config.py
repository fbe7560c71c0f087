from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, cast

import boto3
from botocore.config import Config

from .attributes import TenantAwareUniqueStringAttribute
from .planner import MAX_QUERIES
from .query import DEFAULT_PAGE_SIZE

ENV_PREFIX = "DYNAPLAN_"
TRANSACTION_ATTEMPTS = 3


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None or not value.strip():
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"invalid boolean value: {value!r}")


def _env_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


def _env_float(value: str | None, default: float) -> float:
    if value is None or not value.strip():
        return default
    return float(value)


@dataclass(frozen=True)
class DataSourceSettings:
    table_name_prefix: str = ""
    tenant_id: str | None = None
    allow_table_scans: bool = False
    max_queries: int = MAX_QUERIES
    default_page_size: int = DEFAULT_PAGE_SIZE
    transaction_attempts: int = TRANSACTION_ATTEMPTS
    region: str | None = None
    endpoint_url: str | None = None
    connect_timeout: float = 1.0
    read_timeout: float = 3.0
    max_attempts: int = 3

    def __post_init__(self) -> None:
        if self.max_queries <= 0:
            raise ValueError("max_queries must be > 0")
        if self.default_page_size <= 0:
            raise ValueError("default_page_size must be > 0")
        if self.transaction_attempts <= 0:
            raise ValueError("transaction_attempts must be > 0")

    def table_name(self, name: str) -> str:
        return f"{self.table_name_prefix}{name}"

    def unique_attribute(self, name: str, prefix: str) -> TenantAwareUniqueStringAttribute:
        """A unique attribute whose values are scoped to the configured tenant."""
        return TenantAwareUniqueStringAttribute(name, prefix, tenant_id=self.tenant_id)

    @staticmethod
    def from_env(environ: Mapping[str, str] = os.environ) -> DataSourceSettings:
        def get(key: str) -> str | None:
            return environ.get(ENV_PREFIX + key)

        return DataSourceSettings(
            table_name_prefix=get("TABLE_NAME_PREFIX") or "",
            tenant_id=(get("TENANT_ID") or "").strip() or None,
            allow_table_scans=_env_bool(get("ALLOW_TABLE_SCANS"), False),
            max_queries=_env_int(get("MAX_QUERIES"), MAX_QUERIES),
            default_page_size=_env_int(get("DEFAULT_PAGE_SIZE"), DEFAULT_PAGE_SIZE),
            transaction_attempts=_env_int(get("TRANSACTION_ATTEMPTS"), TRANSACTION_ATTEMPTS),
            region=get("REGION") or environ.get("AWS_REGION") or None,
            endpoint_url=get("ENDPOINT_URL") or None,
            connect_timeout=_env_float(get("CONNECT_TIMEOUT"), 1.0),
            read_timeout=_env_float(get("READ_TIMEOUT"), 3.0),
            max_attempts=_env_int(get("MAX_ATTEMPTS"), 3),
        )


def create_boto3_config(settings: DataSourceSettings) -> Config:
    return Config(
        connect_timeout=settings.connect_timeout,
        read_timeout=settings.read_timeout,
        retries={"max_attempts": settings.max_attempts, "mode": "adaptive"},
    )


def create_dynamodb_client(settings: DataSourceSettings, *, session: Any | None = None) -> Any:
    sess = session or boto3.session.Session(region_name=settings.region)
    return cast(Any, sess).client(
        "dynamodb",
        region_name=settings.region,
        endpoint_url=settings.endpoint_url,
        config=create_boto3_config(settings),
    )
