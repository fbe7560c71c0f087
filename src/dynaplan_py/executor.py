from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from .attributes import AttributeValue
from .aws_errors import map_botocore_error, map_client_error, map_transaction_error
from .config import DataSourceSettings, create_dynamodb_client
from .errors import QueryRequiresTableScanError, ValidationError

logger = logging.getLogger(__name__)

MAX_TRANSACTION_ACTIONS = 100


class DynamoDBExecutor:
    """Performs single store calls and classifies their failures."""

    def __init__(self, client: Any | None = None, *, settings: DataSourceSettings | None = None) -> None:
        self._settings = settings or DataSourceSettings()
        self._client: Any = client or create_dynamodb_client(self._settings)

    @property
    def settings(self) -> DataSourceSettings:
        return self._settings

    def table_name(self, name: str) -> str:
        return self._settings.table_name(name)

    def get_item(
        self,
        table_name: str,
        key: Mapping[str, AttributeValue],
        *,
        consistent_read: bool = True,
    ) -> dict[str, AttributeValue] | None:
        resp = self._call(
            "get_item",
            {"TableName": table_name, "Key": dict(key), "ConsistentRead": consistent_read},
        )
        item = resp.get("Item")
        return dict(item) if item else None

    def put_item(self, **req: Any) -> Mapping[str, Any]:
        return self._call("put_item", req)

    def update_item(self, **req: Any) -> Mapping[str, Any]:
        return self._call("update_item", req)

    def delete_item(self, **req: Any) -> Mapping[str, Any]:
        return self._call("delete_item", req)

    def query(self, **req: Any) -> Mapping[str, Any]:
        logger.debug("query on %s: %s", req.get("IndexName") or req.get("TableName"), req.get("KeyConditionExpression"))
        return self._call("query", req)

    def scan(self, **req: Any) -> Mapping[str, Any]:
        if not self._settings.allow_table_scans:
            raise QueryRequiresTableScanError()
        logger.debug("scan on %s: %s", req.get("TableName"), req.get("FilterExpression"))
        return self._call("scan", req)

    def transact_write_items(self, transact_items: Sequence[Mapping[str, Any]]) -> None:
        if not transact_items:
            raise ValidationError("transact_items is required")
        if len(transact_items) > MAX_TRANSACTION_ACTIONS:
            raise ValidationError(f"a transaction supports at most {MAX_TRANSACTION_ACTIONS} actions")
        self._call("transact_write_items", {"TransactItems": list(transact_items)}, map_transaction_error)

    def _call(
        self,
        method: str,
        req: dict[str, Any],
        map_error: Callable[[ClientError], Exception] = map_client_error,
    ) -> Mapping[str, Any]:
        try:
            return getattr(self._client, method)(**req) or {}
        except ClientError as err:
            raise map_error(err) from err
        except BotoCoreError as err:
            raise map_botocore_error(err) from err
