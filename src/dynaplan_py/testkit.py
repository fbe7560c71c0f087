from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

from .mocks import ANY, FakeDynamoDBClient, InMemoryDynamoDBClient

_serializer = TypeSerializer()


def item(**values: Any) -> dict[str, Any]:
    """A wire item from plain Python values, ``None`` values left out."""
    return {name: _serializer.serialize(value) for name, value in values.items() if value is not None}


def client_error(
    code: str,
    message: str = "",
    *,
    operation: str = "Query",
    status: int = 400,
    extra: Mapping[str, Any] | None = None,
) -> ClientError:
    response: dict[str, Any] = {
        "Error": {"Code": code, "Message": message},
        "ResponseMetadata": {"HTTPStatusCode": status},
    }
    response.update(extra or {})
    return ClientError(response, operation)  # type: ignore[arg-type]


def transaction_canceled(*codes: str) -> ClientError:
    """A ``TransactionCanceledException`` with one cancellation reason per action, in order."""
    return client_error(
        "TransactionCanceledException",
        "Transaction cancelled, please refer cancellation reasons for specific reasons",
        operation="TransactWriteItems",
        extra={"CancellationReasons": [{"Code": code} for code in codes]},
    )


__all__ = [
    "ANY",
    "FakeDynamoDBClient",
    "InMemoryDynamoDBClient",
    "client_error",
    "item",
    "transaction_canceled",
]
