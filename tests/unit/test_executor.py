from __future__ import annotations

import logging

import pytest
from botocore.exceptions import EndpointConnectionError

from _accounts import executor
from dynaplan_py.errors import (
    ConditionFailedError,
    ConnectionFailedError,
    QueryRequiresTableScanError,
    TransactionCanceledError,
    ValidationError,
)
from dynaplan_py.executor import MAX_TRANSACTION_ACTIONS, DynamoDBExecutor
from dynaplan_py.mocks import FakeDynamoDBClient
from dynaplan_py.testkit import client_error, transaction_canceled


def test_get_item_is_consistent_by_default() -> None:
    client = FakeDynamoDBClient()
    client.expect("get_item", {"TableName": "t", "Key": {"pk": {"S": "a"}}, "ConsistentRead": True}, response={})

    assert executor(client).get_item("t", {"pk": {"S": "a"}}) is None
    client.assert_no_pending()


def test_table_names_use_the_configured_prefix() -> None:
    assert executor(FakeDynamoDBClient(), table_name_prefix="dev-").table_name("accounts") == "dev-accounts"


def test_scans_are_refused_unless_allowed() -> None:
    client = FakeDynamoDBClient()
    with pytest.raises(QueryRequiresTableScanError):
        executor(client).scan(TableName="t")
    assert client.calls == []


def test_client_errors_are_mapped_and_chained() -> None:
    client = FakeDynamoDBClient()
    client.expect("put_item", error=client_error("ConditionalCheckFailedException", "exists", operation="PutItem"))

    with pytest.raises(ConditionFailedError) as excinfo:
        executor(client).put_item(TableName="t", Item={})
    assert excinfo.value.__cause__ is not None


def test_connection_errors_are_mapped() -> None:
    client = FakeDynamoDBClient()
    client.expect("delete_item", error=EndpointConnectionError(endpoint_url="http://localhost:8000"))

    with pytest.raises(ConnectionFailedError):
        executor(client).delete_item(TableName="t", Key={})


def test_transactions_map_cancellations() -> None:
    client = FakeDynamoDBClient()
    client.expect("transact_write_items", {"TransactItems": [{"Put": {"TableName": "t"}}]}, error=transaction_canceled("ConditionalCheckFailed"))

    with pytest.raises(TransactionCanceledError) as excinfo:
        executor(client).transact_write_items([{"Put": {"TableName": "t", "Item": {}}}])
    assert excinfo.value.reason_codes == ("ConditionalCheckFailed",)


def test_transactions_validate_their_size() -> None:
    ex = executor(FakeDynamoDBClient())
    with pytest.raises(ValidationError, match="required"):
        ex.transact_write_items([])
    with pytest.raises(ValidationError, match="at most"):
        ex.transact_write_items([{"Put": {}}] * (MAX_TRANSACTION_ACTIONS + 1))


def test_queries_are_logged_at_debug(caplog: pytest.LogCaptureFixture) -> None:
    client = FakeDynamoDBClient()
    client.expect("query", response={"Items": []})

    with caplog.at_level(logging.DEBUG, logger="dynaplan_py.executor"):
        executor(client).query(TableName="t", KeyConditionExpression="#pk = :pk_1")

    assert "#pk = :pk_1" in caplog.text


def test_executor_builds_a_client_from_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    created: list[object] = []

    def fake_factory(settings: object) -> FakeDynamoDBClient:
        created.append(settings)
        return FakeDynamoDBClient()

    monkeypatch.setattr("dynaplan_py.executor.create_dynamodb_client", fake_factory)
    ex = DynamoDBExecutor()
    assert created == [ex.settings]
