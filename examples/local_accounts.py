from __future__ import annotations

import os
import uuid

import boto3

from dynaplan_py import (
    AttributeExpression,
    AttributeOperator,
    BooleanAttribute,
    DataSourceSettings,
    DynamoDBExecutor,
    FilterCondition,
    Index,
    KeyStringAttribute,
    MainItemMarker,
    NumberAttribute,
    StartsWithAttribute,
    Table,
    TableCapabilities,
    TableDefinition,
    UniqueEntitySchema,
    UniqueItemStore,
    UniquenessBasedIndexAttribute,
    UniqueStringAttribute,
    attribute_map_from,
)
from dynaplan_py.testkit import item

PK = KeyStringAttribute("pk")
ACCOUNT_ID = UniqueStringAttribute("accountId", "ai#")
USER_NAME = UniqueStringAttribute("userName", "un#")
USER_NAME_INITIAL = StartsWithAttribute("userNameInitial", USER_NAME, 3)
ACTIVE = BooleanAttribute("active")
VERSION = NumberAttribute("version")


def _client():
    return boto3.client(
        "dynamodb",
        endpoint_url=os.environ.get("DYNAMODB_ENDPOINT", "http://localhost:8000"),
        region_name=os.environ.get("AWS_REGION", "us-east-1"),
        aws_access_key_id=os.environ.get("AWS_ACCESS_KEY_ID", "dummy"),
        aws_secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY", "dummy"),
    )


def main() -> None:
    client = _client()
    table_name = f"dynaplan_py_example_{uuid.uuid4().hex[:12]}"

    client.create_table(
        TableName=table_name,
        KeySchema=[{"AttributeName": "pk", "KeyType": "HASH"}],
        AttributeDefinitions=[
            {"AttributeName": "pk", "AttributeType": "S"},
            {"AttributeName": "userNameInitial", "AttributeType": "S"},
            {"AttributeName": "userName", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": "userNameInitial-userName-index",
                "KeySchema": [
                    {"AttributeName": "userNameInitial", "KeyType": "HASH"},
                    {"AttributeName": "userName", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            }
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    client.get_waiter("table_exists").wait(TableName=table_name)

    try:
        executor = DynamoDBExecutor(client, settings=DataSourceSettings())
        store = UniqueItemStore(
            UniqueEntitySchema(
                table_name=table_name,
                key=PK,
                id=ACCOUNT_ID,
                version=VERSION,
                unique_attributes=(USER_NAME,),
                main_only=(USER_NAME_INITIAL,),
            ),
            executor,
        )
        accounts = Table(
            TableDefinition(
                name=table_name,
                primary_key=(PK,),
                capabilities=TableCapabilities(
                    indexes=(
                        Index.primary(UniquenessBasedIndexAttribute(PK, ACCOUNT_ID)),
                        Index.primary(UniquenessBasedIndexAttribute(PK, USER_NAME)),
                        Index.secondary("userNameInitial-userName-index", USER_NAME_INITIAL, USER_NAME),
                    ),
                    attribute_map=attribute_map_from(ACCOUNT_ID, USER_NAME, USER_NAME_INITIAL, ACTIVE),
                ),
                id_attribute=ACCOUNT_ID,
                main_item_marker=MainItemMarker(PK, ACCOUNT_ID.prefix),
            ),
            executor=executor,
            active=AttributeExpression(ACTIVE, AttributeOperator.EQ, True),
        )

        store.create(item(accountId="a1", userName="alice", active=True))
        store.create(item(accountId="a2", userName="alicia", active=False))
        store.create(item(accountId="a3", userName="bob", active=True))

        print("by user name:", store.get_by_unique(USER_NAME, "alice"))
        print("updated:", store.update("a2", item(userName="ali", active=True)))

        page = accounts.find(FilterCondition.starts_with("userName", "ali"), sort_by="userName", active_only=True)
        print("starts with 'ali':", [entry["userName"]["S"] for entry in page.items])

        print("deleted:", store.delete("a3"))
    finally:
        client.delete_table(TableName=table_name)


if __name__ == "__main__":
    main()
