from __future__ import annotations

import pytest

from _accounts import (
    ACCOUNT_ID,
    BY_USER_NAME,
    EMAIL,
    IS_ACTIVE,
    PK,
    ROLES,
    USER_NAME,
    USER_NAME_INDEX,
    USER_NAME_INITIAL,
)
from dynaplan_py.attributes import NumberAttribute, StringAttribute
from dynaplan_py.catalog import Index, MainItemMarker
from dynaplan_py.expressions import AttributeExpression, AttributeOperator, DisjunctiveNormalForm, Product
from dynaplan_py.planner import BetweenRange, BinaryRange, KeyCondition
from dynaplan_py.request_builder import (
    DynamoDBQuery,
    DynamoDBScan,
    build_main_items_scan,
    build_query,
    build_scan,
)

OWNER = StringAttribute("owner")
CREATED = NumberAttribute("created")
OWNER_CREATED = Index.secondary("owner-created-index", OWNER, CREATED)


def term(attr, op: AttributeOperator, value=None) -> AttributeExpression:  # type: ignore[no-untyped-def]
    return AttributeExpression(attr, op, value)


def test_partition_only_query_uses_the_uniqueness_value() -> None:
    condition = KeyCondition(BY_USER_NAME, term(BY_USER_NAME.partition, AttributeOperator.EQ, "alice"))
    query = build_query(condition, [Product.of(IS_ACTIVE)])

    assert query == DynamoDBQuery(
        index_name=None,
        key_expression="#pk = :pk_1",
        filter_expression="(#active = :active_1)",
        names={"#pk": "pk", "#active": "active"},
        values={":pk_1": {"S": "un#alice"}, ":active_1": {"BOOL": True}},
    )


def test_starts_with_query_uses_the_prefix_partition_and_begins_with() -> None:
    condition = KeyCondition(
        USER_NAME_INDEX,
        term(USER_NAME_INITIAL, AttributeOperator.EQ, "alice"),
        BinaryRange(term(USER_NAME, AttributeOperator.SW, "alice")),
    )
    query = build_query(condition, ascending=False)

    assert query.index_name == "userNameInitial-userName-index"
    assert query.key_expression == "#userNameInitial = :userNameInitial_1 AND begins_with(#userName, :userName_1)"
    assert query.values == {":userNameInitial_1": {"S": "ali"}, ":userName_1": {"S": "alice"}}
    assert query.filter_expression is None
    assert query.scan_forward is False


def test_between_range_uses_two_value_placeholders() -> None:
    condition = KeyCondition(OWNER_CREATED, term(OWNER, AttributeOperator.EQ, "o1"), BetweenRange(CREATED, 1, 9))
    query = build_query(condition)

    assert query.key_expression == "#owner = :owner_1 AND #created BETWEEN :created_1 AND :created_2"
    assert query.values == {":owner_1": {"S": "o1"}, ":created_1": {"N": "1"}, ":created_2": {"N": "9"}}


def test_repeated_attribute_gets_distinct_value_placeholders() -> None:
    condition = KeyCondition(
        OWNER_CREATED,
        term(OWNER, AttributeOperator.EQ, "o1"),
        BinaryRange(term(CREATED, AttributeOperator.GT, 1)),
    )
    query = build_query(condition, [Product.of(term(CREATED, AttributeOperator.NE, 5))])

    assert query.key_expression == "#owner = :owner_1 AND #created > :created_1"
    assert query.filter_expression == "(#created <> :created_2)"
    assert query.values[":created_1"] == {"N": "1"}
    assert query.values[":created_2"] == {"N": "5"}


def test_products_sharing_a_key_condition_are_or_combined() -> None:
    condition = KeyCondition(BY_USER_NAME, term(BY_USER_NAME.partition, AttributeOperator.EQ, "alice"))
    query = build_query(
        condition,
        [Product.of(term(CREATED, AttributeOperator.GT, 5)), Product.of(IS_ACTIVE, term(EMAIL, AttributeOperator.SW, "al"))],
    )

    assert query.filter_expression == (
        "((#active = :active_1) AND (begins_with(#email, :email_1))) OR ((#created > :created_1))"
    )


def test_an_unrestricted_product_removes_the_filter() -> None:
    condition = KeyCondition(BY_USER_NAME, term(BY_USER_NAME.partition, AttributeOperator.EQ, "alice"))
    query = build_query(condition, [Product.of(IS_ACTIVE), Product.of()])
    assert query.filter_expression is None


@pytest.mark.parametrize(
    ("expression", "fragment", "values"),
    [
        (term(EMAIL, AttributeOperator.NE, "a"), "#email <> :email_1", {":email_1": {"S": "a"}}),
        (term(EMAIL, AttributeOperator.CO, "a"), "contains(#email, :email_1)", {":email_1": {"S": "a"}}),
        (term(EMAIL, AttributeOperator.NOT_CO, "a"), "NOT contains(#email, :email_1)", {":email_1": {"S": "a"}}),
        (term(EMAIL, AttributeOperator.NOT_SW, "a"), "NOT begins_with(#email, :email_1)", {":email_1": {"S": "a"}}),
        (term(CREATED, AttributeOperator.GE, 2), "#created >= :created_1", {":created_1": {"N": "2"}}),
        (term(CREATED, AttributeOperator.LT, 2), "#created < :created_1", {":created_1": {"N": "2"}}),
        (term(CREATED, AttributeOperator.LE, 2), "#created <= :created_1", {":created_1": {"N": "2"}}),
        (
            term(EMAIL, AttributeOperator.PR),
            "attribute_exists(#email) AND size(#email) > :email_1",
            {":email_1": {"N": "0"}},
        ),
        (term(CREATED, AttributeOperator.PR), "attribute_exists(#created)", {}),
        (term(ROLES, AttributeOperator.CO, "admin"), "contains(#roles, :roles_1)", {":roles_1": {"S": "admin"}}),
    ],
)
def test_operator_fragments(expression: AttributeExpression, fragment: str, values: dict) -> None:
    scan = build_scan(DisjunctiveNormalForm.of(Product.of(expression)))
    assert scan.filter_expression == f"({fragment})"
    assert scan.values == values


def test_placeholder_names_are_sanitized() -> None:
    scan = build_scan(DisjunctiveNormalForm.of(Product.of(term(StringAttribute("emails.value"), AttributeOperator.EQ, "a"))))
    assert scan.filter_expression == "(#emails_value = :emails_value_1)"
    assert scan.names == {"#emails_value": "emails.value"}


def test_scan_without_restriction_has_no_filter() -> None:
    assert build_scan(DisjunctiveNormalForm.empty()) == DynamoDBScan()
    assert DynamoDBScan().to_request("accounts", limit=5) == {"TableName": "accounts", "Limit": 5}


def test_main_items_scan_combines_with_the_filter() -> None:
    main = build_main_items_scan(MainItemMarker(PK, ACCOUNT_ID.prefix))
    assert main.filter_expression == "begins_with(#pk, :main_pk_1)"
    assert main.values == {":main_pk_1": {"S": "ai#"}}

    combined = main.and_also(build_scan(DisjunctiveNormalForm.of(Product.of(IS_ACTIVE))))
    assert combined.filter_expression == "(begins_with(#pk, :main_pk_1)) AND ((#active = :active_1))"
    assert combined.names == {"#pk": "pk", "#active": "active"}
    assert combined.values == {":main_pk_1": {"S": "ai#"}, ":active_1": {"BOOL": True}}
    assert main.and_also(DynamoDBScan()) is main


def test_query_request_shape() -> None:
    condition = KeyCondition(BY_USER_NAME, term(BY_USER_NAME.partition, AttributeOperator.EQ, "alice"))
    req = build_query(condition).to_request(
        "accounts",
        limit=10,
        exclusive_start_key={"pk": {"S": "un#alice"}},
        consistent_read=True,
    )
    assert req == {
        "TableName": "accounts",
        "KeyConditionExpression": "#pk = :pk_1",
        "ExpressionAttributeNames": {"#pk": "pk"},
        "ExpressionAttributeValues": {":pk_1": {"S": "un#alice"}},
        "ScanIndexForward": True,
        "ConsistentRead": True,
        "Limit": 10,
        "ExclusiveStartKey": {"pk": {"S": "un#alice"}},
    }


def test_secondary_index_queries_are_never_consistent() -> None:
    condition = KeyCondition(OWNER_CREATED, term(OWNER, AttributeOperator.EQ, "o1"))
    req = build_query(condition).to_request("devices", consistent_read=True, select_count=True)
    assert req["IndexName"] == "owner-created-index"
    assert "ConsistentRead" not in req
    assert req["Select"] == "COUNT"
