from __future__ import annotations

import pytest

from _accounts import ACCOUNTS, BY_USER_NAME, IS_ACTIVE, USER_NAME, USER_NAME_INDEX
from dynaplan_py.catalog import Index
from dynaplan_py.expressions import AttributeExpression, AttributeOperator, Product
from dynaplan_py.testkit import item
from dynaplan_py.transaction import Condition, TransactDelete, TransactPut, to_transact_item


def test_index_names_and_keys() -> None:
    assert BY_USER_NAME.is_primary
    assert str(BY_USER_NAME) == "primary"
    assert str(USER_NAME_INDEX) == "userNameInitial-userName-index"
    assert USER_NAME_INDEX.key_attribute_names == ("userNameInitial", "userName")
    with pytest.raises(ValueError, match="name is required"):
        Index.secondary("", USER_NAME)


def test_filter_keys_drops_terms_resolved_by_the_index() -> None:
    starts = AttributeExpression(USER_NAME, AttributeOperator.SW, "ali")
    assert USER_NAME_INDEX.filter_keys(Product.of(starts, IS_ACTIVE)) == Product.of(IS_ACTIVE)


def test_key_from_adds_index_keys() -> None:
    raw = item(pk="ai#1", userNameInitial="ali", userName="alice", active=True)
    assert ACCOUNTS.key_from(raw) == {"pk": {"S": "ai#1"}}
    assert ACCOUNTS.key_from(raw, USER_NAME_INDEX) == {
        "pk": {"S": "ai#1"},
        "userNameInitial": {"S": "ali"},
        "userName": {"S": "alice"},
    }
    assert ACCOUNTS.table_name("dev-") == "dev-accounts"


def test_conditions_combine_and_apply() -> None:
    absent = Condition("attribute_not_exists(#pk)", names={"#pk": "pk"})
    version = Condition("#version = :v", names={"#version": "version"}, values={":v": {"N": "1"}})
    both = absent.and_(version)

    assert both.expression == "(attribute_not_exists(#pk)) AND (#version = :v)"
    assert both.apply_to({}) == {
        "ConditionExpression": "(attribute_not_exists(#pk)) AND (#version = :v)",
        "ExpressionAttributeNames": {"#pk": "pk", "#version": "version"},
        "ExpressionAttributeValues": {":v": {"N": "1"}},
    }


def test_transact_items_wire_form() -> None:
    absent = Condition("attribute_not_exists(#pk)", names={"#pk": "pk"})
    assert to_transact_item(TransactPut({"pk": {"S": "a"}}, absent), "t") == {
        "Put": {
            "TableName": "t",
            "Item": {"pk": {"S": "a"}},
            "ConditionExpression": "attribute_not_exists(#pk)",
            "ExpressionAttributeNames": {"#pk": "pk"},
        }
    }
    assert to_transact_item(TransactDelete({"pk": {"S": "a"}}), "t") == {
        "Delete": {"TableName": "t", "Key": {"pk": {"S": "a"}}}
    }
    with pytest.raises(TypeError, match="unsupported"):
        to_transact_item("put", "t")  # type: ignore[arg-type]
