from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .attributes import AttributeValue


@dataclass(frozen=True)
class Condition:
    expression: str
    names: Mapping[str, str] = field(default_factory=dict)
    values: Mapping[str, AttributeValue] = field(default_factory=dict)

    def and_(self, other: Condition) -> Condition:
        return Condition(
            expression=f"({self.expression}) AND ({other.expression})",
            names={**self.names, **other.names},
            values={**self.values, **other.values},
        )

    def apply_to(self, req: dict[str, Any]) -> dict[str, Any]:
        req["ConditionExpression"] = self.expression
        if self.names:
            req["ExpressionAttributeNames"] = dict(self.names)
        if self.values:
            req["ExpressionAttributeValues"] = dict(self.values)
        return req


@dataclass(frozen=True)
class TransactPut:
    item: Mapping[str, AttributeValue]
    condition: Condition | None = None


@dataclass(frozen=True)
class TransactDelete:
    key: Mapping[str, AttributeValue]
    condition: Condition | None = None


type TransactWriteAction = TransactPut | TransactDelete


def to_transact_item(action: TransactWriteAction, table_name: str) -> dict[str, Any]:
    if isinstance(action, TransactPut):
        req: dict[str, Any] = {"TableName": table_name, "Item": dict(action.item)}
        if action.condition is not None:
            action.condition.apply_to(req)
        return {"Put": req}

    if isinstance(action, TransactDelete):
        req = {"TableName": table_name, "Key": dict(action.key)}
        if action.condition is not None:
            action.condition.apply_to(req)
        return {"Delete": req}

    raise TypeError(f"unsupported transaction action: {type(action).__name__}")
