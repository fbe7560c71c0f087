from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from .attributes import Attribute, AttributeValue
from .catalog import MainItemMarker
from .expressions import AttributeExpression, AttributeOperator, DisjunctiveNormalForm, Product
from .planner import BetweenRange, BinaryRange, KeyCondition, RangeCondition

_PLACEHOLDER_UNSAFE = re.compile(r"[^A-Za-z0-9_]")

_COMPARISONS: dict[AttributeOperator, str] = {
    AttributeOperator.EQ: "=",
    AttributeOperator.NE: "<>",
    AttributeOperator.GT: ">",
    AttributeOperator.GE: ">=",
    AttributeOperator.LT: "<",
    AttributeOperator.LE: "<=",
}


def _merge_names(left: Mapping[str, str], right: Mapping[str, str]) -> dict[str, str]:
    out = dict(left)
    for ref, name in right.items():
        existing = out.get(ref)
        if existing is not None and existing != name:
            raise ValueError(f"expression attribute name collision: {ref}")
        out[ref] = name
    return out


@dataclass(frozen=True)
class DynamoDBQuery:
    index_name: str | None
    key_expression: str
    filter_expression: str | None
    names: dict[str, str]
    values: dict[str, AttributeValue]
    scan_forward: bool = True

    def to_request(
        self,
        table_name: str,
        *,
        limit: int | None = None,
        exclusive_start_key: Mapping[str, AttributeValue] | None = None,
        consistent_read: bool = False,
        select_count: bool = False,
    ) -> dict[str, Any]:
        req: dict[str, Any] = {
            "TableName": table_name,
            "KeyConditionExpression": self.key_expression,
            "ExpressionAttributeNames": dict(self.names),
            "ExpressionAttributeValues": dict(self.values),
            "ScanIndexForward": self.scan_forward,
        }
        if self.index_name is not None:
            req["IndexName"] = self.index_name
        elif consistent_read:
            req["ConsistentRead"] = True
        if self.filter_expression:
            req["FilterExpression"] = self.filter_expression
        if limit is not None:
            req["Limit"] = limit
        if exclusive_start_key:
            req["ExclusiveStartKey"] = dict(exclusive_start_key)
        if select_count:
            req["Select"] = "COUNT"
        return req


@dataclass(frozen=True)
class DynamoDBScan:
    filter_expression: str | None = None
    names: dict[str, str] = field(default_factory=dict)
    values: dict[str, AttributeValue] = field(default_factory=dict)

    def and_also(self, other: DynamoDBScan) -> DynamoDBScan:
        """Both filters must hold. Placeholder values must not overlap."""
        if not other.filter_expression:
            return self
        if not self.filter_expression:
            return other
        overlap = set(self.values).intersection(other.values)
        if overlap:
            raise ValueError(f"expression attribute value collision: {sorted(overlap)}")
        return DynamoDBScan(
            filter_expression=f"({self.filter_expression}) AND ({other.filter_expression})",
            names=_merge_names(self.names, other.names),
            values={**self.values, **other.values},
        )

    def to_request(
        self,
        table_name: str,
        *,
        limit: int | None = None,
        exclusive_start_key: Mapping[str, AttributeValue] | None = None,
        select_count: bool = False,
    ) -> dict[str, Any]:
        req: dict[str, Any] = {"TableName": table_name}
        if self.filter_expression:
            req["FilterExpression"] = self.filter_expression
            if self.names:
                req["ExpressionAttributeNames"] = dict(self.names)
            if self.values:
                req["ExpressionAttributeValues"] = dict(self.values)
        if limit is not None:
            req["Limit"] = limit
        if exclusive_start_key:
            req["ExclusiveStartKey"] = dict(exclusive_start_key)
        if select_count:
            req["Select"] = "COUNT"
        return req


class _Placeholders:
    def __init__(self, value_prefix: str = "") -> None:
        self.names: dict[str, str] = {}
        self.values: dict[str, AttributeValue] = {}
        self._counters: dict[str, int] = {}
        self._value_prefix = value_prefix

    def name(self, attribute: Attribute[Any]) -> str:
        ref = "#" + _PLACEHOLDER_UNSAFE.sub("_", attribute.name)
        existing = self.names.get(ref)
        if existing is not None and existing != attribute.name:
            raise ValueError(f"expression attribute name collision: {ref}")
        self.names[ref] = attribute.name
        return ref

    def value(self, attribute: Attribute[Any], attr_value: AttributeValue) -> str:
        base = self._value_prefix + _PLACEHOLDER_UNSAFE.sub("_", attribute.name)
        counter = self._counters.get(base, 0) + 1
        self._counters[base] = counter
        ref = f":{base}_{counter}"
        self.values[ref] = attr_value
        return ref

    def term(self, term: AttributeExpression) -> str:
        attribute = term.attribute
        name = self.name(attribute)
        op = term.operator

        if op is AttributeOperator.PR:
            if attribute.has_size:
                zero = self.value(attribute, {"N": "0"})
                return f"attribute_exists({name}) AND size({name}) > {zero}"
            return f"attribute_exists({name})"

        value = self.value(attribute, attribute.to_literal_attr_value(term.value))
        if op in _COMPARISONS:
            return f"{name} {_COMPARISONS[op]} {value}"
        if op is AttributeOperator.CO:
            return f"contains({name}, {value})"
        if op is AttributeOperator.NOT_CO:
            return f"NOT contains({name}, {value})"
        if op is AttributeOperator.SW:
            return f"begins_with({name}, {value})"
        if op is AttributeOperator.NOT_SW:
            return f"NOT begins_with({name}, {value})"
        raise ValueError(f"unsupported operator: {op.value}")

    def range(self, condition: RangeCondition) -> str:
        if isinstance(condition, BetweenRange):
            name = self.name(condition.attribute)
            lower = self.value(condition.attribute, condition.attribute.to_literal_attr_value(condition.lower))
            upper = self.value(condition.attribute, condition.attribute.to_literal_attr_value(condition.upper))
            return f"{name} BETWEEN {lower} AND {upper}"
        if isinstance(condition, BinaryRange):
            if not condition.expression.operator.usable_on_sort_key:
                raise ValueError(f"operator cannot be used on a sort key: {condition.expression.operator.value}")
            return self.term(condition.expression)
        raise TypeError(f"unsupported range condition: {type(condition).__name__}")

    def products(self, products: Iterable[Product]) -> str | None:
        rendered: list[str] = []
        for product in products:
            terms = product.sorted_terms()
            if not terms:
                # One unrestricted product makes the whole disjunction true.
                return None
            rendered.append(" AND ".join(f"({self.term(term)})" for term in terms))

        if not rendered:
            return None
        if len(rendered) == 1:
            return rendered[0]
        return " OR ".join(f"({part})" for part in rendered)


def build_query(
    key_condition: KeyCondition,
    products: Iterable[Product] = (),
    *,
    ascending: bool = True,
) -> DynamoDBQuery:
    placeholders = _Placeholders()
    key_expression = placeholders.term(key_condition.partition)
    if key_condition.sort is not None:
        key_expression = f"{key_expression} AND {placeholders.range(key_condition.sort)}"

    products = sorted(products, key=Product.order_key)
    filter_expression = placeholders.products(products) if products else None

    return DynamoDBQuery(
        index_name=key_condition.index.name,
        key_expression=key_expression,
        filter_expression=filter_expression,
        names=placeholders.names,
        values=placeholders.values,
        scan_forward=ascending,
    )


def build_scan(expression: DisjunctiveNormalForm) -> DynamoDBScan:
    if expression.is_empty:
        return DynamoDBScan()
    placeholders = _Placeholders()
    filter_expression = placeholders.products(expression.sorted_products())
    if filter_expression is None:
        return DynamoDBScan()
    return DynamoDBScan(
        filter_expression=filter_expression,
        names=placeholders.names,
        values=placeholders.values,
    )


def build_main_items_scan(marker: MainItemMarker) -> DynamoDBScan:
    placeholders = _Placeholders(value_prefix="main_")
    name = placeholders.name(marker.key)
    value = placeholders.value(marker.key, {"S": marker.prefix})
    return DynamoDBScan(
        filter_expression=f"begins_with({name}, {value})",
        names=placeholders.names,
        values=placeholders.values,
    )
