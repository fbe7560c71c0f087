from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from .attributes import Attribute, StringListAttribute
from .errors import (
    ExpressionTooDeepError,
    UnknownAttributeError,
    UnsupportedFilterTypeError,
    UnsupportedOperatorError,
)
from .expressions import (
    MAX_NESTING,
    AttributeExpression,
    AttributeOperator,
    Expression,
    LogicalExpression,
    NegationExpression,
)

type LogicalOp = Literal["and", "or"]


@dataclass(frozen=True)
class FilterCondition:
    attribute: str
    op: str
    value: Any = None

    @staticmethod
    def eq(attribute: str, value: Any) -> FilterCondition:
        return FilterCondition(attribute=attribute, op="eq", value=value)

    @staticmethod
    def ne(attribute: str, value: Any) -> FilterCondition:
        return FilterCondition(attribute=attribute, op="ne", value=value)

    @staticmethod
    def contains(attribute: str, value: Any) -> FilterCondition:
        return FilterCondition(attribute=attribute, op="co", value=value)

    @staticmethod
    def starts_with(attribute: str, value: Any) -> FilterCondition:
        return FilterCondition(attribute=attribute, op="sw", value=value)

    @staticmethod
    def ends_with(attribute: str, value: Any) -> FilterCondition:
        return FilterCondition(attribute=attribute, op="ew", value=value)

    @staticmethod
    def present(attribute: str) -> FilterCondition:
        return FilterCondition(attribute=attribute, op="pr")

    @staticmethod
    def gt(attribute: str, value: Any) -> FilterCondition:
        return FilterCondition(attribute=attribute, op="gt", value=value)

    @staticmethod
    def ge(attribute: str, value: Any) -> FilterCondition:
        return FilterCondition(attribute=attribute, op="ge", value=value)

    @staticmethod
    def lt(attribute: str, value: Any) -> FilterCondition:
        return FilterCondition(attribute=attribute, op="lt", value=value)

    @staticmethod
    def le(attribute: str, value: Any) -> FilterCondition:
        return FilterCondition(attribute=attribute, op="le", value=value)


@dataclass(frozen=True)
class FilterGroup:
    op: LogicalOp
    filters: tuple[Filter, ...]

    @staticmethod
    def and_(*filters: Filter) -> FilterGroup:
        return FilterGroup(op="and", filters=tuple(filters))

    @staticmethod
    def or_(*filters: Filter) -> FilterGroup:
        return FilterGroup(op="or", filters=tuple(filters))


@dataclass(frozen=True)
class FilterNot:
    filter: Filter


type Filter = FilterCondition | FilterGroup | FilterNot

_OPERATORS: dict[str, AttributeOperator] = {
    "eq": AttributeOperator.EQ,
    "ne": AttributeOperator.NE,
    "co": AttributeOperator.CO,
    "sw": AttributeOperator.SW,
    "pr": AttributeOperator.PR,
    "gt": AttributeOperator.GT,
    "ge": AttributeOperator.GE,
    "lt": AttributeOperator.LT,
    "le": AttributeOperator.LE,
}

_LIST_OPERATORS = frozenset({AttributeOperator.CO, AttributeOperator.PR})
_TEXT_OPERATORS = frozenset({AttributeOperator.CO, AttributeOperator.SW})


def to_expression(node: Filter, attribute_map: Mapping[str, Attribute[Any]]) -> Expression:
    """Resolve logical attribute names and literals, rejecting what the store cannot evaluate."""
    return _to_expression(node, attribute_map, 0)


def _to_expression(node: Filter, attribute_map: Mapping[str, Attribute[Any]], depth: int) -> Expression:
    if depth > MAX_NESTING:
        raise ExpressionTooDeepError(MAX_NESTING)

    if isinstance(node, FilterCondition):
        return _to_attribute_expression(node, attribute_map)

    if isinstance(node, FilterNot):
        return NegationExpression(_to_expression(node.filter, attribute_map, depth + 1))

    if isinstance(node, FilterGroup):
        if node.op not in ("and", "or"):
            raise UnsupportedOperatorError(node.op)
        if not node.filters:
            raise UnsupportedFilterTypeError("empty group")
        result = _to_expression(node.filters[0], attribute_map, depth + 1)
        for child in node.filters[1:]:
            result = LogicalExpression(result, node.op, _to_expression(child, attribute_map, depth + 1))
        return result

    raise UnsupportedFilterTypeError(type(node).__name__)


def _to_attribute_expression(
    node: FilterCondition, attribute_map: Mapping[str, Attribute[Any]]
) -> AttributeExpression:
    operator = _OPERATORS.get(node.op.lower())
    if operator is None:
        raise UnsupportedOperatorError(node.op)

    attribute = attribute_map.get(node.attribute)
    if attribute is None:
        raise UnknownAttributeError(node.attribute)

    if isinstance(attribute, StringListAttribute) and operator not in _LIST_OPERATORS:
        raise UnsupportedOperatorError(node.op)
    if operator in _TEXT_OPERATORS and not attribute.has_size:
        raise UnsupportedOperatorError(node.op)

    if operator.is_unary:
        return AttributeExpression(attribute, operator)
    return AttributeExpression(attribute, operator, attribute.cast_literal(node.value))
