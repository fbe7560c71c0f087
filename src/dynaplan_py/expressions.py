from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from .attributes import Attribute, Item
from .errors import ExpressionTooComplexError, ExpressionTooDeepError, UnsupportedOperatorError

MAX_PRODUCTS = 256
MAX_NESTING = 64


class AttributeOperator(Enum):
    EQ = "Eq"
    NE = "Ne"
    CO = "Co"
    NOT_CO = "NotCo"
    SW = "Sw"
    NOT_SW = "NotSw"
    PR = "Pr"
    GT = "Gt"
    GE = "Ge"
    LT = "Lt"
    LE = "Le"

    @property
    def is_unary(self) -> bool:
        return self is AttributeOperator.PR

    @property
    def usable_on_sort_key(self) -> bool:
        return self in _SORT_KEY_OPERATORS

    def negate(self) -> AttributeOperator:
        negated = _NEGATIONS.get(self)
        if negated is None:
            # Absence checks cannot be routed through any index or filter we emit.
            raise UnsupportedOperatorError(f"not {self.value}")
        return negated


_NEGATIONS: dict[AttributeOperator, AttributeOperator] = {
    AttributeOperator.EQ: AttributeOperator.NE,
    AttributeOperator.NE: AttributeOperator.EQ,
    AttributeOperator.CO: AttributeOperator.NOT_CO,
    AttributeOperator.NOT_CO: AttributeOperator.CO,
    AttributeOperator.SW: AttributeOperator.NOT_SW,
    AttributeOperator.NOT_SW: AttributeOperator.SW,
    AttributeOperator.GT: AttributeOperator.LE,
    AttributeOperator.LE: AttributeOperator.GT,
    AttributeOperator.GE: AttributeOperator.LT,
    AttributeOperator.LT: AttributeOperator.GE,
}

_SORT_KEY_OPERATORS = frozenset(
    {
        AttributeOperator.EQ,
        AttributeOperator.GT,
        AttributeOperator.GE,
        AttributeOperator.LT,
        AttributeOperator.LE,
        AttributeOperator.SW,
    }
)


@dataclass(frozen=True)
class AttributeExpression:
    attribute: Attribute[Any]
    operator: AttributeOperator
    value: Any = None

    def negate(self) -> AttributeExpression:
        return AttributeExpression(self.attribute, self.operator.negate(), self.value)

    def order_key(self) -> tuple[str, str, str]:
        return (self.attribute.name, self.operator.value, repr(self.value))

    def matches(self, item: Item) -> bool:
        actual = self.attribute.optional_from_item(item)
        op = self.operator

        if op is AttributeOperator.PR:
            if actual is None:
                return False
            return len(actual) > 0 if self.attribute.has_size else True

        if actual is None:
            return op in {AttributeOperator.NE, AttributeOperator.NOT_CO, AttributeOperator.NOT_SW}

        if op is AttributeOperator.EQ:
            return bool(actual == self.value)
        if op is AttributeOperator.NE:
            return bool(actual != self.value)
        if op is AttributeOperator.CO:
            return self.value in actual
        if op is AttributeOperator.NOT_CO:
            return self.value not in actual
        if op is AttributeOperator.SW:
            return isinstance(actual, str) and actual.startswith(self.value)
        if op is AttributeOperator.NOT_SW:
            return not (isinstance(actual, str) and actual.startswith(self.value))
        if op is AttributeOperator.GT:
            return bool(actual > self.value)
        if op is AttributeOperator.GE:
            return bool(actual >= self.value)
        if op is AttributeOperator.LT:
            return bool(actual < self.value)
        return bool(actual <= self.value)


type LogicalOperator = Literal["and", "or"]


@dataclass(frozen=True)
class LogicalExpression:
    left: Expression
    operator: LogicalOperator
    right: Expression


@dataclass(frozen=True)
class NegationExpression:
    inner: Expression


type Expression = AttributeExpression | LogicalExpression | NegationExpression


def and_(*expressions: Expression) -> Expression:
    return _fold("and", expressions)


def or_(*expressions: Expression) -> Expression:
    return _fold("or", expressions)


def not_(expression: Expression) -> Expression:
    return NegationExpression(expression)


def _fold(operator: LogicalOperator, expressions: Iterable[Expression]) -> Expression:
    items = list(expressions)
    if not items:
        raise ValueError(f"'{operator}' requires at least one expression")
    result = items[0]
    for expr in items[1:]:
        result = LogicalExpression(result, operator, expr)
    return result


@dataclass(frozen=True)
class Product:
    """A conjunction of attribute predicates. An empty product matches everything."""

    terms: frozenset[AttributeExpression]

    @staticmethod
    def of(*terms: AttributeExpression) -> Product:
        return Product(frozenset(terms))

    def and_(self, other: Product) -> Product:
        return Product(self.terms | other.terms)

    def without(self, terms: Iterable[AttributeExpression]) -> Product:
        return Product(self.terms - frozenset(terms))

    def sorted_terms(self) -> list[AttributeExpression]:
        return sorted(self.terms, key=AttributeExpression.order_key)

    def order_key(self) -> tuple[tuple[str, str, str], ...]:
        return tuple(term.order_key() for term in self.sorted_terms())

    def matches(self, item: Item) -> bool:
        return all(term.matches(item) for term in self.terms)


@dataclass(frozen=True)
class DisjunctiveNormalForm:
    """A disjunction of products. No products means no restriction."""

    products: frozenset[Product]

    @staticmethod
    def of(*products: Product) -> DisjunctiveNormalForm:
        return DisjunctiveNormalForm(frozenset(products))

    @staticmethod
    def empty() -> DisjunctiveNormalForm:
        return DisjunctiveNormalForm(frozenset())

    @property
    def is_empty(self) -> bool:
        return not self.products

    def sorted_products(self) -> list[Product]:
        return sorted(self.products, key=Product.order_key)

    def or_(self, other: DisjunctiveNormalForm, *, max_products: int = MAX_PRODUCTS) -> DisjunctiveNormalForm:
        if self.is_empty:
            return self
        if other.is_empty:
            return other
        products = self.products | other.products
        if len(products) > max_products:
            raise ExpressionTooComplexError(len(products), max_products)
        return DisjunctiveNormalForm(products)

    def and_(self, other: DisjunctiveNormalForm, *, max_products: int = MAX_PRODUCTS) -> DisjunctiveNormalForm:
        if self.is_empty:
            return other
        if other.is_empty:
            return self
        expected = len(self.products) * len(other.products)
        if expected > max_products:
            raise ExpressionTooComplexError(expected, max_products)
        return DisjunctiveNormalForm(frozenset(a.and_(b) for a in self.products for b in other.products))

    def matches(self, item: Item) -> bool:
        if self.is_empty:
            return True
        return any(product.matches(item) for product in self.products)


def normalize(expression: Expression | None, *, max_products: int = MAX_PRODUCTS) -> DisjunctiveNormalForm:
    if expression is None:
        return DisjunctiveNormalForm.empty()
    return _normalize(expression, max_products)


def _normalize(expression: Expression, max_products: int, depth: int = 0) -> DisjunctiveNormalForm:
    if depth > MAX_NESTING:
        raise ExpressionTooDeepError(MAX_NESTING)

    if isinstance(expression, AttributeExpression):
        return DisjunctiveNormalForm.of(Product.of(expression))

    if isinstance(expression, LogicalExpression):
        result: DisjunctiveNormalForm | None = None
        for operand in _operands(expression):
            normal = _normalize(operand, max_products, depth + 1)
            if result is None:
                result = normal
            elif expression.operator == "and":
                result = result.and_(normal, max_products=max_products)
            else:
                result = result.or_(normal, max_products=max_products)
        assert result is not None
        return result

    if isinstance(expression, NegationExpression):
        return _normalize(_push_negation(expression.inner), max_products, depth + 1)

    raise TypeError(f"unsupported expression: {type(expression).__name__}")


def _operands(expression: LogicalExpression) -> list[Expression]:
    """The operands of a chain of one operator, in order. Chains are walked without recursion."""
    operands: list[Expression] = []
    pending: list[Expression] = [expression]
    while pending:
        node = pending.pop()
        if isinstance(node, LogicalExpression) and node.operator == expression.operator:
            pending.append(node.right)
            pending.append(node.left)
        else:
            operands.append(node)
    return operands


def _push_negation(expression: Expression) -> Expression:
    if isinstance(expression, AttributeExpression):
        return expression.negate()
    if isinstance(expression, NegationExpression):
        return expression.inner
    if isinstance(expression, LogicalExpression):
        flipped: LogicalOperator = "or" if expression.operator == "and" else "and"
        return _fold(flipped, (NegationExpression(operand) for operand in _operands(expression)))
    raise TypeError(f"unsupported expression: {type(expression).__name__}")
