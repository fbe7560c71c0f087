from __future__ import annotations

import itertools

import pytest

from _accounts import ACTIVE, CREATED, EMAIL, ROLES, USER_NAME
from dynaplan_py.errors import ExpressionTooComplexError, ExpressionTooDeepError, UnsupportedOperatorError
from dynaplan_py.expressions import (
    AttributeExpression,
    AttributeOperator,
    DisjunctiveNormalForm,
    Expression,
    LogicalExpression,
    NegationExpression,
    Product,
    and_,
    normalize,
    not_,
    or_,
)


def eq(attr, value) -> AttributeExpression:  # type: ignore[no-untyped-def]
    return AttributeExpression(attr, AttributeOperator.EQ, value)


def _evaluate(expression: Expression, item: dict) -> bool:
    if isinstance(expression, AttributeExpression):
        return expression.matches(item)
    if isinstance(expression, NegationExpression):
        return not _evaluate(expression.inner, item)
    assert isinstance(expression, LogicalExpression)
    if expression.operator == "and":
        return _evaluate(expression.left, item) and _evaluate(expression.right, item)
    return _evaluate(expression.left, item) or _evaluate(expression.right, item)


def _sample_items() -> list[dict]:
    names = [None, "alice", "bob"]
    emails = [None, "alice@example.com", "bob@example.com"]
    # Comparisons are always evaluated on present values; absent numbers have no order.
    created = [5, 10]
    active = [None, True, False]
    out = []
    for n, e, c, a in itertools.product(names, emails, created, active):
        item: dict = {}
        if n is not None:
            item["userName"] = {"S": n}
        if e is not None:
            item["email"] = {"S": e}
        item["created"] = {"N": str(c)}
        if a is not None:
            item["active"] = {"BOOL": a}
        out.append(item)
    return out


def test_operator_negation_pairs() -> None:
    pairs = [
        (AttributeOperator.EQ, AttributeOperator.NE),
        (AttributeOperator.CO, AttributeOperator.NOT_CO),
        (AttributeOperator.SW, AttributeOperator.NOT_SW),
        (AttributeOperator.GT, AttributeOperator.LE),
        (AttributeOperator.GE, AttributeOperator.LT),
    ]
    for op, negated in pairs:
        assert op.negate() is negated
        assert negated.negate() is op


def test_negating_present_is_unsupported() -> None:
    with pytest.raises(UnsupportedOperatorError, match="not Pr"):
        normalize(not_(AttributeExpression(EMAIL, AttributeOperator.PR)))


def test_single_term_normalizes_to_one_product() -> None:
    term = eq(USER_NAME, "alice")
    assert normalize(term) == DisjunctiveNormalForm.of(Product.of(term))


def test_missing_expression_normalizes_to_match_all() -> None:
    dnf = normalize(None)
    assert dnf.is_empty
    assert dnf.matches({})


def test_and_distributes_over_or() -> None:
    a, b, c = eq(USER_NAME, "alice"), eq(EMAIL, "a@x"), eq(ACTIVE, True)
    dnf = normalize(and_(a, or_(b, c)))
    assert dnf == DisjunctiveNormalForm.of(Product.of(a, b), Product.of(a, c))


def test_de_morgan_pushes_negation_to_terms() -> None:
    a, b = eq(USER_NAME, "alice"), AttributeExpression(CREATED, AttributeOperator.GT, 5)
    dnf = normalize(not_(and_(a, b)))
    assert dnf == DisjunctiveNormalForm.of(
        Product.of(AttributeExpression(USER_NAME, AttributeOperator.NE, "alice")),
        Product.of(AttributeExpression(CREATED, AttributeOperator.LE, 5)),
    )


def test_double_negation_cancels() -> None:
    a = eq(USER_NAME, "alice")
    assert normalize(not_(not_(a))) == normalize(a)


def test_duplicate_terms_collapse() -> None:
    a = eq(USER_NAME, "alice")
    assert normalize(and_(a, a)) == DisjunctiveNormalForm.of(Product.of(a))
    assert normalize(or_(a, a)) == DisjunctiveNormalForm.of(Product.of(a))


@pytest.mark.parametrize(
    "expression",
    [
        and_(eq(USER_NAME, "alice"), or_(eq(EMAIL, "bob@example.com"), eq(ACTIVE, True))),
        not_(or_(eq(USER_NAME, "bob"), and_(eq(ACTIVE, False), AttributeExpression(CREATED, AttributeOperator.GE, 10)))),
        or_(
            and_(AttributeExpression(USER_NAME, AttributeOperator.SW, "al"), not_(eq(ACTIVE, True))),
            not_(AttributeExpression(EMAIL, AttributeOperator.CO, "bob")),
        ),
        not_(and_(AttributeExpression(CREATED, AttributeOperator.LT, 10), AttributeExpression(EMAIL, AttributeOperator.SW, "alice"))),
    ],
)
def test_normal_form_is_equivalent_to_the_tree(expression: Expression) -> None:
    dnf = normalize(expression)
    for item in _sample_items():
        assert dnf.matches(item) == _evaluate(expression, item), item


def test_expansion_beyond_the_bound_is_rejected() -> None:
    clauses = [or_(eq(USER_NAME, f"u{i}"), eq(EMAIL, f"e{i}")) for i in range(9)]
    with pytest.raises(ExpressionTooComplexError) as excinfo:
        normalize(and_(*clauses))
    assert excinfo.value.max_products == 256


def test_bound_is_configurable() -> None:
    expression = and_(or_(eq(USER_NAME, "a"), eq(USER_NAME, "b")), or_(eq(EMAIL, "a"), eq(EMAIL, "b")))
    assert len(normalize(expression, max_products=4).products) == 4
    with pytest.raises(ExpressionTooComplexError):
        normalize(expression, max_products=3)


def test_present_requires_a_non_empty_value() -> None:
    present = AttributeExpression(ROLES, AttributeOperator.PR)
    assert present.matches({"roles": {"L": [{"S": "admin"}]}})
    assert not present.matches({"roles": {"L": []}})
    assert not present.matches({})


def test_missing_attribute_only_satisfies_negative_operators() -> None:
    assert AttributeExpression(EMAIL, AttributeOperator.NE, "x").matches({})
    assert AttributeExpression(EMAIL, AttributeOperator.NOT_CO, "x").matches({})
    assert AttributeExpression(EMAIL, AttributeOperator.NOT_SW, "x").matches({})
    assert not AttributeExpression(EMAIL, AttributeOperator.EQ, "x").matches({})
    assert not AttributeExpression(CREATED, AttributeOperator.GT, 1).matches({})


def test_sorted_products_are_deterministic() -> None:
    a, b = eq(USER_NAME, "b"), eq(USER_NAME, "a")
    dnf = normalize(or_(a, b))
    assert dnf.sorted_products() == [Product.of(b), Product.of(a)]


def test_fold_requires_expressions() -> None:
    with pytest.raises(ValueError, match="at least one"):
        and_()


def test_match_all_absorbs_alternatives() -> None:
    some = DisjunctiveNormalForm.of(Product.of(eq(USER_NAME, "alice")))
    for dnf in (DisjunctiveNormalForm.empty().or_(some), some.or_(DisjunctiveNormalForm.empty())):
        assert dnf.is_empty
        assert dnf.matches({"userName": {"S": "bob"}})


def test_long_and_chain_normalizes_to_one_product() -> None:
    terms = [eq(USER_NAME, f"u{i}") for i in range(1000)]
    dnf = normalize(and_(*terms))
    assert dnf == DisjunctiveNormalForm.of(Product.of(*terms))


def test_long_or_chain_is_rejected_by_the_bound() -> None:
    with pytest.raises(ExpressionTooComplexError) as excinfo:
        normalize(or_(*(eq(USER_NAME, f"u{i}") for i in range(1000))))
    assert excinfo.value.products == 257


def test_negated_long_chain_flips_in_one_step() -> None:
    dnf = normalize(not_(and_(*(eq(USER_NAME, f"u{i}") for i in range(200)))))
    assert len(dnf.products) == 200
    assert all(term.operator is AttributeOperator.NE for product in dnf.products for term in product.terms)
    assert dnf.matches({"userName": {"S": "u0"}})


def test_nesting_beyond_the_limit_is_rejected() -> None:
    expression: Expression = eq(USER_NAME, "u")
    for i in range(100):
        operand = eq(EMAIL, f"e{i}")
        expression = and_(expression, operand) if i % 2 else or_(expression, operand)
    with pytest.raises(ExpressionTooDeepError, match="64 levels") as excinfo:
        normalize(expression)
    assert isinstance(excinfo.value, ExpressionTooComplexError)
