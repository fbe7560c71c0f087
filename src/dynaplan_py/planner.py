from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from .attributes import Attribute, StartsWithAttribute
from .catalog import Index, TableCapabilities
from .errors import (
    CapabilityError,
    FilterTooShortError,
    QueryRequiresTableScanError,
    TooManyQueriesError,
    UnknownAttributeError,
    UnknownSortAttributeError,
    UnsupportedSortAttributeError,
)
from .expressions import (
    MAX_PRODUCTS,
    AttributeExpression,
    AttributeOperator,
    DisjunctiveNormalForm,
    Expression,
    Product,
    normalize,
)
from .outcome import CapabilityFailure, Success

logger = logging.getLogger(__name__)

MAX_QUERIES = 8
MAX_PAGINATED_QUERIES = 1
MINIMUM_FILTER_LENGTH = 3


@dataclass(frozen=True)
class BinaryRange:
    expression: AttributeExpression


@dataclass(frozen=True)
class BetweenRange:
    attribute: Attribute[Any]
    lower: Any
    upper: Any


type RangeCondition = BinaryRange | BetweenRange


@dataclass(frozen=True)
class KeyCondition:
    index: Index
    partition: AttributeExpression
    sort: RangeCondition | None = None


@dataclass(frozen=True)
class UsingScan:
    expression: DisjunctiveNormalForm

    @staticmethod
    def full_scan() -> UsingScan:
        return UsingScan(DisjunctiveNormalForm.empty())


@dataclass(frozen=True)
class UsingQueries:
    queries: dict[KeyCondition, list[Product]] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.queries)


type QueryPlan = UsingScan | UsingQueries


@dataclass(frozen=True)
class _Candidate:
    index: Index
    conditions: tuple[KeyCondition, ...]
    consumed: frozenset[AttributeExpression]


class QueryPlanner:
    def __init__(
        self,
        capabilities: TableCapabilities,
        *,
        max_queries: int = MAX_QUERIES,
        max_products: int = MAX_PRODUCTS,
        allow_table_scans: bool = True,
    ) -> None:
        if max_queries <= 0:
            raise ValueError("max_queries must be > 0")
        self._capabilities = capabilities
        self._max_queries = max_queries
        self._max_products = max_products
        self._allow_table_scans = allow_table_scans

    @property
    def capabilities(self) -> TableCapabilities:
        return self._capabilities

    def build(
        self,
        expression: Expression | DisjunctiveNormalForm | None,
        *,
        sort_by: Attribute[Any] | None = None,
        active_only: AttributeExpression | None = None,
    ) -> QueryPlan:
        if isinstance(expression, DisjunctiveNormalForm):
            normal = expression
        else:
            normal = normalize(expression, max_products=self._max_products)

        if active_only is not None:
            normal = normal.and_(DisjunctiveNormalForm.of(Product.of(active_only)), max_products=self._max_products)

        if normal.is_empty:
            return UsingScan.full_scan()

        queries: dict[KeyCondition, list[Product]] = {}
        for product in normal.sorted_products():
            candidate = self._choose(product, sort_by)
            if candidate is None:
                logger.debug("no index found for %s, a scan is required", product)
                return UsingScan(normal)
            residual = product.without(candidate.consumed)
            for condition in candidate.conditions:
                queries.setdefault(condition, []).append(residual)

        return UsingQueries(queries)

    def try_build(
        self,
        expression: Expression | DisjunctiveNormalForm | None,
        *,
        sort_by: Attribute[Any] | None = None,
        active_only: AttributeExpression | None = None,
        paginated: bool = False,
    ) -> Success[QueryPlan] | CapabilityFailure:
        try:
            plan = self.build(expression, sort_by=sort_by, active_only=active_only)
            self.validate(plan, paginated=paginated)
        except CapabilityError as err:
            return CapabilityFailure(err)
        return Success(plan)

    def validate(self, plan: QueryPlan, *, paginated: bool = False) -> None:
        if isinstance(plan, UsingScan):
            if not self._allow_table_scans:
                raise QueryRequiresTableScanError()
            return

        max_queries = MAX_PAGINATED_QUERIES if paginated else self._max_queries
        if plan.count > max_queries:
            raise TooManyQueriesError(plan.count, max_queries)

    def sort_attribute(self, name: str | None) -> Attribute[Any] | None:
        if not name:
            return None
        attribute = self._capabilities.attribute(name)
        if attribute is None:
            raise UnknownSortAttributeError(name)
        if not self._capabilities.sortable or not attribute.orderable:
            raise UnsupportedSortAttributeError(name)
        return attribute

    def plan_prefix_filter(
        self,
        filter_by: str | None,
        value: str | None,
        *,
        active_only: AttributeExpression | None = None,
    ) -> QueryPlan:
        """Plans a starts-with search through the prefix index declared for ``filter_by``."""
        if not filter_by or not value:
            if active_only is None:
                return UsingScan.full_scan()
            return UsingScan(DisjunctiveNormalForm.of(Product.of(active_only)))

        if len(value) < MINIMUM_FILTER_LENGTH:
            raise FilterTooShortError(len(value), MINIMUM_FILTER_LENGTH)

        attribute = self._capabilities.attribute(filter_by)
        if attribute is None:
            raise UnknownAttributeError(filter_by)

        index = next(
            (
                idx
                for idx in self._capabilities.indexes
                if isinstance(idx.partition, StartsWithAttribute) and idx.partition.full == attribute
            ),
            None,
        )
        if index is None or index.sort is None:
            raise UnknownAttributeError(filter_by)

        condition = KeyCondition(
            index,
            AttributeExpression(index.partition, AttributeOperator.EQ, value),
            BinaryRange(AttributeExpression(index.sort, AttributeOperator.SW, value)),
        )
        residual = Product.of(active_only) if active_only is not None else Product.of()
        return UsingQueries({condition: [residual]})

    def _choose(self, product: Product, sort_by: Attribute[Any] | None) -> _Candidate | None:
        candidates = [
            candidate
            for candidate in (self._key_conditions(index, product) for index in self._capabilities.indexes)
            if candidate is not None
        ]
        if not candidates:
            return None

        if sort_by is not None:
            for candidate in candidates:
                sort = candidate.index.sort
                if sort is not None and sort.can_be_used_on_query_to(sort_by):
                    return candidate

        for candidate in candidates:
            if candidate.index.is_primary:
                return candidate

        return candidates[0]

    def _key_conditions(self, index: Index, product: Product) -> _Candidate | None:
        terms = product.sorted_terms()
        partition_terms = [term for term in terms if index.uses_for_partition(term)]
        if len(partition_terms) != 1:
            return None

        partition_term = partition_terms[0]
        if not self._routes_partition(index, partition_term):
            return None

        partition = AttributeExpression(index.partition, AttributeOperator.EQ, partition_term.value)
        consumed = {partition_term}

        sort_terms = [term for term in terms if index.uses_for_sort(term)]
        if index.sort is None or not sort_terms:
            if isinstance(index.partition, StartsWithAttribute) and partition_term.attribute != index.partition:
                # A prefix partition matches more than the predicate, keep it as a filter.
                consumed.discard(partition_term)
            return _Candidate(index, (KeyCondition(index, partition),), frozenset(consumed))

        ranges = self._ranges(index.sort, sort_terms)
        if not ranges:
            return None
        consumed.update(sort_terms)
        return _Candidate(
            index,
            tuple(KeyCondition(index, partition, rng) for rng in ranges),
            frozenset(consumed),
        )

    @staticmethod
    def _routes_partition(index: Index, term: AttributeExpression) -> bool:
        if term.operator is AttributeOperator.EQ:
            return True
        partition = index.partition
        return (
            term.operator is AttributeOperator.SW
            and isinstance(partition, StartsWithAttribute)
            and term.attribute == partition.full
            and len(term.value) >= partition.length
        )

    @staticmethod
    def _ranges(sort: Attribute[Any], terms: Sequence[AttributeExpression]) -> list[RangeCondition]:
        if len(terms) > 2 or any(term.operator.is_unary for term in terms):
            return []

        if len(terms) == 1:
            term = terms[0]
            if term.operator.usable_on_sort_key:
                return [BinaryRange(AttributeExpression(sort, term.operator, term.value))]
            if term.operator is AttributeOperator.NE:
                return [
                    BinaryRange(AttributeExpression(sort, AttributeOperator.LT, term.value)),
                    BinaryRange(AttributeExpression(sort, AttributeOperator.GT, term.value)),
                ]
            return []

        lower = next((t for t in terms if t.operator is AttributeOperator.GE), None)
        upper = next((t for t in terms if t.operator is AttributeOperator.LE), None)
        if lower is None or upper is None:
            return []
        return [BetweenRange(sort, lower.value, upper.value)]
