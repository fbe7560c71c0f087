from __future__ import annotations

import logging
from collections.abc import Hashable, Mapping
from typing import Any

from .attributes import Attribute, AttributeValue, Item
from .catalog import Index, TableDefinition
from .config import DataSourceSettings
from .errors import ValidationError
from .executor import DynamoDBExecutor
from .expressions import AttributeExpression
from .filters import Filter, to_expression
from .pagination import Request, count, merge_unique, page
from .planner import KeyCondition, QueryPlan, QueryPlanner, UsingQueries, UsingScan
from .query import Page
from .request_builder import DynamoDBScan, build_main_items_scan, build_query, build_scan

logger = logging.getLogger(__name__)

type RawItem = dict[str, AttributeValue]


class Table:
    """Filtered, sorted and paginated reads over one table definition."""

    def __init__(
        self,
        definition: TableDefinition,
        *,
        executor: DynamoDBExecutor | None = None,
        client: Any | None = None,
        settings: DataSourceSettings | None = None,
        active: AttributeExpression | None = None,
    ) -> None:
        self._definition = definition
        self._executor = executor or DynamoDBExecutor(client, settings=settings)
        self._settings = self._executor.settings
        self._table_name = self._executor.table_name(definition.name)
        self._active = active
        self._planner = QueryPlanner(
            definition.capabilities,
            max_queries=self._settings.max_queries,
            allow_table_scans=self._settings.allow_table_scans,
        )

    @property
    def definition(self) -> TableDefinition:
        return self._definition

    @property
    def table_name(self) -> str:
        return self._table_name

    @property
    def planner(self) -> QueryPlanner:
        return self._planner

    def plan(
        self,
        filter: Filter | None = None,
        *,
        sort_by: str | None = None,
        active_only: bool = False,
        paginated: bool = False,
    ) -> QueryPlan:
        expression = to_expression(filter, self._definition.capabilities.attribute_map) if filter is not None else None
        plan = self._planner.build(
            expression,
            sort_by=self._planner.sort_attribute(sort_by),
            active_only=self._active_predicate(active_only),
        )
        self._planner.validate(plan, paginated=paginated)
        if isinstance(plan, UsingScan):
            logger.warning("filter on %s cannot use an index, scanning the table", self._table_name)
        return plan

    def requests(self, plan: QueryPlan, *, ascending: bool = True) -> list[Request]:
        if isinstance(plan, UsingScan):
            return [self._scan_request(plan)]
        return [build_query(condition, products, ascending=ascending) for condition, products in plan.queries.items()]

    def find(
        self,
        filter: Filter | None = None,
        *,
        sort_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
        cursor: str | None = None,
        active_only: bool = False,
    ) -> Page[RawItem]:
        """One page of matching main items.

        The order is store-native when the chosen index sorts by ``sort_by``;
        otherwise the items of the page are sorted after reading.
        """
        plan = self.plan(filter, sort_by=sort_by, active_only=active_only, paginated=True)
        (request,) = self.requests(plan, ascending=ascending)
        index = self._single_index(plan)

        result = page(
            self._executor,
            self._table_name,
            request,
            to_last_evaluated_key=lambda item: self._definition.key_from(item, index),
            limit=limit or self._settings.default_page_size,
            cursor=cursor,
        )

        sort_attribute = self._planner.sort_attribute(sort_by)
        if sort_attribute is None or self._sorted_natively(plan, sort_attribute):
            return result
        return Page(items=self._sort(result.items, sort_attribute, ascending), next_cursor=result.next_cursor)

    def find_all(
        self,
        filter: Filter | None = None,
        *,
        sort_by: str | None = None,
        ascending: bool = True,
        active_only: bool = False,
    ) -> list[RawItem]:
        """Every matching main item, each entity once, sorted when ``sort_by`` is given."""
        plan = self.plan(filter, sort_by=sort_by, active_only=active_only)
        items = merge_unique(
            self._executor,
            self._table_name,
            self.requests(plan, ascending=ascending),
            key_of=self._identity,
        )

        sort_attribute = self._planner.sort_attribute(sort_by)
        if sort_attribute is None:
            return items
        if self._sorted_natively(plan, sort_attribute):
            return items
        return self._sort(items, sort_attribute, ascending)

    def count(self, filter: Filter | None = None, *, active_only: bool = False) -> int:
        plan = self.plan(filter, active_only=active_only)
        if isinstance(plan, UsingQueries) and plan.count > 1:
            # Key conditions of different products may select the same entity.
            return len(self.find_all(filter, active_only=active_only))
        (request,) = self.requests(plan)
        return count(self._executor, self._table_name, request)

    def _active_predicate(self, active_only: bool) -> AttributeExpression | None:
        if not active_only:
            return None
        if self._active is None:
            raise ValidationError(f"table '{self._definition.name}' does not define an active predicate")
        return self._active

    def _scan_request(self, plan: UsingScan) -> DynamoDBScan:
        scan = build_scan(plan.expression)
        marker = self._definition.main_item_marker
        if marker is None:
            return scan
        return build_main_items_scan(marker).and_also(scan)

    @staticmethod
    def _single_index(plan: QueryPlan) -> Index | None:
        if isinstance(plan, UsingScan):
            return None
        condition: KeyCondition = next(iter(plan.queries))
        return condition.index

    @staticmethod
    def _sorted_natively(plan: QueryPlan, sort_attribute: Attribute[Any]) -> bool:
        if not isinstance(plan, UsingQueries) or plan.count != 1:
            return False
        sort = next(iter(plan.queries)).index.sort
        return sort is not None and sort.can_be_used_on_query_to(sort_attribute)

    @staticmethod
    def _sort(items: list[RawItem], attribute: Attribute[Any], ascending: bool) -> list[RawItem]:
        return sorted(items, key=attribute.sort_key, reverse=not ascending)

    def _identity(self, item: Item) -> Hashable:
        id_attribute = self._definition.id_attribute
        if id_attribute is not None:
            return id_attribute.optional_from_item(item)
        return _key_identity(self._definition.key_from(item))


def _key_identity(key: Mapping[str, AttributeValue]) -> Hashable:
    return tuple((name, repr(key[name])) for name in sorted(key))
