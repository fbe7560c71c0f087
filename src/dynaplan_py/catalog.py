from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .attributes import Attribute, AttributeValue, Item, KeyStringAttribute
from .expressions import AttributeExpression, Product


@dataclass(frozen=True)
class Index:
    """A partition (and optional sort) key usable to query a table.

    ``name`` is ``None`` for the table's own primary key.
    """

    name: str | None
    partition: Attribute[Any]
    sort: Attribute[Any] | None = None

    @staticmethod
    def primary(partition: Attribute[Any], sort: Attribute[Any] | None = None) -> Index:
        return Index(name=None, partition=partition, sort=sort)

    @staticmethod
    def secondary(name: str, partition: Attribute[Any], sort: Attribute[Any] | None = None) -> Index:
        if not name:
            raise ValueError("secondary index name is required")
        return Index(name=name, partition=partition, sort=sort)

    @property
    def is_primary(self) -> bool:
        return self.name is None

    @property
    def key_attribute_names(self) -> tuple[str, ...]:
        if self.sort is None:
            return (self.partition.name,)
        return (self.partition.name, self.sort.name)

    def __str__(self) -> str:
        return self.name or "primary"

    def uses_for_partition(self, term: AttributeExpression) -> bool:
        return self.partition.can_be_used_on_query_to(term.attribute)

    def uses_for_sort(self, term: AttributeExpression) -> bool:
        return self.sort is not None and self.sort.can_be_used_on_query_to(term.attribute)

    def filter_keys(self, product: Product) -> Product:
        """The product without the terms this index resolves through its key condition."""
        return product.without(
            term for term in product.terms if self.uses_for_partition(term) or self.uses_for_sort(term)
        )


@dataclass(frozen=True)
class TableCapabilities:
    indexes: tuple[Index, ...]
    attribute_map: Mapping[str, Attribute[Any]]
    sortable: bool = True

    def attribute(self, name: str) -> Attribute[Any] | None:
        return self.attribute_map.get(name)


@dataclass(frozen=True)
class MainItemMarker:
    """Restricts scans of tables holding shadow items to main items only."""

    key: KeyStringAttribute
    prefix: str


@dataclass(frozen=True)
class TableDefinition:
    name: str
    primary_key: tuple[Attribute[Any], ...]
    capabilities: TableCapabilities
    id_attribute: Attribute[Any] | None = None
    main_item_marker: MainItemMarker | None = None

    def table_name(self, prefix: str | None = None) -> str:
        return f"{prefix or ''}{self.name}"

    def key_from(self, item: Item, index: Index | None = None) -> dict[str, AttributeValue]:
        """The continuation key locating ``item`` in the table or in ``index``."""
        names = [attr.name for attr in self.primary_key]
        if index is not None:
            names.extend(n for n in index.key_attribute_names if n not in names)
        return {name: item[name] for name in names if name in item}
