from __future__ import annotations

from collections.abc import Callable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

from .errors import InvalidValueError, SchemaError, UnsupportedSortAttributeError

type AttributeValue = dict[str, Any]
type Item = Mapping[str, AttributeValue]

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


class Attribute[T]:
    """A named, typed item field.

    Subclasses define the wire encoding, how filter literals are cast into the
    attribute's value type and whether values have a total order.
    """

    orderable: bool = True
    has_size: bool = False

    def __init__(self, name: str) -> None:
        if not name:
            raise ValueError("attribute name is required")
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @property
    def hash_name(self) -> str:
        return f"#{self._name}"

    @property
    def colon_name(self) -> str:
        return f":{self._name}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._name!r})"

    def to_attr_value(self, value: T) -> AttributeValue:
        return _serializer.serialize(value)

    def from_attr_value(self, attr_value: AttributeValue) -> T:
        return _deserializer.deserialize(attr_value)

    def cast(self, value: Any) -> T:
        raise NotImplementedError

    def cast_literal(self, value: Any) -> Any:
        return self.cast(value)

    def to_literal_attr_value(self, value: Any) -> AttributeValue:
        return self.to_attr_value(value)

    def to_name_value_pair(self, value: T) -> tuple[str, AttributeValue]:
        return self._name, self.to_attr_value(value)

    def optional_from_item(self, item: Item) -> T | None:
        attr_value = item.get(self._name)
        if attr_value is None:
            return None
        return self.from_attr_value(attr_value)

    def from_item(self, item: Item) -> T:
        value = self.optional_from_item(item)
        if value is None:
            raise SchemaError(self._name)
        return value

    def add_to(self, item: dict[str, AttributeValue], value: T | None) -> None:
        if value is not None:
            item[self._name] = self.to_attr_value(value)

    def can_be_used_on_query_to(self, other: Attribute[Any]) -> bool:
        return self == other

    def sort_key(self, item: Item) -> tuple[bool, Any]:
        if not self.orderable:
            raise UnsupportedSortAttributeError(self._name)
        # Items lacking the attribute sort first.
        value = self.optional_from_item(item)
        return (value is not None, value)

    def compare(self, left: Item, right: Item) -> int:
        a = self.sort_key(left)
        b = self.sort_key(right)
        return (a > b) - (a < b)


class StringAttribute(Attribute[str]):
    has_size = True

    def to_attr_value(self, value: str) -> AttributeValue:
        return {"S": value}

    def from_attr_value(self, attr_value: AttributeValue) -> str:
        return str(attr_value["S"])

    def cast(self, value: Any) -> str:
        if not isinstance(value, str):
            raise InvalidValueError(self.name, value)
        return value


class NumberAttribute(Attribute[int]):
    def to_attr_value(self, value: int) -> AttributeValue:
        return {"N": str(value)}

    def from_attr_value(self, attr_value: AttributeValue) -> int:
        return int(Decimal(str(attr_value["N"])))

    def cast(self, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidValueError(self.name, value)
        return value


class BooleanAttribute(Attribute[bool]):
    def to_attr_value(self, value: bool) -> AttributeValue:
        return {"BOOL": value}

    def from_attr_value(self, attr_value: AttributeValue) -> bool:
        return bool(attr_value["BOOL"])

    def cast(self, value: Any) -> bool:
        if not isinstance(value, bool):
            raise InvalidValueError(self.name, value)
        return value


class StringListAttribute(Attribute[list[str]]):
    orderable = False
    has_size = True

    def to_attr_value(self, value: list[str]) -> AttributeValue:
        return {"L": [{"S": v} for v in value]}

    def from_attr_value(self, attr_value: AttributeValue) -> list[str]:
        return [str(v["S"]) for v in attr_value["L"]]

    def cast(self, value: Any) -> list[str]:
        if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
            raise InvalidValueError(self.name, value)
        return list(value)

    def cast_literal(self, value: Any) -> str:
        # Filters match single elements of the list.
        if not isinstance(value, str):
            raise InvalidValueError(self.name, value)
        return value

    def to_literal_attr_value(self, value: Any) -> AttributeValue:
        return {"S": value}


class EnumAttribute[E: Enum](Attribute[E]):
    def __init__(self, name: str, enum_type: type[E]) -> None:
        super().__init__(name)
        self._enum_type = enum_type

    def to_attr_value(self, value: E) -> AttributeValue:
        return {"S": value.name}

    def from_attr_value(self, attr_value: AttributeValue) -> E:
        return self._enum_type[str(attr_value["S"])]

    def cast(self, value: Any) -> E:
        if isinstance(value, self._enum_type):
            return value
        if isinstance(value, str) and value in self._enum_type.__members__:
            return self._enum_type[value]
        raise InvalidValueError(self.name, value)

    def sort_key(self, item: Item) -> tuple[bool, Any]:
        value = self.optional_from_item(item)
        return (value is not None, value.name if value is not None else None)


class CompositeStringAttribute(Attribute[tuple[str, str]]):
    """Write-only attribute whose value is built from two parts."""

    orderable = False

    def __init__(self, name: str, combine: Callable[[str, str], str]) -> None:
        super().__init__(name)
        self._combine = combine

    def to_attr_value(self, value: tuple[str, str]) -> AttributeValue:
        first, second = value
        return {"S": self._combine(first, second)}

    def from_attr_value(self, attr_value: AttributeValue) -> tuple[str, str]:
        raise TypeError(f"composite attribute '{self.name}' cannot be read back")

    def cast(self, value: Any) -> tuple[str, str]:
        raise InvalidValueError(self.name, value)


class UniqueStringAttribute(StringAttribute):
    """A string whose values must be unique across a table.

    Uniqueness is enforced by a shadow item keyed by ``prefix + value``.
    """

    def __init__(self, name: str, prefix: str) -> None:
        super().__init__(name)
        self._prefix = prefix

    @property
    def prefix(self) -> str:
        return self._prefix

    def uniqueness_value_from(self, value: str) -> str:
        return f"{self._prefix}{value}"


class TenantAwareUniqueStringAttribute(UniqueStringAttribute):
    def __init__(self, name: str, prefix: str, tenant_id: str | None = None) -> None:
        super().__init__(name, prefix)
        self._tenant_id = tenant_id or None

    @property
    def tenant_id(self) -> str | None:
        return self._tenant_id

    @property
    def prefix(self) -> str:
        if self._tenant_id is None:
            return self._prefix
        return f"{self._prefix}s({self._tenant_id})#"

    def uniqueness_value_from(self, value: str) -> str:
        return f"{self.prefix}{value}"


class KeyStringAttribute(StringAttribute):
    """The physical partition key of a table holding main and shadow items."""

    def unique_key_entry_for(self, unique: UniqueStringAttribute, value: str) -> tuple[str, AttributeValue]:
        return self.name, self.to_attr_value(unique.uniqueness_value_from(value))


class UniquenessBasedIndexAttribute(StringAttribute):
    """Queries a unique attribute through equality on the key holding its uniqueness value."""

    def __init__(self, key: KeyStringAttribute, unique: UniqueStringAttribute) -> None:
        super().__init__(key.name)
        self._key = key
        self._unique = unique

    @property
    def unique(self) -> UniqueStringAttribute:
        return self._unique

    def to_attr_value(self, value: str) -> AttributeValue:
        return self._key.to_attr_value(self._unique.uniqueness_value_from(value))

    def cast(self, value: Any) -> str:
        return self._unique.cast(value)

    def can_be_used_on_query_to(self, other: Attribute[Any]) -> bool:
        return self._unique == other


class StartsWithAttribute(StringAttribute):
    """Stores the first ``length`` characters of another attribute's value."""

    def __init__(self, name: str, full: Attribute[str], length: int) -> None:
        super().__init__(name)
        if length <= 0:
            raise ValueError("length must be > 0")
        self._full = full
        self._length = length

    @property
    def full(self) -> Attribute[str]:
        return self._full

    @property
    def length(self) -> int:
        return self._length

    def initials(self, value: str) -> str:
        return value[: self._length]

    def to_attr_value(self, value: str) -> AttributeValue:
        return {"S": self.initials(value)}

    def can_be_used_on_query_to(self, other: Attribute[Any]) -> bool:
        return self == other or self._full == other


def attribute_map_from(*attributes: Attribute[Any]) -> dict[str, Attribute[Any]]:
    return {attr.name: attr for attr in attributes}
