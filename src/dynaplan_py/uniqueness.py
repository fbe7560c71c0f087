from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from .attributes import (
    AttributeValue,
    Item,
    KeyStringAttribute,
    NumberAttribute,
    StartsWithAttribute,
    UniqueStringAttribute,
)
from .aws_errors import is_condition_failure
from .errors import (
    IdCollisionError,
    TransactionCanceledError,
    UniquenessConflictError,
    ValidationError,
    VersionConflictError,
)
from .executor import DynamoDBExecutor
from .outcome import Conflict, NotFound, Outcome, Success, retry, unwrap
from .transaction import Condition, TransactDelete, TransactPut, TransactWriteAction, to_transact_item

logger = logging.getLogger(__name__)

type RawItem = dict[str, AttributeValue]

CONDITION_FAILED = "ConditionalCheckFailed"


@dataclass(frozen=True)
class UniqueEntitySchema:
    """Layout of an entity stored as one main item plus one shadow item per unique value.

    All items of an entity carry the same common attributes. The main item is keyed
    by the uniqueness value of ``id``, each shadow by the uniqueness value of one
    of ``unique_attributes``. ``main_only`` attributes (prefix-index initials) are
    written to the main item alone. ``preserved`` names common attributes an
    update keeps from the stored item when the replacement omits them.
    """

    table_name: str
    key: KeyStringAttribute
    id: UniqueStringAttribute
    version: NumberAttribute
    unique_attributes: tuple[UniqueStringAttribute, ...] = ()
    main_only: tuple[StartsWithAttribute, ...] = ()
    preserved: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.id in self.unique_attributes:
            raise ValueError("the id attribute is always unique, do not list it in unique_attributes")

    def unique_key(self, attribute: UniqueStringAttribute, value: str) -> dict[str, AttributeValue]:
        name, attr_value = self.key.unique_key_entry_for(attribute, value)
        return {name: attr_value}

    def main_key(self, item_id: str) -> dict[str, AttributeValue]:
        return self.unique_key(self.id, item_id)

    def common_from(self, item: Item) -> RawItem:
        excluded = {self.key.name, *(attr.name for attr in self.main_only)}
        return {name: value for name, value in item.items() if name not in excluded}

    def main_only_from(self, common: Item) -> RawItem:
        out: RawItem = {}
        for attr in self.main_only:
            value = attr.full.optional_from_item(common)
            if value:
                out[attr.name] = attr.to_attr_value(value)
        return out

    def is_unique(self, attribute: UniqueStringAttribute) -> bool:
        return attribute == self.id or attribute in self.unique_attributes


@dataclass(frozen=True)
class _PlannedWrite:
    action: TransactWriteAction
    attribute: UniqueStringAttribute
    claims_key: bool


def _failed_writes(planned: Sequence[_PlannedWrite], err: TransactionCanceledError) -> list[_PlannedWrite]:
    # Cancellation reasons are positional, one per submitted action.
    return [write for write, code in zip(planned, err.reason_codes) if code == CONDITION_FAILED]


def _key_absent(key: KeyStringAttribute) -> Condition:
    return Condition("attribute_not_exists(#pk)", names={"#pk": key.name})


class UniquenessUpdateBuilder:
    """Collects the writes replacing the common data of an entity.

    Every write except new shadow insertions is conditioned on ``condition``,
    normally the stored version and id.
    """

    def __init__(self, key: KeyStringAttribute, common_item: Item, condition: Condition) -> None:
        self._key = key
        self._common_item = dict(common_item)
        self._condition = condition
        self._planned: list[_PlannedWrite] = []

    @property
    def actions(self) -> list[TransactWriteAction]:
        return [write.action for write in self._planned]

    @property
    def planned(self) -> list[_PlannedWrite]:
        return list(self._planned)

    def handle_unique_attribute(
        self,
        attribute: UniqueStringAttribute,
        before: str | None,
        after: str | None,
        additional_attributes: Mapping[str, AttributeValue] | None = None,
    ) -> None:
        additional = dict(additional_attributes or {})
        if before is not None and before == after:
            self._put(attribute, after, additional, self._condition, claims_key=False)
            return

        if before is not None:
            self._planned.append(
                _PlannedWrite(
                    TransactDelete(self._unique_key(attribute, before), self._condition),
                    attribute,
                    claims_key=False,
                )
            )
        if after is not None:
            self._put(attribute, after, additional, _key_absent(self._key), claims_key=True)

    def conflict_for(self, err: TransactionCanceledError, item_id: str) -> Conflict:
        failed = _failed_writes(self._planned, err)
        if any(not write.claims_key for write in failed):
            return Conflict(VersionConflictError(item_id))
        if failed:
            return Conflict(UniquenessConflictError(failed[0].attribute.name), retryable=False)
        return Conflict(VersionConflictError(item_id))

    def _put(
        self,
        attribute: UniqueStringAttribute,
        value: str,
        additional: RawItem,
        condition: Condition,
        *,
        claims_key: bool,
    ) -> None:
        item = {**self._common_item, **self._unique_key(attribute, value), **additional}
        self._planned.append(_PlannedWrite(TransactPut(item, condition), attribute, claims_key))

    def _unique_key(self, attribute: UniqueStringAttribute, value: str) -> RawItem:
        name, attr_value = self._key.unique_key_entry_for(attribute, value)
        return {name: attr_value}


class UniqueItemStore:
    """Creates, replaces and deletes entities whose attributes must stay unique.

    Every mutation is a single transaction over the main item and its shadows.
    Updates and deletes read the main item first and condition every write on
    the version they read, retrying the whole cycle when it changed meanwhile.
    """

    def __init__(
        self,
        schema: UniqueEntitySchema,
        executor: DynamoDBExecutor,
        *,
        attempts: int | None = None,
    ) -> None:
        self._schema = schema
        self._executor = executor
        self._attempts = attempts or executor.settings.transaction_attempts
        self._table_name = executor.table_name(schema.table_name)

    @property
    def schema(self) -> UniqueEntitySchema:
        return self._schema

    @property
    def table_name(self) -> str:
        return self._table_name

    def get_by_id(self, item_id: str, *, consistent_read: bool = True) -> RawItem | None:
        return self._executor.get_item(
            self._table_name,
            self._schema.main_key(item_id),
            consistent_read=consistent_read,
        )

    def get_by_unique(self, attribute: UniqueStringAttribute, value: str) -> RawItem | None:
        """The entity owning ``value``, read from its shadow item (without main-only attributes)."""
        if not self._schema.is_unique(attribute):
            raise ValidationError(f"attribute '{attribute.name}' is not unique")
        return self._executor.get_item(self._table_name, self._schema.unique_key(attribute, value))

    def exists(self, attribute: UniqueStringAttribute, value: str) -> bool:
        return self.get_by_unique(attribute, value) is not None

    def create(self, item: Item) -> RawItem:
        schema = self._schema
        item_id = schema.id.optional_from_item(item)
        if not item_id:
            raise ValidationError(f"'{schema.id.name}' is required")

        common = schema.common_from(item)
        schema.version.add_to(common, 0)
        main_item = {**common, **schema.main_key(item_id), **schema.main_only_from(common)}

        key_absent = _key_absent(schema.key)
        planned = [_PlannedWrite(TransactPut(main_item, key_absent), schema.id, claims_key=True)]
        for attribute in schema.unique_attributes:
            value = attribute.optional_from_item(common)
            if value is not None:
                shadow = {**common, **schema.unique_key(attribute, value)}
                planned.append(_PlannedWrite(TransactPut(shadow, key_absent), attribute, claims_key=True))

        try:
            self._write(planned)
        except TransactionCanceledError as err:
            if not is_condition_failure(err):
                raise
            failed = _failed_writes(planned, err)
            if not failed:
                raise
            if failed[0].attribute == schema.id:
                raise IdCollisionError(item_id) from err
            raise UniquenessConflictError(failed[0].attribute.name) from err

        logger.debug("created %s with %s shadow items", item_id, len(planned) - 1)
        return main_item

    def try_update(self, item_id: str, item: Item) -> Outcome[RawItem]:
        """One read-modify-write attempt replacing the common data of ``item_id``."""
        schema = self._schema
        new_id = schema.id.optional_from_item(item)
        if new_id is not None and new_id != item_id:
            raise ValidationError(f"'{schema.id.name}' cannot be changed")

        observed = self.get_by_id(item_id)
        if observed is None:
            return NotFound()
        version = schema.version.from_item(observed)
        schema.id.from_item(observed)

        common = schema.common_from(item)
        for name in schema.preserved:
            if name not in common and name in observed:
                common[name] = observed[name]
        schema.id.add_to(common, item_id)
        schema.version.add_to(common, version + 1)

        main_only = schema.main_only_from(common)
        builder = UniquenessUpdateBuilder(schema.key, common, self._version_condition(version, item_id))
        builder.handle_unique_attribute(schema.id, item_id, item_id, main_only)
        for attribute in schema.unique_attributes:
            builder.handle_unique_attribute(
                attribute,
                attribute.optional_from_item(observed),
                attribute.optional_from_item(common),
            )

        try:
            self._write(builder.planned)
        except TransactionCanceledError as err:
            if not is_condition_failure(err):
                raise
            return builder.conflict_for(err, item_id)

        return Success({**common, **schema.main_key(item_id), **main_only})

    def update(self, item_id: str, item: Item) -> RawItem | None:
        """The stored main item after replacing its common data, ``None`` when ``item_id`` does not exist."""
        return unwrap(retry(f"update {item_id}", self._attempts, lambda: self.try_update(item_id, item)))

    def try_delete(self, item_id: str) -> Outcome[None]:
        schema = self._schema
        observed = self.get_by_id(item_id)
        if observed is None:
            return NotFound()
        version = schema.version.from_item(observed)
        schema.id.from_item(observed)

        condition = self._version_condition(version, item_id)
        planned = [_PlannedWrite(TransactDelete(schema.main_key(item_id), condition), schema.id, claims_key=False)]
        for attribute in schema.unique_attributes:
            value = attribute.optional_from_item(observed)
            if value is not None:
                planned.append(
                    _PlannedWrite(
                        TransactDelete(schema.unique_key(attribute, value), condition),
                        attribute,
                        claims_key=False,
                    )
                )

        try:
            self._write(planned)
        except TransactionCanceledError as err:
            if not is_condition_failure(err):
                raise
            return Conflict(VersionConflictError(item_id))
        return Success(None)

    def delete(self, item_id: str) -> bool:
        """Removes the entity and all its shadows. ``False`` when it did not exist."""
        outcome = retry(f"delete {item_id}", self._attempts, lambda: self.try_delete(item_id))
        if isinstance(outcome, NotFound):
            return False
        unwrap(outcome)
        return True

    def _version_condition(self, version: int, item_id: str) -> Condition:
        schema = self._schema
        return Condition(
            "#version = :oldVersion AND #id = :id",
            names={"#version": schema.version.name, "#id": schema.id.name},
            values={":oldVersion": schema.version.to_attr_value(version), ":id": schema.id.to_attr_value(item_id)},
        )

    def _write(self, planned: Sequence[_PlannedWrite]) -> None:
        self._executor.transact_write_items(
            [to_transact_item(write.action, self._table_name) for write in planned]
        )
