from __future__ import annotations

import copy
import re
from collections import deque
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from botocore.exceptions import ClientError

OPERATIONS = frozenset(
    {
        "get_item",
        "put_item",
        "update_item",
        "delete_item",
        "query",
        "scan",
        "transact_write_items",
    }
)


class _Wildcard:
    def __repr__(self) -> str:  # pragma: no cover
        return "ANY"


ANY: Any = _Wildcard()

type RequestCheck = Mapping[str, Any] | Callable[[Mapping[str, Any]], None]
type StoredItem = dict[str, Any]


def _differences(expected: Any, actual: Any, path: str) -> Iterator[str]:
    """Every place where ``actual`` departs from ``expected``. Mappings compare as subsets."""
    if expected is ANY:
        return

    if isinstance(expected, Mapping):
        if not isinstance(actual, Mapping):
            yield f"{path}: wanted a mapping, found {actual!r}"
            return
        for name, value in expected.items():
            if name not in actual:
                yield f"{path}.{name}: absent"
            else:
                yield from _differences(value, actual[name], f"{path}.{name}")
        return

    if isinstance(expected, list):
        if not isinstance(actual, list):
            yield f"{path}: wanted a list, found {actual!r}"
            return
        if len(expected) != len(actual):
            yield f"{path}: wanted {len(expected)} entries, found {len(actual)}"
            return
        for i, (want, got) in enumerate(zip(expected, actual, strict=True)):
            yield from _differences(want, got, f"{path}[{i}]")
        return

    if expected != actual:
        yield f"{path}: wanted {expected!r}, found {actual!r}"


class _RecordingClient:
    """Answers the DynamoDB client operations the executor uses, recording each request."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def requests(self, operation: str) -> list[dict[str, Any]]:
        return [request for name, request in self.calls if name == operation]

    def __getattr__(self, name: str) -> Callable[..., Mapping[str, Any]]:
        if name not in OPERATIONS:
            raise AttributeError(name)

        def call(**request: Any) -> Mapping[str, Any]:
            self.calls.append((name, dict(request)))
            return self._answer(name, request)

        return call

    def _answer(self, operation: str, request: dict[str, Any]) -> Mapping[str, Any]:
        raise NotImplementedError


@dataclass(frozen=True)
class _Step:
    operation: str
    check: RequestCheck | None
    response: Mapping[str, Any] | None
    error: Exception | None


class FakeDynamoDBClient(_RecordingClient):
    """Replays scripted responses, one per call and in the order they were scripted.

    A mapping check only constrains the request fields it names; ``ANY``
    accepts any value. A callable check receives the whole request.
    """

    def __init__(self) -> None:
        super().__init__()
        self._steps: deque[_Step] = deque()

    def expect(
        self,
        operation: str,
        check: RequestCheck | None = None,
        *,
        response: Mapping[str, Any] | None = None,
        error: Exception | None = None,
    ) -> None:
        if operation not in OPERATIONS:
            raise ValueError(f"unknown operation '{operation}'")
        self._steps.append(_Step(operation, check, response, error))

    def assert_no_pending(self) -> None:
        if self._steps:
            remaining = ", ".join(step.operation for step in self._steps)
            raise AssertionError(f"{len(self._steps)} scripted call(s) never made: {remaining}")

    def _answer(self, operation: str, request: dict[str, Any]) -> Mapping[str, Any]:
        if not self._steps:
            raise AssertionError(f"{operation} called with nothing scripted")
        step = self._steps.popleft()
        if step.operation != operation:
            raise AssertionError(f"scripted {step.operation}, got {operation}")

        if callable(step.check):
            step.check(request)
        elif step.check is not None:
            problems = list(_differences(step.check, request, operation))
            if problems:
                raise AssertionError(f"{operation} request does not match:\n" + "\n".join(problems))

        if step.error is not None:
            raise step.error
        return dict(step.response or {})


_ABSENT = re.compile(r"^\(*attribute_not_exists\((#\w+)\)\)*$")
_EQUALS = re.compile(r"^\(*(#\w+) = (:\w+)\)*$")


def _client_error(code: str, message: str, operation: str, extra: Mapping[str, Any] | None = None) -> ClientError:
    response: dict[str, Any] = {
        "Error": {"Code": code, "Message": message},
        "ResponseMetadata": {"HTTPStatusCode": 400},
    }
    response.update(extra or {})
    return ClientError(response, operation)  # type: ignore[arg-type]


class InMemoryDynamoDBClient(_RecordingClient):
    """Keeps tables in memory and evaluates the writes and scans sent to it.

    Items live in key order. Conditions are limited to conjunctions of
    ``attribute_not_exists(#name)`` and ``#name = :value``; filters are decided
    by the ``matches`` predicate. A scan stopped by ``Limit`` reports a
    continuation key even when it read the last item, as the service does.
    """

    def __init__(
        self,
        key_names: Sequence[str] = ("pk",),
        *,
        matches: Callable[[Mapping[str, Any]], bool] | None = None,
    ) -> None:
        super().__init__()
        self._key_names = tuple(key_names)
        self._matches = matches
        self._tables: dict[str, dict[tuple[Any, ...], StoredItem]] = {}
        self._hooks: list[Callable[[], Any]] = []

    def seed(self, table_name: str, *items: Mapping[str, Any]) -> None:
        table = self._table(table_name)
        for stored in items:
            table[self._key_of(stored)] = copy.deepcopy(dict(stored))

    def items(self, table_name: str) -> list[StoredItem]:
        table = self._table(table_name)
        return [copy.deepcopy(table[key]) for key in sorted(table)]

    def before_next_transaction(self, action: Callable[[], Any]) -> None:
        """Runs ``action`` once, right before the next transaction is evaluated."""
        self._hooks.append(action)

    def _answer(self, operation: str, request: dict[str, Any]) -> Mapping[str, Any]:
        handler = getattr(self, f"_{operation}", None)
        if handler is None:
            raise AssertionError(f"{operation} is not kept in memory")
        return handler(**request)

    def _get_item(self, *, TableName: str, Key: Mapping[str, Any], **_: Any) -> Mapping[str, Any]:
        stored = self._table(TableName).get(self._key_of(Key))
        return {"Item": copy.deepcopy(stored)} if stored is not None else {}

    def _put_item(self, *, TableName: str, Item: Mapping[str, Any], **condition: Any) -> Mapping[str, Any]:
        table = self._table(TableName)
        key = self._key_of(Item)
        if not self._holds(table.get(key), condition):
            raise _client_error("ConditionalCheckFailedException", "The conditional request failed", "PutItem")
        table[key] = copy.deepcopy(dict(Item))
        return {}

    def _delete_item(self, *, TableName: str, Key: Mapping[str, Any], **condition: Any) -> Mapping[str, Any]:
        table = self._table(TableName)
        key = self._key_of(Key)
        if not self._holds(table.get(key), condition):
            raise _client_error("ConditionalCheckFailedException", "The conditional request failed", "DeleteItem")
        table.pop(key, None)
        return {}

    def _scan(
        self,
        *,
        TableName: str,
        Limit: int | None = None,
        ExclusiveStartKey: Mapping[str, Any] | None = None,
        FilterExpression: str | None = None,
        Select: str | None = None,
        **_: Any,
    ) -> Mapping[str, Any]:
        table = self._table(TableName)
        keys = sorted(table)
        if ExclusiveStartKey:
            start = self._key_of(ExclusiveStartKey)
            keys = [key for key in keys if key > start]

        read = keys if Limit is None else keys[:Limit]
        found = [table[key] for key in read]
        if FilterExpression is not None:
            if self._matches is None:
                raise AssertionError("a filtered scan needs a matches predicate")
            found = [stored for stored in found if self._matches(stored)]

        resp: dict[str, Any] = {"Count": len(found), "ScannedCount": len(read)}
        if Select != "COUNT":
            resp["Items"] = copy.deepcopy(found)
        if read and Limit is not None and len(read) == Limit:
            last = table[read[-1]]
            resp["LastEvaluatedKey"] = {name: copy.deepcopy(last[name]) for name in self._key_names}
        return resp

    def _transact_write_items(self, *, TransactItems: Sequence[Mapping[str, Any]], **_: Any) -> Mapping[str, Any]:
        hooks, self._hooks = self._hooks, []
        for hook in hooks:
            hook()

        actions = []
        for entry in TransactItems:
            ((kind, action),) = entry.items()
            if kind not in ("Put", "Delete"):
                raise AssertionError(f"transaction action '{kind}' is not kept in memory")
            table = self._table(action["TableName"])
            key = self._key_of(action["Item"] if kind == "Put" else action["Key"])
            actions.append((kind, action, table, key))

        reasons = [
            "None" if self._holds(table.get(key), action) else "ConditionalCheckFailed"
            for _, action, table, key in actions
        ]
        if any(reason != "None" for reason in reasons):
            raise _client_error(
                "TransactionCanceledException",
                "Transaction cancelled, please refer cancellation reasons for specific reasons",
                "TransactWriteItems",
                {"CancellationReasons": [{"Code": reason} for reason in reasons]},
            )

        for kind, action, table, key in actions:
            if kind == "Put":
                table[key] = copy.deepcopy(dict(action["Item"]))
            else:
                table.pop(key, None)
        return {}

    def _table(self, name: str) -> dict[tuple[Any, ...], StoredItem]:
        return self._tables.setdefault(name, {})

    def _key_of(self, values: Mapping[str, Any]) -> tuple[Any, ...]:
        try:
            return tuple(next(iter(values[name].values())) for name in self._key_names)
        except KeyError as err:
            raise AssertionError(f"key attribute {err} is missing from {dict(values)!r}") from err

    @staticmethod
    def _holds(stored: Mapping[str, Any] | None, request: Mapping[str, Any]) -> bool:
        expression = request.get("ConditionExpression")
        if expression is None:
            return True
        names = request.get("ExpressionAttributeNames") or {}
        values = request.get("ExpressionAttributeValues") or {}

        for clause in expression.split(" AND "):
            clause = clause.strip()
            absent = _ABSENT.match(clause)
            if absent:
                if stored is not None and names[absent.group(1)] in stored:
                    return False
                continue
            equals = _EQUALS.match(clause)
            if equals:
                if stored is None or stored.get(names[equals.group(1)]) != values[equals.group(2)]:
                    return False
                continue
            raise AssertionError(f"condition '{clause}' is not understood in memory")
        return True
