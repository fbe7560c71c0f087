from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Iterable, Iterator, Mapping
from typing import Any

from .attributes import AttributeValue
from .errors import InvalidCursorError, ValidationError
from .executor import DynamoDBExecutor
from .query import DEFAULT_PAGE_SIZE, Page, decode_cursor, encode_cursor
from .request_builder import DynamoDBQuery, DynamoDBScan

logger = logging.getLogger(__name__)

type Request = DynamoDBQuery | DynamoDBScan
type RawItem = dict[str, AttributeValue]


def _send(
    executor: DynamoDBExecutor,
    table_name: str,
    request: Request,
    *,
    limit: int | None = None,
    exclusive_start_key: Mapping[str, AttributeValue] | None = None,
    select_count: bool = False,
) -> Mapping[str, Any]:
    if isinstance(request, DynamoDBQuery):
        return executor.query(
            **request.to_request(
                table_name,
                limit=limit,
                exclusive_start_key=exclusive_start_key,
                select_count=select_count,
            )
        )
    return executor.scan(
        **request.to_request(
            table_name,
            limit=limit,
            exclusive_start_key=exclusive_start_key,
            select_count=select_count,
        )
    )


def _index_name(request: Request) -> str | None:
    return request.index_name if isinstance(request, DynamoDBQuery) else None


def page(
    executor: DynamoDBExecutor,
    table_name: str,
    request: Request,
    *,
    to_last_evaluated_key: Callable[[RawItem], dict[str, AttributeValue]],
    limit: int | None = None,
    cursor: str | None = None,
) -> Page[RawItem]:
    """Reads up to ``limit`` matching items, starting after ``cursor``.

    The store applies its filter after its own page limit, so one store page can
    hold fewer matches than requested; further pages are read until the budget is
    met or the store has nothing left. When a store page holds more matches than
    the remaining budget, the cursor points at the last item kept, not at the
    end of that store page.

    With a filter, a full budget does not prove more matches exist: reading
    goes on until one more match shows up (cursor at the last kept item) or
    the store runs out (no cursor).
    """
    limit = limit or DEFAULT_PAGE_SIZE
    if limit <= 0:
        raise ValidationError("limit must be > 0")

    index_name = _index_name(request)
    decoded = decode_cursor(cursor)
    if decoded is not None and decoded.index != index_name:
        raise InvalidCursorError("cursor does not belong to this query")
    exclusive_start_key = decoded.last_key if decoded is not None else None

    items: list[RawItem] = []
    last_key: dict[str, AttributeValue] | None = None
    while True:
        resp = _send(executor, table_name, request, limit=limit, exclusive_start_key=exclusive_start_key)
        page_items = [dict(item) for item in resp.get("Items") or []]
        remaining = limit - len(items)

        if len(page_items) > remaining:
            items.extend(page_items[:remaining])
            last_key = to_last_evaluated_key(items[-1])
            break

        items.extend(page_items)
        last_key = resp.get("LastEvaluatedKey") or None
        if last_key is None:
            break
        if len(items) == limit and not request.filter_expression:
            break
        exclusive_start_key = last_key

    return Page(items=items, next_cursor=encode_cursor(last_key, index=index_name))


def iterate(
    executor: DynamoDBExecutor,
    table_name: str,
    request: Request,
    *,
    page_size: int | None = None,
) -> Iterator[RawItem]:
    """Lazily yields every matching item. Stops when the store reports no continuation key."""
    exclusive_start_key: Mapping[str, AttributeValue] | None = None
    while True:
        resp = _send(executor, table_name, request, limit=page_size, exclusive_start_key=exclusive_start_key)
        for item in resp.get("Items") or []:
            yield dict(item)
        exclusive_start_key = resp.get("LastEvaluatedKey") or None
        if exclusive_start_key is None:
            return


def count(executor: DynamoDBExecutor, table_name: str, request: Request) -> int:
    total = 0
    exclusive_start_key: Mapping[str, AttributeValue] | None = None
    while True:
        resp = _send(executor, table_name, request, exclusive_start_key=exclusive_start_key, select_count=True)
        total += int(resp.get("Count") or 0)
        exclusive_start_key = resp.get("LastEvaluatedKey") or None
        if exclusive_start_key is None:
            return total


def merge_unique(
    executor: DynamoDBExecutor,
    table_name: str,
    requests: Iterable[Request],
    *,
    key_of: Callable[[RawItem], Hashable],
) -> list[RawItem]:
    """Runs every request to exhaustion, keeping the first occurrence of each entity."""
    merged: dict[Hashable, RawItem] = {}
    for request in requests:
        for item in iterate(executor, table_name, request):
            merged.setdefault(key_of(item), item)
    logger.debug("merged %s distinct items", len(merged))
    return list(merged.values())
