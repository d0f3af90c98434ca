from __future__ import annotations

import copy
from dataclasses import dataclass, replace
from datetime import datetime
import logging
import math
from typing import TYPE_CHECKING, Any, Callable, Iterator, Sequence

from firebase_rest.errors import InvalidArgumentError, StatusError
from firebase_rest.firestore.document import DocumentSnapshot
from firebase_rest.firestore.path import relative_name
from firebase_rest.firestore.reference import DocumentReference
from firebase_rest.firestore.serializer import UNSET, encode_value, parse_timestamp

if TYPE_CHECKING:
    from firebase_rest.firestore.collection import CollectionReference


LOGGER = logging.getLogger(__name__)

ASCENDING = "ASCENDING"
DESCENDING = "DESCENDING"

_DIRECTIONS = {
    "asc": ASCENDING,
    "ascending": ASCENDING,
    "desc": DESCENDING,
    "descending": DESCENDING,
}

_COMPARISON_OPERATORS = {
    "<": "LESS_THAN",
    "<=": "LESS_THAN_OR_EQUAL",
    "==": "EQUAL",
    "!=": "NOT_EQUAL",
    ">": "GREATER_THAN",
    ">=": "GREATER_THAN_OR_EQUAL",
    "array-contains": "ARRAY_CONTAINS",
    "in": "IN",
    "not-in": "NOT_IN",
    "array-contains-any": "ARRAY_CONTAINS_ANY",
}

_UNARY_OPERATORS = {
    ("==", "null"): "IS_NULL",
    ("==", "nan"): "IS_NAN",
    ("!=", "null"): "IS_NOT_NULL",
    ("!=", "nan"): "IS_NOT_NAN",
}

_INEQUALITY_OPERATORS = frozenset(
    {
        "LESS_THAN",
        "LESS_THAN_OR_EQUAL",
        "GREATER_THAN",
        "GREATER_THAN_OR_EQUAL",
    }
)


class FieldPath:
    DOCUMENT_ID = "__name__"


@dataclass(frozen=True)
class Order:
    field: str
    direction: str = ASCENDING

    def flipped(self) -> "Order":
        return Order(self.field, DESCENDING if self.direction == ASCENDING else ASCENDING)

    def to_wire(self) -> dict[str, Any]:
        return {"field": {"fieldPath": self.field}, "direction": self.direction}


@dataclass(frozen=True)
class Cursor:
    values: tuple[dict[str, Any], ...]
    before: bool

    def flipped(self) -> "Cursor":
        return Cursor(self.values, not self.before)

    def to_wire(self) -> dict[str, Any]:
        return {"values": copy.deepcopy(list(self.values)), "before": self.before}


@dataclass(frozen=True)
class QueryState:
    """Everything a query has accumulated. Transitions go through dataclasses.replace."""

    collection_id: str
    filters: tuple[dict[str, Any], ...] = ()
    orders: tuple[Order, ...] = ()
    projection: tuple[str, ...] | None = None
    limit: int | None = None
    offset: int | None = None
    start_at: Cursor | None = None
    end_at: Cursor | None = None
    reverse: bool = False

    def field_orders(self) -> list[Order]:
        """Explicit orders completed with the implicit inequality and document-id orders."""
        orders = list(self.orders)
        if not orders:
            for query_filter in self.filters:
                field_filter = query_filter.get("fieldFilter")
                if field_filter and field_filter["op"] in _INEQUALITY_OPERATORS:
                    orders.append(Order(field_filter["field"]["fieldPath"], ASCENDING))
                    break
        if not any(order.field == FieldPath.DOCUMENT_ID for order in orders):
            direction = orders[-1].direction if orders else ASCENDING
            orders.append(Order(FieldPath.DOCUMENT_ID, direction))
        return orders

    def to_structured_query(self) -> dict[str, Any]:
        orders = self.field_orders()
        start_at, end_at = self.start_at, self.end_at
        if self.reverse:
            if not self.orders:
                raise InvalidArgumentError("limit_to_last() queries require specifying at least one order_by() clause.")
            # Serve "last N ascending" as "first N descending"; results are reversed after the fetch.
            orders = [order.flipped() for order in orders]
            start_at, end_at = (
                self.end_at.flipped() if self.end_at else None,
                self.start_at.flipped() if self.start_at else None,
            )

        query: dict[str, Any] = {"from": [{"collectionId": self.collection_id}]}
        if self.projection is not None:
            query["select"] = {"fields": [{"fieldPath": name} for name in self.projection]}
        if len(self.filters) == 1:
            query["where"] = copy.deepcopy(self.filters[0])
        elif self.filters:
            query["where"] = {"compositeFilter": {"op": "AND", "filters": copy.deepcopy(list(self.filters))}}
        query["orderBy"] = [order.to_wire() for order in orders]
        if start_at is not None:
            query["startAt"] = start_at.to_wire()
        if end_at is not None:
            query["endAt"] = end_at.to_wire()
        if self.offset is not None:
            query["offset"] = self.offset
        if self.limit is not None:
            query["limit"] = self.limit
        return query


def _require_count(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidArgumentError(f"{name} must be a non-negative integer: {value!r}")
    return value


def _unary_key(value: Any) -> str | None:
    if value is None:
        return "null"
    if isinstance(value, float) and math.isnan(value):
        return "nan"
    return None


def _extract_field_values(snapshot: DocumentSnapshot, orders: Sequence[Order]) -> list[Any]:
    values: list[Any] = []
    for order in orders:
        if order.field == FieldPath.DOCUMENT_ID:
            values.append(snapshot.reference)
            continue
        value = snapshot.get(order.field, UNSET)
        if value is UNSET:
            raise InvalidArgumentError(
                f'Field "{order.field}" is missing in the provided DocumentSnapshot. '
                "Please provide a document that contains values for all specified "
                "order_by() and where() constraints."
            )
        values.append(value)
    return values


class QuerySnapshot:
    def __init__(
        self,
        query: "Query",
        read_time: datetime | None,
        docs: list[DocumentSnapshot],
    ) -> None:
        self.query = query
        self.read_time = read_time
        self.docs = docs

    @property
    def size(self) -> int:
        return len(self.docs)

    @property
    def empty(self) -> bool:
        return not self.docs

    def for_each(self, callback: Callable[[DocumentSnapshot], Any]) -> None:
        for snapshot in self.docs:
            callback(snapshot)

    def __iter__(self) -> Iterator[DocumentSnapshot]:
        return iter(self.docs)

    def __len__(self) -> int:
        return len(self.docs)


class Query:
    """Immutable structured query over one collection.

    Each builder method returns a new Query; the receiver is left untouched, so
    partially built queries can be shared and extended independently.
    """

    def __init__(self, anchor: "CollectionReference", state: QueryState) -> None:
        self._anchor = anchor
        self._state = state

    @property
    def anchor(self) -> "CollectionReference":
        return self._anchor

    @property
    def state(self) -> QueryState:
        return self._state

    def _with(self, **changes: Any) -> "Query":
        return Query(self._anchor, replace(self._state, **changes))

    def where(self, field_path: str, op: str, value: Any) -> "Query":
        if value is UNSET:
            raise InvalidArgumentError("Where value cannot be unset")
        if op not in _COMPARISON_OPERATORS:
            raise InvalidArgumentError(f"Invalid query operator: {op}")

        if field_path == FieldPath.DOCUMENT_ID:
            if isinstance(value, str):
                value = self._anchor.doc(value)
            elif isinstance(value, (list, tuple)):
                value = [self._anchor.doc(item) if isinstance(item, str) else item for item in value]

        unary_key = _unary_key(value)
        if op in ("==", "!=") and unary_key is not None:
            query_filter = {
                "unaryFilter": {
                    "field": {"fieldPath": field_path},
                    "op": _UNARY_OPERATORS[(op, unary_key)],
                }
            }
        else:
            query_filter = {
                "fieldFilter": {
                    "field": {"fieldPath": field_path},
                    "op": _COMPARISON_OPERATORS[op],
                    "value": encode_value(value),
                }
            }
        return self._with(filters=self._state.filters + (query_filter,))

    def select(self, *field_paths: str) -> "Query":
        if not field_paths:
            field_paths = (FieldPath.DOCUMENT_ID,)
        return self._with(projection=tuple(field_paths))

    def order_by(self, field_path: str, direction: str = "asc") -> "Query":
        resolved = _DIRECTIONS.get(direction.lower()) if isinstance(direction, str) else None
        if resolved is None:
            raise InvalidArgumentError(f"Invalid order direction: {direction!r}")
        return self._with(orders=self._state.orders + (Order(field_path, resolved),))

    def limit(self, count: int) -> "Query":
        return self._with(limit=_require_count("limit", count), reverse=False)

    def limit_to_last(self, count: int) -> "Query":
        return self._with(limit=_require_count("limit", count), reverse=True)

    def offset(self, count: int) -> "Query":
        return self._with(offset=_require_count("offset", count))

    def start_at(self, *values: Any) -> "Query":
        return self._with(start_at=self._cursor(values, before=True))

    def start_after(self, *values: Any) -> "Query":
        return self._with(start_at=self._cursor(values, before=False))

    def end_at(self, *values: Any) -> "Query":
        return self._with(end_at=self._cursor(values, before=False))

    def end_before(self, *values: Any) -> "Query":
        return self._with(end_at=self._cursor(values, before=True))

    def _cursor(self, values: Sequence[Any], *, before: bool) -> Cursor:
        orders = self._state.field_orders()
        if len(values) == 1 and isinstance(values[0], DocumentSnapshot):
            values = _extract_field_values(values[0], orders)
        if not values:
            raise InvalidArgumentError("A cursor requires at least one value or a DocumentSnapshot.")
        if len(values) > len(orders):
            raise InvalidArgumentError(
                "Too many cursor values specified. The specified values must match the "
                "order_by() constraints of the query."
            )

        encoded: list[dict[str, Any]] = []
        for order, value in zip(orders, values):
            if order.field == FieldPath.DOCUMENT_ID and isinstance(value, str):
                value = self._anchor.doc(value)
            if value is UNSET:
                raise InvalidArgumentError(f"A cursor value must be provided for the {order.field} field.")
            encoded.append(encode_value(value))
        return Cursor(tuple(encoded), before)

    def to_structured_query(self) -> dict[str, Any]:
        return self._state.to_structured_query()

    def get(self) -> QuerySnapshot:
        structured_query = self.to_structured_query()
        firestore = self._anchor.firestore
        body: dict[str, Any] = {"structuredQuery": structured_query}
        token = firestore.transaction_token
        if token is not None:
            body["transaction"] = token

        parent = self._anchor.parent
        parent_path = parent.path if parent is not None else ""
        response = firestore.request("POST", f"{parent_path}:runQuery", body=body)
        results = [result for result in (response or []) if isinstance(result, dict)]

        for result in results:
            if result.get("error"):
                raise StatusError.from_payload(result["error"])

        read_time = parse_timestamp(results[0]["readTime"]) if results and results[0].get("readTime") else None
        if results and "skippedResults" in results[0] and "document" not in results[0]:
            results = results[1:]
        if self._state.reverse:
            results.reverse()

        docs = [
            DocumentSnapshot(self._resolve(result["document"]["name"]), result["document"], result.get("readTime"))
            for result in results
            if result.get("document")
        ]
        LOGGER.debug("runQuery %s returned %s documents", self._anchor.path, len(docs))
        return QuerySnapshot(self, read_time, docs)

    def stream(self) -> Iterator[DocumentSnapshot]:
        return iter(self.get().docs)

    def _resolve(self, name: str) -> DocumentReference:
        firestore = self._anchor.firestore
        path = relative_name(name, firestore.base_path)
        prefix = self._anchor.path + "/"
        if path.startswith(prefix):
            return self._anchor.doc(path[len(prefix):])
        return firestore.doc(path)

    def __repr__(self) -> str:
        return f"Query({self._anchor.path!r})"
