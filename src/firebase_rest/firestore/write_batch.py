from __future__ import annotations

from datetime import datetime
import logging
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from firebase_rest.errors import InvalidArgumentError
from firebase_rest.firestore.path import field_path, split_field_path
from firebase_rest.firestore.reference import DocumentReference
from firebase_rest.firestore.serializer import encode_fields, parse_timestamp

if TYPE_CHECKING:
    from firebase_rest.firestore.client import Firestore


LOGGER = logging.getLogger(__name__)


def _leaf_field_paths(data: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> list[str]:
    paths: list[str] = []
    for key, value in data.items():
        names = prefix + (str(key),)
        if isinstance(value, Mapping) and value:
            paths.extend(_leaf_field_paths(value, names))
        else:
            paths.append(field_path(*names))
    return paths


def _require_disjoint(paths: Iterable[tuple[str, ...]]) -> None:
    ordered = sorted(paths)
    for previous, current in zip(ordered, ordered[1:]):
        if current[: len(previous)] == previous:
            raise InvalidArgumentError(
                f"Field path {field_path(*previous)} conflicts with {field_path(*current)} in the same update."
            )


def _expand_field_paths(data: Mapping[str, Any]) -> dict[str, Any]:
    """Turn ``{"a.b": 1}`` into ``{"a": {"b": 1}}`` without touching the caller's mappings."""
    expanded: dict[str, Any] = {}
    for key, value in data.items():
        names = split_field_path(str(key))
        target = expanded
        for name in names[:-1]:
            child = target.get(name)
            child = dict(child) if isinstance(child, Mapping) else {}
            target[name] = child
            target = child
        target[names[-1]] = value
    return expanded


def _pick_fields(data: Mapping[str, Any], paths: Iterable[str]) -> dict[str, Any]:
    picked: dict[str, Any] = {}
    for path in paths:
        names = split_field_path(path)
        source: Any = data
        for name in names:
            if not isinstance(source, Mapping) or name not in source:
                raise InvalidArgumentError(f'Field "{path}" is specified in merge_fields but missing from data.')
            source = source[name]
        target = picked
        for name in names[:-1]:
            target = target.setdefault(name, {})
        target[names[-1]] = source
    return picked


class WriteBatch:
    """Ordered list of writes sent to the server as one atomic commit."""

    def __init__(self, firestore: "Firestore") -> None:
        self._firestore = firestore
        self._writes: list[dict[str, Any]] = []

    @property
    def writes(self) -> tuple[dict[str, Any], ...]:
        return tuple(self._writes)

    def __len__(self) -> int:
        return len(self._writes)

    def create(self, reference: DocumentReference, data: Mapping[str, Any]) -> "WriteBatch":
        self._writes.append(
            {
                "update": {"name": reference.qualified_path, "fields": encode_fields(data)},
                "currentDocument": {"exists": False},
            }
        )
        return self

    def set(
        self,
        reference: DocumentReference,
        data: Mapping[str, Any],
        *,
        merge: bool = False,
        merge_fields: Iterable[str] | None = None,
    ) -> "WriteBatch":
        write: dict[str, Any] = {"update": {"name": reference.qualified_path}}
        if merge_fields is not None:
            mask = [str(path) for path in merge_fields]
            write["update"]["fields"] = encode_fields(_pick_fields(data, mask))
            write["updateMask"] = {"fieldPaths": mask}
        elif merge:
            write["update"]["fields"] = encode_fields(data)
            write["updateMask"] = {"fieldPaths": _leaf_field_paths(data)}
        else:
            write["update"]["fields"] = encode_fields(data)
        self._writes.append(write)
        return self

    def update(self, reference: DocumentReference, data: Mapping[str, Any]) -> "WriteBatch":
        if not data:
            raise InvalidArgumentError("update() requires at least one field.")
        paths = [split_field_path(str(key)) for key in data]
        _require_disjoint(paths)
        self._writes.append(
            {
                "update": {
                    "name": reference.qualified_path,
                    "fields": encode_fields(_expand_field_paths(data)),
                },
                "updateMask": {"fieldPaths": [field_path(*names) for names in paths]},
                "currentDocument": {"exists": True},
            }
        )
        return self

    def delete(self, reference: DocumentReference) -> "WriteBatch":
        self._writes.append({"delete": reference.qualified_path})
        return self

    def commit(self) -> list[datetime]:
        """Send the writes and return one timestamp per write, in write order.

        The batch is emptied first, so it can never resend the same writes.
        An empty batch sends nothing and returns an empty list. Inside a
        transaction the writes are handed to the transaction buffer instead
        and no timestamps are available yet.
        """

        writes, self._writes = self._writes, []
        active = self._firestore.active_transaction
        if active is not None:
            if active.read_only and writes:
                raise InvalidArgumentError("Writes are not allowed in a read-only transaction.")
            active.pending_writes.extend(writes)
            return []
        if not writes:
            LOGGER.debug("Skipping commit of an empty write batch")
            return []

        response = self._firestore.request("POST", ":commit", body={"writes": writes})
        return commit_timestamps(response, len(writes))


def commit_timestamps(response: Mapping[str, Any], write_count: int) -> list[datetime]:
    commit_time = response.get("commitTime")
    results = response.get("writeResults") or [{} for _ in range(write_count)]
    timestamps: list[datetime] = []
    for result in results:
        raw = result.get("updateTime") or commit_time
        if raw:
            timestamps.append(parse_timestamp(raw))
    if len(timestamps) != write_count:
        LOGGER.warning("commit response has %s timestamps for %s writes", len(timestamps), write_count)
    return timestamps
