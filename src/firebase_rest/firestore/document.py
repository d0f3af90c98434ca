from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

from firebase_rest.errors import InvalidArgumentError
from firebase_rest.firestore.path import split_field_path
from firebase_rest.firestore.reference import DocumentReference
from firebase_rest.firestore.serializer import decode_fields, parse_timestamp


def _optional_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if value:
        return parse_timestamp(str(value))
    return None


class DocumentSnapshot:
    """A document as read at ``read_time``; ``exists`` is False for missing documents."""

    def __init__(
        self,
        reference: DocumentReference,
        document: Mapping[str, Any] | None,
        read_time: datetime | str | None = None,
    ) -> None:
        self._reference = reference
        self._exists = document is not None
        self._data = decode_fields(document.get("fields"), reference.firestore) if document is not None else None
        self._read_time = _optional_timestamp(read_time)
        self._create_time = _optional_timestamp(document.get("createTime")) if document is not None else None
        self._update_time = _optional_timestamp(document.get("updateTime")) if document is not None else None

    @property
    def reference(self) -> DocumentReference:
        return self._reference

    @property
    def ref(self) -> DocumentReference:
        return self._reference

    @property
    def id(self) -> str | None:
        return self._reference.id

    @property
    def exists(self) -> bool:
        return self._exists

    @property
    def read_time(self) -> datetime | None:
        return self._read_time

    @property
    def create_time(self) -> datetime | None:
        return self._create_time

    @property
    def update_time(self) -> datetime | None:
        return self._update_time

    def to_dict(self) -> dict[str, Any] | None:
        if self._data is None:
            return None
        return dict(self._data)

    def get(self, field_path: str, default: Any = None) -> Any:
        """Look up a dotted field path, returning ``default`` when any segment is absent."""
        if self._data is None:
            return default
        try:
            names = split_field_path(field_path)
        except InvalidArgumentError:
            return default
        current: Any = self._data
        for name in names:
            if not isinstance(current, Mapping) or name not in current:
                return default
            current = current[name]
        return current

    def __repr__(self) -> str:
        return f"DocumentSnapshot({self._reference.path!r}, exists={self._exists})"
