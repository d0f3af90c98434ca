from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from firebase_rest.firestore.path import PathLike, join_segments, require_document_path, split_path

if TYPE_CHECKING:
    from firebase_rest.firestore.client import Firestore
    from firebase_rest.firestore.collection import CollectionReference
    from firebase_rest.firestore.document import DocumentSnapshot


MAX_PAGE_SIZE = 2**16 - 1


class DocumentReference:
    """Immutable address of one document."""

    __slots__ = ("_firestore", "_segments")

    def __init__(self, firestore: "Firestore", path: PathLike) -> None:
        self._firestore = firestore
        self._segments = require_document_path(split_path(path))

    @property
    def firestore(self) -> "Firestore":
        return self._firestore

    @property
    def segments(self) -> tuple[str, ...]:
        return self._segments

    @property
    def id(self) -> str | None:
        return self._segments[-1] if self._segments else None

    @property
    def path(self) -> str:
        return "/".join(self._segments)

    @property
    def qualified_path(self) -> str:
        if not self._segments:
            return self._firestore.base_path
        return f"{self._firestore.base_path}/{self.path}"

    @property
    def parent(self) -> "CollectionReference | None":
        if not self._segments:
            return None
        return self._firestore.collection(self._segments[:-1])

    def collection(self, path: str) -> "CollectionReference":
        return self._firestore.collection(join_segments(self._segments, path))

    def get(self, fields: Iterable[str] | None = None, *, read_time: datetime | None = None) -> "DocumentSnapshot":
        return self._firestore.batch_get([self], fields, read_time=read_time)[0]

    def list_collections(self) -> list["CollectionReference"]:
        collections: list[CollectionReference] = []
        page_token: str | None = None
        while True:
            body: dict[str, Any] = {"pageSize": MAX_PAGE_SIZE}
            if page_token:
                body["pageToken"] = page_token
            response = self._firestore.request("POST", f"{self.path}:listCollectionIds", body=body)
            collections.extend(self.collection(collection_id) for collection_id in response.get("collectionIds", []))
            page_token = response.get("nextPageToken")
            if not page_token:
                return collections

    def create(self, data: Mapping[str, Any]) -> datetime | None:
        return _first(self._firestore.batch().create(self, data).commit())

    def set(
        self,
        data: Mapping[str, Any],
        *,
        merge: bool = False,
        merge_fields: Iterable[str] | None = None,
    ) -> datetime | None:
        return _first(self._firestore.batch().set(self, data, merge=merge, merge_fields=merge_fields).commit())

    def update(self, data: Mapping[str, Any]) -> datetime | None:
        return _first(self._firestore.batch().update(self, data).commit())

    def delete(self) -> None:
        self._firestore.batch().delete(self).commit()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DocumentReference):
            return NotImplemented
        return self._firestore is other._firestore and self._segments == other._segments

    def __hash__(self) -> int:
        return hash(self._segments)

    def __repr__(self) -> str:
        return f"DocumentReference({self.path!r})"


def _first(timestamps: list[datetime]) -> datetime | None:
    # Writes buffered inside a transaction have no timestamp until commit.
    return timestamps[0] if timestamps else None
