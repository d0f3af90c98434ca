from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping

from firebase_rest.firestore.path import PathLike, join_segments, require_collection_path, split_path
from firebase_rest.firestore.query import Query, QueryState
from firebase_rest.firestore.reference import MAX_PAGE_SIZE, DocumentReference

if TYPE_CHECKING:
    from firebase_rest.firestore.client import Firestore


class CollectionReference(Query):
    """Address of a collection; also the unfiltered query over it."""

    def __init__(self, firestore: "Firestore", path: PathLike) -> None:
        segments = require_collection_path(split_path(path))
        self._firestore = firestore
        self._segments = segments
        super().__init__(self, QueryState(collection_id=segments[-1]))

    @property
    def firestore(self) -> "Firestore":
        return self._firestore

    @property
    def segments(self) -> tuple[str, ...]:
        return self._segments

    @property
    def id(self) -> str:
        return self._segments[-1]

    @property
    def path(self) -> str:
        return "/".join(self._segments)

    @property
    def qualified_path(self) -> str:
        return f"{self._firestore.base_path}/{self.path}"

    @property
    def parent(self) -> DocumentReference | None:
        if len(self._segments) == 1:
            return None
        return DocumentReference(self._firestore, self._segments[:-1])

    def collection(self, path: str) -> "CollectionReference":
        return CollectionReference(self._firestore, join_segments(self._segments, path))

    def doc(self, path: str | None = None) -> DocumentReference:
        if not path:
            path = self._firestore.auto_id()
        return DocumentReference(self._firestore, join_segments(self._segments, path))

    def list_documents(self) -> list[DocumentReference]:
        """List every document reference, including missing documents that only hold subcollections."""
        references: list[DocumentReference] = []
        page_token: str | None = None
        while True:
            params: dict[str, Any] = {"showMissing": "true", "pageSize": str(MAX_PAGE_SIZE)}
            if page_token:
                params["pageToken"] = page_token
            response = self._firestore.request("GET", self.path, params=params)
            for document in response.get("documents", []):
                references.append(self._firestore.doc(self._firestore.relative_path(document["name"])))
            page_token = response.get("nextPageToken")
            if not page_token:
                return references

    def add(self, data: Mapping[str, Any]) -> DocumentReference:
        reference = self.doc()
        reference.create(data)
        return reference

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CollectionReference):
            return NotImplemented
        return self._firestore is other._firestore and self._segments == other._segments

    def __hash__(self) -> int:
        return hash(self._segments)

    def __repr__(self) -> str:
        return f"CollectionReference({self.path!r})"
