from __future__ import annotations

from datetime import datetime
import logging
import secrets
import string
from typing import Any, Callable, Iterable, Mapping, Sequence, TypeVar

import httpx

from firebase_rest.errors import InvalidArgumentError, TransactionInProgressError
from firebase_rest.firestore.collection import CollectionReference
from firebase_rest.firestore.document import DocumentSnapshot
from firebase_rest.firestore.path import PathLike, is_document_path, relative_name, split_path
from firebase_rest.firestore.reference import DocumentReference
from firebase_rest.firestore.serializer import format_timestamp
from firebase_rest.firestore.transaction import ActiveTransaction
from firebase_rest.firestore.write_batch import WriteBatch
from firebase_rest.service import FirebaseService
from firebase_rest.settings import FirebaseSettings
from firebase_rest.tokens import TokenGetter


LOGGER = logging.getLogger(__name__)

FIRESTORE_API_URL = "https://firestore.googleapis.com/v1"
AUTO_ID_LENGTH = 20
AUTO_ID_ALPHABET = string.ascii_letters + string.digits

ResultT = TypeVar("ResultT")


class Firestore(FirebaseService):
    """Root of the Firestore REST client.

    Owns the project/database address, hands out references and batches, and
    holds the state of the one transaction that may be active on this
    instance.
    """

    def __init__(
        self,
        settings: FirebaseSettings,
        *,
        token_getter: TokenGetter | None = None,
        http_client: httpx.Client | None = None,
        api_url: str = FIRESTORE_API_URL,
    ) -> None:
        super().__init__(
            "firestore",
            api_url,
            settings,
            token_getter=token_getter,
            http_client=http_client,
        )
        self.base_path = f"projects/{settings.project_id}/databases/{settings.database_id}/documents"
        self._transaction: ActiveTransaction | None = None

    @property
    def active_transaction(self) -> ActiveTransaction | None:
        return self._transaction

    @property
    def transaction_token(self) -> str | None:
        return self._transaction.token if self._transaction is not None else None

    def reference(self, path: PathLike) -> DocumentReference | CollectionReference:
        """Return a document reference for even paths and a collection reference for odd ones."""
        segments = split_path(path)
        if is_document_path(segments):
            return DocumentReference(self, segments)
        return CollectionReference(self, segments)

    def collection(self, path: PathLike) -> CollectionReference:
        return CollectionReference(self, path)

    def doc(self, path: PathLike) -> DocumentReference:
        return DocumentReference(self, path)

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def auto_id(self) -> str:
        return "".join(secrets.choice(AUTO_ID_ALPHABET) for _ in range(AUTO_ID_LENGTH))

    def relative_path(self, name: str) -> str:
        return relative_name(name, self.base_path)

    def request(
        self,
        method: str,
        path: str = "",
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        *,
        authorized: bool | str = True,
    ) -> Any:
        """Send a request relative to ``base_path``.

        ``:verb`` paths attach directly to the documents root, any other path
        is joined with a slash.
        """

        if path and path[0] not in ":/":
            path = "/" + path
        return super().request(method, "/" + self.base_path + path, params, body, authorized=authorized)

    def batch_get(
        self,
        references: Sequence[DocumentReference],
        fields: Iterable[str] | None = None,
        *,
        read_time: datetime | None = None,
    ) -> list[DocumentSnapshot]:
        """Read several documents in one round trip, returned in the order requested.

        ``read_time`` reads the documents as they were at that instant. It
        cannot be combined with an active transaction.
        """
        if not references:
            return []
        names = [reference.qualified_path for reference in references]
        body: dict[str, Any] = {"documents": names}
        if fields is not None:
            body["mask"] = {"fieldPaths": list(fields)}
        if read_time is not None:
            if self.transaction_token is not None:
                raise InvalidArgumentError("read_time cannot be used inside a transaction.")
            body["readTime"] = format_timestamp(read_time)
        if self.transaction_token is not None:
            body["transaction"] = self.transaction_token

        response = self.request("POST", ":batchGet", body=body)
        results: dict[str, Mapping[str, Any]] = {}
        for result in response or []:
            if result.get("found"):
                results[result["found"]["name"]] = result
            elif result.get("missing"):
                results[result["missing"]] = result

        snapshots: list[DocumentSnapshot] = []
        for reference, name in zip(references, names):
            result = results.get(name)
            if result is None:
                LOGGER.warning("batchGet response has no entry for %s", name)
                snapshots.append(DocumentSnapshot(reference, None))
                continue
            snapshots.append(DocumentSnapshot(reference, result.get("found"), result.get("readTime")))
        return snapshots

    def run_transaction(
        self,
        update_function: Callable[[], ResultT],
        *,
        read_only: bool = False,
    ) -> ResultT:
        """Run ``update_function`` inside one server transaction.

        Reads made through this store while the function runs carry the
        transaction token and writes are buffered, then everything is sent in
        a single commit. The attempt is not retried on contention; the
        function's exception, or the commit's StatusError, reaches the caller.
        """

        if self._transaction is not None:
            raise TransactionInProgressError("A transaction is already active on this Firestore instance.")

        options = {"readOnly": {}} if read_only else {"readWrite": {}}
        response = self.request("POST", ":beginTransaction", body={"options": options})
        self._transaction = ActiveTransaction(token=response["transaction"], read_only=read_only)
        LOGGER.info("Transaction started: read_only=%s", read_only)
        try:
            result = update_function()
            self.request("POST", ":commit", body=self._transaction.commit_body())
            LOGGER.info("Transaction committed: writes=%s", len(self._transaction.pending_writes))
        except Exception:
            LOGGER.warning("Transaction aborted; buffered writes discarded")
            raise
        finally:
            self._transaction = None
        return result
