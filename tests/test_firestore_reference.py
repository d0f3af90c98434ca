from __future__ import annotations

import json
import unittest

import httpx

from firebase_rest.errors import InvalidPathError
from firebase_rest.firestore.client import Firestore
from firebase_rest.firestore.collection import CollectionReference
from firebase_rest.firestore.path import field_path, split_field_path, split_path
from firebase_rest.firestore.reference import DocumentReference
from firebase_rest.settings import FirebaseSettings
from firebase_rest.tokens import StaticTokenGetter


BASE = "projects/demo-project/databases/(default)/documents"


class RecordingHandler:
    def __init__(self, responses: list[object]) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(200, json=self.responses.pop(0))

    def body(self, index: int) -> dict:
        return json.loads(self.requests[index].content)


def create_store(responses: list[object] | None = None) -> tuple[Firestore, RecordingHandler]:
    handler = RecordingHandler(responses or [])
    store = Firestore(
        FirebaseSettings(project_id="demo-project"),
        token_getter=StaticTokenGetter("test-token"),
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    return store, handler


class PathTest(unittest.TestCase):
    def test_split_path_trims_and_drops_empty_segments(self) -> None:
        self.assertEqual(split_path("/users//alice/"), ("users", "alice"))
        self.assertEqual(split_path(["users", "", "alice"]), ("users", "alice"))
        self.assertEqual(split_path(""), ())

    def test_field_path_quotes_non_identifiers(self) -> None:
        self.assertEqual(field_path("address", "zip-code"), "address.`zip-code`")
        self.assertEqual(split_field_path("address.`zip.code`"), ("address", "zip.code"))


class ReferenceTest(unittest.TestCase):
    def test_reference_factory_follows_segment_parity(self) -> None:
        store, _ = create_store()
        for path, expected in [
            ("users", CollectionReference),
            ("users/alice", DocumentReference),
            ("users/alice/posts", CollectionReference),
            ("/users/alice/posts/p1/", DocumentReference),
        ]:
            with self.subTest(path=path):
                reference = store.reference(path)
                self.assertIsInstance(reference, expected)
                self.assertEqual(reference.path, path.strip("/"))

    def test_wrong_parity_raises(self) -> None:
        store, _ = create_store()
        with self.assertRaises(InvalidPathError):
            store.doc("users")
        with self.assertRaises(InvalidPathError):
            store.collection("users/alice")
        with self.assertRaises(InvalidPathError):
            store.collection("users").collection("posts")
        with self.assertRaises(InvalidPathError):
            store.doc("users/alice").collection("posts/p1")

    def test_root_document_has_no_id(self) -> None:
        store, _ = create_store()
        root = store.reference("")

        self.assertIsInstance(root, DocumentReference)
        self.assertIsNone(root.id)
        self.assertIsNone(root.parent)
        self.assertEqual(root.qualified_path, BASE)

    def test_document_properties(self) -> None:
        store, _ = create_store()
        reference = store.doc("users/alice/posts/p1")

        self.assertEqual(reference.id, "p1")
        self.assertEqual(reference.path, "users/alice/posts/p1")
        self.assertEqual(reference.qualified_path, f"{BASE}/users/alice/posts/p1")
        self.assertIsInstance(reference.parent, CollectionReference)
        self.assertEqual(reference.parent.path, "users/alice/posts")
        self.assertEqual(reference.parent.parent, store.doc("users/alice"))

    def test_collection_properties(self) -> None:
        store, _ = create_store()
        users = store.collection("users")
        posts = users.doc("alice").collection("posts")

        self.assertEqual(users.id, "users")
        self.assertIsNone(users.parent)
        self.assertEqual(posts.id, "posts")
        self.assertEqual(posts.parent, store.doc("users/alice"))
        self.assertEqual(posts.qualified_path, f"{BASE}/users/alice/posts")

    def test_doc_accepts_multiple_segments(self) -> None:
        store, _ = create_store()
        reference = store.collection("users").doc("alice/posts/p1")

        self.assertEqual(reference.path, "users/alice/posts/p1")

    def test_auto_ids_are_distinct(self) -> None:
        store, _ = create_store()
        users = store.collection("users")

        first = users.doc()
        second = users.doc()

        self.assertEqual(len(first.id), 20)
        self.assertEqual(len(second.id), 20)
        self.assertTrue(first.id.isalnum())
        self.assertNotEqual(first.id, second.id)
        self.assertEqual(first.parent, users)


class ReferenceRequestTest(unittest.TestCase):
    def test_list_collections_follows_page_tokens(self) -> None:
        store, handler = create_store(
            [
                {"collectionIds": ["posts"], "nextPageToken": "next"},
                {"collectionIds": ["likes"]},
            ]
        )

        collections = store.doc("users/alice").list_collections()

        self.assertEqual([collection.path for collection in collections], ["users/alice/posts", "users/alice/likes"])
        self.assertEqual(handler.requests[0].url.path, f"/v1/{BASE}/users/alice:listCollectionIds")
        self.assertEqual(handler.body(0), {"pageSize": 65535})
        self.assertEqual(handler.body(1), {"pageSize": 65535, "pageToken": "next"})

    def test_list_documents_shows_missing(self) -> None:
        store, handler = create_store(
            [{"documents": [{"name": f"{BASE}/users/alice"}, {"name": f"{BASE}/users/bob"}]}]
        )

        references = store.collection("users").list_documents()

        self.assertEqual(references, [store.doc("users/alice"), store.doc("users/bob")])
        request = handler.requests[0]
        self.assertEqual(request.method, "GET")
        self.assertEqual(request.url.path, f"/v1/{BASE}/users")
        self.assertEqual(request.url.params["showMissing"], "true")
        self.assertEqual(request.url.params["pageSize"], "65535")

    def test_add_creates_document_with_generated_id(self) -> None:
        store, handler = create_store([{"writeResults": [{"updateTime": "2024-01-01T00:00:00Z"}]}])

        reference = store.collection("users").add({"name": "carol"})

        write = handler.body(0)["writes"][0]
        self.assertEqual(write["update"]["name"], reference.qualified_path)
        self.assertEqual(write["currentDocument"], {"exists": False})
        self.assertEqual(len(reference.id), 20)


if __name__ == "__main__":
    unittest.main()
