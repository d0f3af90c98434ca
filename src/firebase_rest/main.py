from __future__ import annotations

import argparse
import base64
from datetime import datetime
import json
import logging
from typing import Any, Sequence

from firebase_rest.app import FirebaseApp
from firebase_rest.errors import FirebaseError
from firebase_rest.firestore.client import Firestore
from firebase_rest.firestore.document import DocumentSnapshot
from firebase_rest.firestore.reference import DocumentReference
from firebase_rest.firestore.serializer import GeoPoint


LOGGER = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, DocumentReference):
        return value.path
    if isinstance(value, GeoPoint):
        return {"latitude": value.latitude, "longitude": value.longitude}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _snapshot_payload(snapshot: DocumentSnapshot) -> dict[str, Any]:
    return {
        "path": snapshot.reference.path,
        "exists": snapshot.exists,
        "data": snapshot.to_dict(),
        "update_time": snapshot.update_time,
    }


def _parse_where(raw: Sequence[str]) -> tuple[str, str, Any]:
    field_path, op, value = raw
    try:
        parsed = json.loads(value)
    except ValueError:
        parsed = value
    return field_path, op, parsed


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Firestore REST client command line.")
    parser.add_argument("--dotenv", default=".env", help="Path of the .env file with FIREBASE_* settings.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    get_parser = subparsers.add_parser("get", help="Read one document.")
    get_parser.add_argument("path", help="Document path, e.g. users/alice")
    get_parser.add_argument("--field", action="append", dest="fields", default=None, help="Field mask entry.")

    query_parser = subparsers.add_parser("query", help="Run a structured query over a collection.")
    query_parser.add_argument("collection", help="Collection path, e.g. users")
    query_parser.add_argument(
        "--where",
        nargs=3,
        action="append",
        default=[],
        metavar=("FIELD", "OP", "VALUE"),
        help="Filter; VALUE is parsed as JSON when possible.",
    )
    query_parser.add_argument(
        "--order-by",
        action="append",
        default=[],
        help="Ordering as FIELD or FIELD:desc.",
    )
    limit_group = query_parser.add_mutually_exclusive_group()
    limit_group.add_argument("--limit", type=int, default=None)
    limit_group.add_argument("--limit-to-last", type=int, default=None)
    query_parser.add_argument("--offset", type=int, default=None)

    collections_parser = subparsers.add_parser("collections", help="List subcollection ids.")
    collections_parser.add_argument("path", nargs="?", default="", help="Document path; root when omitted.")

    documents_parser = subparsers.add_parser("documents", help="List document paths in a collection.")
    documents_parser.add_argument("collection", help="Collection path.")

    return parser.parse_args(argv)


def run_command(args: argparse.Namespace, firestore: Firestore) -> Any:
    if args.command == "get":
        return _snapshot_payload(firestore.doc(args.path).get(args.fields))

    if args.command == "query":
        query = firestore.collection(args.collection)
        for raw in args.where:
            query = query.where(*_parse_where(raw))
        for raw in args.order_by:
            field_path, _, direction = raw.partition(":")
            query = query.order_by(field_path, direction or "asc")
        if args.offset is not None:
            query = query.offset(args.offset)
        if args.limit is not None:
            query = query.limit(args.limit)
        if args.limit_to_last is not None:
            query = query.limit_to_last(args.limit_to_last)
        return [_snapshot_payload(snapshot) for snapshot in query.get()]

    if args.command == "collections":
        return [collection.id for collection in firestore.doc(args.path).list_collections()]

    if args.command == "documents":
        return [reference.path for reference in firestore.collection(args.collection).list_documents()]

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Sequence[str] | None = None, *, firestore: Firestore | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    args = parse_args(argv)
    owns_store = firestore is None
    if firestore is None:
        firestore = FirebaseApp.from_env(dotenv_path=args.dotenv).firestore()

    try:
        payload = run_command(args, firestore)
    except FirebaseError as exc:
        LOGGER.error("%s failed: %s", args.command, exc)
        return 1
    finally:
        if owns_store:
            firestore.close()

    print(json.dumps(payload, ensure_ascii=False, default=_json_default, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
