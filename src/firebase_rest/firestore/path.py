from __future__ import annotations

import re
from typing import Sequence

from firebase_rest.errors import InvalidArgumentError, InvalidPathError


PathLike = str | Sequence[str]

_SIMPLE_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z_0-9]*$")


def split_path(path: PathLike) -> tuple[str, ...]:
    """Split a slash separated path into non-empty segments."""
    if isinstance(path, str):
        raw_segments = path.strip("/").split("/")
    else:
        raw_segments = [str(segment) for segment in path]
    return tuple(segment for segment in raw_segments if segment)


def join_segments(*parts: PathLike) -> tuple[str, ...]:
    segments: list[str] = []
    for part in parts:
        segments.extend(split_path(part))
    return tuple(segments)


def is_document_path(segments: Sequence[str]) -> bool:
    return len(segments) % 2 == 0


def require_document_path(segments: Sequence[str]) -> tuple[str, ...]:
    if not is_document_path(segments):
        raise InvalidPathError(
            "A document reference must have an even number of segments, received " + "/".join(segments)
        )
    return tuple(segments)


def require_collection_path(segments: Sequence[str]) -> tuple[str, ...]:
    if is_document_path(segments):
        raise InvalidPathError(
            "A collection reference must have an odd number of segments, received " + "/".join(segments)
        )
    return tuple(segments)


def relative_name(name: str, base_path: str) -> str:
    """Strip the ``projects/.../documents`` prefix from a resource name."""
    prefix = base_path.rstrip("/") + "/"
    if name.startswith(prefix):
        return name[len(prefix):]
    if name == base_path:
        return ""
    return name


def quote_field_name(name: str) -> str:
    if _SIMPLE_FIELD_NAME.match(name):
        return name
    escaped = name.replace("\\", "\\\\").replace("`", "\\`")
    return f"`{escaped}`"


def field_path(*names: str) -> str:
    """Build a wire field path, backquoting names that are not plain identifiers."""
    return ".".join(quote_field_name(name) for name in names)


def split_field_path(path: str) -> tuple[str, ...]:
    """Split a dotted field path, honouring backquoted segments."""
    names: list[str] = []
    current: list[str] = []
    quoted = False
    escaped = False
    for char in path:
        if escaped:
            current.append(char)
            escaped = False
        elif char == "\\" and quoted:
            escaped = True
        elif char == "`":
            quoted = not quoted
        elif char == "." and not quoted:
            names.append("".join(current))
            current = []
        else:
            current.append(char)
    names.append("".join(current))
    if quoted or any(not name for name in names):
        raise InvalidArgumentError(f"Invalid field path: {path}")
    return tuple(names)
