"""Chromium bookmarks codec: strict decoding, encoding and checksum.

Mirrors components/bookmarks/browser/bookmark_codec.cc. The checksum is an
MD5 over the node tree exactly as the browser computes it, so a decoded file
can be told apart from JSON that only looks like a bookmarks file.
"""
import hashlib
import json
import os
import re
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Iterator, Optional, Tuple, Union

from bookmarks_recovery.errors import DecodeError, EncodeError, Stop
from bookmarks_recovery.values import (
    GUID,
    NodeType,
    Source,
    Timestamp,
    Version,
    decode_opaque_bytes,
    encode_opaque_bytes,
)


ROOT_KEYS = ("bookmark_bar", "other", "synced")

_DOCUMENT_FIELDS = frozenset({
    "checksum", "roots", "sync_metadata", "version", "meta_info", "unsynced_meta_info",
})
_NODE_FIELDS = frozenset({
    "children", "date_added", "date_last_used", "date_modified", "guid", "id",
    "name", "show_icon", "source", "type", "url", "meta_info", "unsynced_meta_info",
})

_ID_RE = re.compile(r"-?(?:0|[1-9][0-9]*)")
_INT64_MAX = (1 << 63) - 1

Ancestors = Tuple[str, ...]
Visitor = Callable[["Node", Ancestors], Any]


@dataclass(frozen=True)
class Node:
    """A folder or a bookmark.

    Folders always have a children tuple (possibly empty) and no url;
    bookmarks have a url and children is None.
    """
    id: int
    name: str
    type: NodeType
    url: Optional[str] = None
    children: Optional[Tuple["Node", ...]] = None
    guid: Optional[GUID] = None
    date_added: Timestamp = Timestamp()
    date_last_used: Timestamp = Timestamp()
    date_modified: Timestamp = Timestamp()
    meta_info: Optional[Dict[str, str]] = None
    unsynced_meta_info: Optional[Dict[str, str]] = None
    # Written by Microsoft Edge, carried through untouched
    show_icon: bool = False
    source: Optional[Source] = None

    @property
    def is_folder(self) -> bool:
        return self.type == NodeType.FOLDER

    @property
    def is_url(self) -> bool:
        return self.type == NodeType.URL

    def iter_nodes(self) -> Iterator[Tuple["Node", Ancestors]]:
        return iter_nodes(self)

    def walk(self, visitor: Visitor) -> None:
        walk(self, visitor)


@dataclass(frozen=True)
class Document:
    """A decoded Bookmarks file."""
    checksum: str
    bookmark_bar: Node
    other: Node
    synced: Node
    version: Version = Version.CURRENT
    sync_metadata: Optional[bytes] = None
    meta_info: Optional[Dict[str, str]] = None
    unsynced_meta_info: Optional[Dict[str, str]] = None

    @property
    def roots(self) -> Tuple[Tuple[str, Node], ...]:
        return (
            ("bookmark_bar", self.bookmark_bar),
            ("other", self.other),
            ("synced", self.synced),
        )

    def compute_checksum(self) -> str:
        return compute_checksum(self)

    def verify(self) -> bool:
        """True if the stored checksum matches the tree."""
        return self.checksum == compute_checksum(self)

    def with_checksum(self) -> "Document":
        """Return a copy whose stored checksum is recomputed from the tree."""
        return replace(self, checksum=compute_checksum(self))

    def iter_nodes(self) -> Iterator[Tuple[Node, Ancestors]]:
        return iter_nodes(self)

    def walk(self, visitor: Visitor) -> None:
        walk(self, visitor)


# ============================================================================
# Traversal
# ============================================================================

def iter_nodes(tree: Union[Document, Node]) -> Iterator[Tuple[Node, Ancestors]]:
    """Yield every node depth-first, pre-order, left to right.

    Each node comes with the names of its ancestors, outermost first. For a
    Document the three roots are walked in order: bookmark_bar, other,
    synced.
    """
    if isinstance(tree, Document):
        roots = [root for _, root in tree.roots]
    else:
        roots = [tree]

    for root in roots:
        stack = [(root, ())]
        while stack:
            node, ancestors = stack.pop()
            yield node, ancestors
            if node.children:
                path = ancestors + (node.name,)
                stack.extend((child, path) for child in reversed(node.children))


def walk(tree: Union[Document, Node], visitor: Visitor) -> None:
    """Call visitor(node, ancestors) for every node of tree.

    The visitor ends the walk early by raising Stop, which is not an error.
    Any other exception propagates.
    """
    try:
        for node, ancestors in iter_nodes(tree):
            visitor(node, ancestors)
    except Stop:
        return


# ============================================================================
# Checksum
# ============================================================================

def compute_checksum(document: Document) -> str:
    """Compute the checksum the browser stores alongside the tree.

    For every node in walk order: the decimal id, the name as UTF-16LE, the
    type literal and, for bookmarks only, the url bytes.
    """
    h = hashlib.md5(usedforsecurity=False)
    for node, _ in iter_nodes(document):
        h.update(str(node.id).encode("ascii"))
        h.update(node.name.encode("utf-16-le", "surrogatepass"))
        h.update(NodeType(node.type).value.encode("ascii"))
        if node.type == NodeType.URL:
            h.update((node.url or "").encode("utf-8", "surrogatepass"))
    return h.hexdigest()


# ============================================================================
# Decoding
# ============================================================================

def _reject_constant(name: str) -> None:
    raise DecodeError(f"invalid json literal {name}")


def _check_fields(obj: Dict[str, Any], allowed: frozenset, where: str) -> None:
    for key in obj:
        if key not in allowed:
            raise DecodeError(f"unknown field {key!r} in {where}")


def _require(obj: Dict[str, Any], key: str, where: str) -> Any:
    if key not in obj:
        raise DecodeError(f"missing field {key!r} in {where}")
    return obj[key]


def _string_map(value: Any, where: str) -> Optional[Dict[str, str]]:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise DecodeError(f"{where} must be an object")
    for key, item in value.items():
        if not isinstance(item, str):
            raise DecodeError(f"{where}[{key!r}] must be a string")
    return dict(value)


def _decode_id(value: Any, where: str) -> int:
    if not isinstance(value, str) or not _ID_RE.fullmatch(value):
        raise DecodeError(f"invalid id {value!r} in {where}")
    node_id = int(value)
    if abs(node_id) > _INT64_MAX:
        raise DecodeError(f"id {value!r} out of range in {where}")
    return node_id


def node_from_dict(obj: Any, where: str = "node") -> Node:
    """Build a Node from parsed JSON, rejecting anything unexpected."""
    if not isinstance(obj, dict):
        raise DecodeError(f"{where} must be an object")
    _check_fields(obj, _NODE_FIELDS, where)

    node_id = _decode_id(_require(obj, "id", where), where)
    name = _require(obj, "name", where)
    if not isinstance(name, str):
        raise DecodeError(f"name must be a string in {where}")
    node_type = NodeType.from_json(_require(obj, "type", where))

    children = None
    url = None
    if node_type == NodeType.FOLDER:
        if "url" in obj:
            raise DecodeError(f"folder {where} has a url")
        raw_children = _require(obj, "children", where)
        if not isinstance(raw_children, list):
            raise DecodeError(f"children must be an array in {where}")
        children = tuple(
            node_from_dict(child, f"{where}.children[{i}]")
            for i, child in enumerate(raw_children)
        )
    else:
        if "children" in obj:
            raise DecodeError(f"bookmark {where} has children")
        url = _require(obj, "url", where)
        if not isinstance(url, str):
            raise DecodeError(f"url must be a string in {where}")

    show_icon = obj.get("show_icon", False)
    if not isinstance(show_icon, bool):
        raise DecodeError(f"show_icon must be a boolean in {where}")

    return Node(
        id=node_id,
        name=name,
        type=node_type,
        url=url,
        children=children,
        guid=GUID.from_json(obj["guid"]) if "guid" in obj else None,
        date_added=Timestamp.from_json(obj.get("date_added")),
        date_last_used=Timestamp.from_json(obj.get("date_last_used")),
        date_modified=Timestamp.from_json(obj.get("date_modified")),
        meta_info=_string_map(obj.get("meta_info"), f"{where}.meta_info"),
        unsynced_meta_info=_string_map(obj.get("unsynced_meta_info"), f"{where}.unsynced_meta_info"),
        show_icon=show_icon,
        source=Source.from_json(obj["source"]) if "source" in obj else None,
    )


def document_from_dict(obj: Any) -> Document:
    """Build a Document from parsed JSON, rejecting anything unexpected."""
    if not isinstance(obj, dict):
        raise DecodeError("bookmarks file must be a json object")
    _check_fields(obj, _DOCUMENT_FIELDS, "document")

    checksum = _require(obj, "checksum", "document")
    if not isinstance(checksum, str):
        raise DecodeError("checksum must be a string")

    roots = _require(obj, "roots", "document")
    if not isinstance(roots, dict):
        raise DecodeError("roots must be an object")
    _check_fields(roots, frozenset(ROOT_KEYS), "roots")

    decoded = {}
    for key in ROOT_KEYS:
        node = node_from_dict(_require(roots, key, "roots"), f"roots.{key}")
        if not node.is_folder:
            raise DecodeError(f"root {key!r} must be a folder")
        decoded[key] = node

    return Document(
        checksum=checksum,
        bookmark_bar=decoded["bookmark_bar"],
        other=decoded["other"],
        synced=decoded["synced"],
        version=Version.from_json(_require(obj, "version", "document")),
        sync_metadata=decode_opaque_bytes(obj.get("sync_metadata")),
        meta_info=_string_map(obj.get("meta_info"), "meta_info"),
        unsynced_meta_info=_string_map(obj.get("unsynced_meta_info"), "unsynced_meta_info"),
    )


def decode(source: Union[bytes, bytearray, memoryview, str, BinaryIO]) -> Tuple[Document, bool]:
    """Strictly decode a Bookmarks file.

    Args:
        source: Raw file bytes, already-decoded text, or a binary file object

    Returns:
        Tuple of (document, valid). valid is False when the stored checksum
        does not match the tree; that is not an error.

    Raises:
        DecodeError: If the input is not a well-formed bookmarks document
    """
    data = source.read() if hasattr(source, "read") else source

    if isinstance(data, (bytes, bytearray, memoryview)):
        try:
            text = bytes(data).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"invalid utf-8: {e}") from e
    elif isinstance(data, str):
        text = data
    else:
        raise TypeError(f"cannot decode bookmarks from {type(data).__name__}")

    try:
        obj = json.loads(text, parse_constant=_reject_constant)
    except json.JSONDecodeError as e:
        raise DecodeError(f"invalid json: {e}") from e
    except RecursionError:
        raise DecodeError("json nested too deeply") from None

    try:
        document = document_from_dict(obj)
    except RecursionError:
        raise DecodeError("bookmark tree nested too deeply") from None

    return document, document.checksum == compute_checksum(document)


# ============================================================================
# Encoding
# ============================================================================

def _encode_enum(enum_cls, value: Any, what: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise EncodeError(f"unrecognized {what} {value!r}") from None


def node_to_dict(node: Node) -> Dict[str, Any]:
    node_type = _encode_enum(NodeType, node.type, "node type")
    out: Dict[str, Any] = {}

    if node_type == NodeType.FOLDER:
        if node.url is not None:
            raise EncodeError(f"folder {node.id} has a url")
        out["children"] = [node_to_dict(child) for child in node.children or ()]
    else:
        if node.children is not None:
            raise EncodeError(f"bookmark {node.id} has children")
        out["url"] = node.url or ""

    for key in ("date_added", "date_last_used", "date_modified"):
        value = getattr(node, key).to_json()
        if value is not None:
            out[key] = value

    if node.guid is not None:
        out["guid"] = node.guid.to_json()
    out["id"] = str(node.id)
    out["name"] = node.name
    out["type"] = node_type.value
    if node.show_icon:
        out["show_icon"] = True
    if node.source is not None:
        out["source"] = _encode_enum(Source, node.source, "source").value
    if node.meta_info is not None:
        out["meta_info"] = dict(node.meta_info)
    if node.unsynced_meta_info is not None:
        out["unsynced_meta_info"] = dict(node.unsynced_meta_info)
    return out


def document_to_dict(document: Document) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "checksum": document.checksum,
        "roots": {key: node_to_dict(node) for key, node in document.roots},
        "version": int(_encode_enum(Version, document.version, "version")),
    }
    if document.sync_metadata is not None:
        out["sync_metadata"] = encode_opaque_bytes(document.sync_metadata)
    if document.meta_info is not None:
        out["meta_info"] = dict(document.meta_info)
    if document.unsynced_meta_info is not None:
        out["unsynced_meta_info"] = dict(document.unsynced_meta_info)
    return out


def encode(document: Document) -> bytes:
    """Serialize a Document the way the browser writes it.

    Keys are sorted and indented by three spaces, which is also the layout
    the carver looks for.

    Raises:
        EncodeError: If the document holds a value with no wire form
    """
    text = json.dumps(
        document_to_dict(document),
        indent=3,
        sort_keys=True,
        ensure_ascii=False,
    )
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise EncodeError(f"unencodable text: {e}") from e


# ============================================================================
# Files
# ============================================================================

def get_chrome_bookmarks_path(profile: str = "Default") -> Path:
    """Get the path to Chrome bookmarks file.

    Args:
        profile: Chrome profile name (default: "Default")

    Returns:
        Path to the Bookmarks file
    """
    home = Path.home()
    if os.name == "nt":  # Windows
        chrome_path = home / "AppData" / "Local" / "Google" / "Chrome" / "User Data" / profile / "Bookmarks"
    elif sys.platform == "darwin":  # macOS
        chrome_path = home / "Library" / "Application Support" / "Google" / "Chrome" / profile / "Bookmarks"
    elif os.name == "posix":  # Linux
        chrome_path = home / ".config" / "google-chrome" / profile / "Bookmarks"
        # Also check for chromium
        if not chrome_path.exists():
            chrome_path = home / ".config" / "chromium" / profile / "Bookmarks"
    else:
        raise OSError(f"Unsupported operating system: {os.name}")

    return chrome_path


def load_bookmarks_file(bookmarks_path: Optional[Path] = None) -> Tuple[Document, bool]:
    """Load and decode a Bookmarks file.

    Args:
        bookmarks_path: Optional path to bookmarks file. If None, uses default Chrome location.

    Returns:
        Tuple of (document, valid)

    Raises:
        FileNotFoundError: If bookmarks file doesn't exist
        DecodeError: If bookmarks file is malformed
    """
    if bookmarks_path is None:
        bookmarks_path = get_chrome_bookmarks_path()

    if not bookmarks_path.exists():
        raise FileNotFoundError(f"Bookmarks file not found at {bookmarks_path}")

    with open(bookmarks_path, "rb") as f:
        return decode(f)
