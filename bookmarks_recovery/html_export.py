"""Netscape bookmark file export, the format browsers import from HTML.

Follows chrome/browser/bookmarks/bookmark_html_writer.cc: the bookmarks bar
becomes the personal toolbar folder and the contents of the other and
mobile roots are listed directly at the top level.
"""
import html
from io import StringIO
from typing import Callable, List, Optional, TextIO

from bookmarks_recovery.codec import Document, Node


FaviconLookup = Callable[[str], Optional[str]]

_HEADER = (
    "<!DOCTYPE NETSCAPE-Bookmark-file-1>\r\n"
    "<!-- This is an automatically generated file.\r\n"
    "     It will be read and overwritten.\r\n"
    "     DO NOT EDIT! -->\r\n"
    '<META HTTP-EQUIV="Content-Type" CONTENT="text/html; charset=UTF-8">\r\n'
    "<TITLE>Bookmarks</TITLE>\r\n"
    "<H1>Bookmarks</H1>\r\n"
    "<DL><p>\r\n"
)
_FOOTER = "</DL><p>\r\n"
_INDENT = "    "


def _attr(value: str) -> str:
    return value.replace('"', "&quot;")


def _text(value: str) -> str:
    return html.escape(value).replace("&#x27;", "&#39;").replace("&quot;", "&#34;")


def _write_node(out: List[str], node: Node, favicon: Optional[FaviconLookup], depth: int, root_key: str = "") -> None:
    indent = _INDENT * depth

    if node.is_url:
        parts = [indent, "<DT><A"]
        if node.url:
            parts.append(f' HREF="{_attr(node.url)}"')
        if not node.date_added.is_zero():
            parts.append(f' ADD_DATE="{node.date_added.to_unix_seconds()}"')
        if favicon is not None:
            icon = favicon(node.url or "")
            if icon:
                parts.append(f' ICON="{_attr(icon)}"')
        parts.append(f">{_text(node.name)}</A>\r\n")
        out.append("".join(parts))
        return

    if root_key in ("other", "synced"):
        for child in node.children or ():
            _write_node(out, child, favicon, depth)
        return

    parts = [indent, "<DT><H3"]
    if not node.date_added.is_zero():
        parts.append(f' ADD_DATE="{node.date_added.to_unix_seconds()}"')
    if not node.date_modified.is_zero():
        parts.append(f' LAST_MODIFIED="{node.date_modified.to_unix_seconds()}"')
    if root_key == "bookmark_bar":
        parts.append(' PERSONAL_TOOLBAR_FOLDER="true"')
    parts.append(f">{_text(node.name)}</H3>\r\n")
    out.append("".join(parts))
    out.append(f"{indent}<DL><p>\r\n")
    for child in node.children or ():
        _write_node(out, child, favicon, depth + 1)
    out.append(f"{indent}</DL><p>\r\n")


def export_html(document: Document, fp: TextIO, favicon: Optional[FaviconLookup] = None) -> None:
    """Write document to fp as a Netscape bookmark file.

    Args:
        document: Decoded bookmarks
        fp: Text stream to write to; open it with newline="" so the CRLF
            line endings are kept
        favicon: Optional lookup returning a data: URL for a bookmark's url
    """
    out = [_HEADER]
    for key, root in document.roots:
        _write_node(out, root, favicon, 1, key)
    out.append(_FOOTER)
    fp.write("".join(out))


def render_html(document: Document, favicon: Optional[FaviconLookup] = None) -> str:
    buf = StringIO(newline="")
    export_html(document, buf, favicon)
    return buf.getvalue()
