"""Summaries and human/machine-readable reports for decoded bookmarks."""
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from bookmarks_recovery.codec import Document, iter_nodes
from bookmarks_recovery.values import Timestamp


# Characters not allowed in output file names, plus leading/trailing spaces
_UNSAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9._ {}-]+|^ | $")
_PLACEHOLDER_RE = re.compile(r"\{[a-z.]+\}")

OUTPUT_FIELDS = {
    "input.path": "input file path",
    "input.basename": "input file basename",
    "match.offset": "match offset",
    "match.length": "match length",
    "bookmarks.barguid": "bookmarks bar folder guid",
    "bookmarks.checksum": "bookmarks checksum",
    "bookmarks.date.unix": "most recent date (unix timestamp)",
    "bookmarks.date.unixmicro": "most recent date (unix microsecond timestamp)",
    "bookmarks.date.yyyymmdd": "most recent date (yyyymmdd)",
    "bookmarks.count.folders": "number of folders",
    "bookmarks.count.urls": "number of bookmarks",
}


@dataclass(frozen=True)
class DocumentSummary:
    folders: int
    urls: int
    latest: Timestamp


def summarize(document: Document) -> DocumentSummary:
    """Count folders and bookmarks and find the most recent timestamp.

    The roots count as folders. The most recent timestamp is the largest of
    every node's added, last-used and modified dates.
    """
    folders = 0
    urls = 0
    latest = Timestamp()
    for node, _ in iter_nodes(document):
        if node.is_folder:
            folders += 1
        elif node.is_url:
            urls += 1
        latest = max(latest, node.date_added, node.date_last_used, node.date_modified)
    return DocumentSummary(folders=folders, urls=urls, latest=latest)


def sanitize_name(value: str) -> str:
    return _UNSAFE_NAME_RE.sub("_", value)


def validate_output_format(fmt: str) -> None:
    """Raise ValueError if fmt cannot be used as an output file name template."""
    if not fmt:
        raise ValueError("output format is empty")
    if _UNSAFE_NAME_RE.search(fmt):
        raise ValueError("output format contains invalid characters")


@dataclass
class MatchInfo:
    """Everything reported about one carved document."""
    input_path: str
    offset: int
    length: int
    bar_guid: str
    checksum: str
    latest: Timestamp
    folders: int
    urls: int
    output: Optional[str] = None

    @classmethod
    def from_match(
        cls,
        input_path: str,
        base_offset: int,
        offset: int,
        data: bytes,
        document: Document,
    ) -> "MatchInfo":
        """Build the report for a match.

        Args:
            input_path: Path of the scanned file
            base_offset: Where the scanned section starts in the file
            offset: Match offset within the section
            data: Raw document bytes
            document: Decoded document
        """
        summary = summarize(document)
        guid = document.bookmark_bar.guid
        return cls(
            input_path=input_path,
            offset=base_offset + offset,
            length=len(data),
            bar_guid=str(guid) if guid is not None else "",
            checksum=document.checksum,
            latest=summary.latest,
            folders=summary.folders,
            urls=summary.urls,
        )

    @property
    def input_basename(self) -> str:
        return os.path.basename(self.input_path)

    @property
    def yyyymmdd(self) -> str:
        return self.latest.format("%Y%m%d")

    def fields(self) -> Dict[str, str]:
        return {
            "input.path": sanitize_name(self.input_path),
            "input.basename": sanitize_name(self.input_basename),
            "match.offset": str(self.offset),
            "match.length": str(self.length),
            "bookmarks.barguid": self.bar_guid,
            "bookmarks.checksum": self.checksum,
            "bookmarks.date.unix": str(self.latest.to_unix_seconds()),
            "bookmarks.date.unixmicro": str(self.latest.to_unix_microseconds()),
            "bookmarks.date.yyyymmdd": self.yyyymmdd,
            "bookmarks.count.folders": str(self.folders),
            "bookmarks.count.urls": str(self.urls),
        }

    def render_output_name(self, fmt: str) -> str:
        """Fill the {placeholders} of fmt in a single pass."""
        values = self.fields()
        return _PLACEHOLDER_RE.sub(lambda m: values.get(m.group(0)[1:-1], m.group(0)), fmt)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "input": {
                "path": self.input_path,
                "basename": self.input_basename,
            },
            "match": {
                "offset": self.offset,
                "length": self.length,
            },
            "bookmarks": {
                "barguid": self.bar_guid,
                "checksum": self.checksum,
                "date": {
                    "unix": self.latest.to_unix_seconds(),
                    "unixmicro": self.latest.to_unix_microseconds(),
                    "yyyymmdd": self.yyyymmdd,
                },
                "count": {
                    "folders": self.folders,
                    "urls": self.urls,
                },
            },
        }
        if self.output:
            result["output"] = self.output
        return result

    def format_line(self) -> str:
        line = (
            f"{self.input_path}:{self.offset}+{self.length} "
            f"[{self.bar_guid} @ {self.latest.format('%d %b %y %H:%M %Z')}] "
            f"{self.checksum} ({self.folders},{self.urls})"
        )
        if self.output:
            line += f" -> {self.output}"
        return line


def describe(document: Document) -> str:
    """Multi-line overview of a document."""
    summary = summarize(document)
    guid = document.bookmark_bar.guid
    lines = [
        f"Version: {int(document.version)}",
        f"Folders: {summary.folders}",
        f"Bookmarks: {summary.urls}",
        f"Modified: {summary.latest.format('%a %b %d %H:%M:%S %Y')}",
        f"Checksum: {document.checksum}",
        f"Bookmarks bar GUID: {str(guid) if guid is not None else ''}",
    ]
    return "\n".join(lines) + "\n"


def render_tree(document: Document, verbose: bool = False, color: bool = True) -> str:
    """Render the bookmark tree as indented text.

    Folders are shown as '+ name', bookmarks as '- name' with the url on the
    following line. verbose adds dates where they are set.
    """
    bold, dim, reset = ("\x1b[1m", "\x1b[90m", "\x1b[0m") if color else ("", "", "")
    lines: List[str] = []
    for node, ancestors in iter_nodes(document):
        indent = "  " * len(ancestors)
        dated = verbose and not node.date_added.is_zero()
        if node.is_folder:
            if dated:
                lines.append(
                    f"{indent}{bold}+ {node.name} {dim}[{node.date_added.format('%b %d %Y')}"
                    f" -> {node.date_modified.format('%b %d %Y')}]{reset}"
                )
            else:
                lines.append(f"{indent}{bold}+ {node.name}{reset}")
        else:
            if dated:
                lines.append(
                    f"{indent}{bold}-{reset} {node.name} {dim}[{node.date_added.format('%b %d %Y')}]{reset}"
                )
            else:
                lines.append(f"{indent}{bold}-{reset} {node.name}")
            lines.append(f"{indent}{dim}  {node.url}{reset}")
    return "\n".join(lines) + "\n"
