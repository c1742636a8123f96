"""MCP server exposing bookmarks validation, carving and export."""
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from bookmarks_recovery.catalog import get_catalog
from bookmarks_recovery.codec import Document, get_chrome_bookmarks_path, load_bookmarks_file
from bookmarks_recovery.config import get_config
from bookmarks_recovery.errors import DecodeError
from bookmarks_recovery.favicons import document_urls, fetch_favicons
from bookmarks_recovery.html_export import render_html
from bookmarks_recovery.recover import carve_file
from bookmarks_recovery.report import render_tree, summarize


def _text(text: str) -> list[TextContent]:
    return [TextContent(type="text", text=text)]


def _resolve_path(path: Optional[str]) -> Path:
    if path:
        return Path(path).expanduser()
    return get_chrome_bookmarks_path(get_config().chrome_profile)


def _load(path: Optional[str]) -> tuple[Optional[Document], bool, Optional[str]]:
    """Load a bookmarks file, returning (document, valid, error_text)."""
    bookmarks_path = _resolve_path(path)
    try:
        document, valid = load_bookmarks_file(bookmarks_path)
    except DecodeError as e:
        return None, False, f"Error: {bookmarks_path} is not a valid bookmarks file: {e}"
    except OSError as e:
        print(f"Error reading bookmarks {bookmarks_path}: {e}", file=sys.stderr)
        return None, False, f"Error: {e}"
    return document, valid, None


async def inspect_bookmarks_tool(path: Optional[str] = None) -> list[TextContent]:
    """Tool handler for inspect_bookmarks.

    Args:
        path: Bookmarks file (defaults to the configured Chrome profile)

    Returns:
        JSON overview including whether the checksum verifies
    """
    document, valid, error = _load(path)
    if error:
        return _text(error)

    summary = summarize(document)
    guid = document.bookmark_bar.guid
    result = {
        "path": str(_resolve_path(path)),
        "valid": valid,
        "version": int(document.version),
        "checksum": document.checksum,
        "computed_checksum": document.compute_checksum(),
        "folders": summary.folders,
        "bookmarks": summary.urls,
        "modified": str(summary.latest),
        "bookmark_bar_guid": str(guid) if guid is not None else None,
    }
    return _text(json.dumps(result, indent=2))


async def bookmark_tree_tool(path: Optional[str] = None, verbose: bool = False) -> list[TextContent]:
    """Tool handler for bookmark_tree."""
    document, _, error = _load(path)
    if error:
        return _text(error)
    return _text(render_tree(document, verbose=verbose, color=False))


async def carve_image_tool(
    path: str,
    start_offset: int = 0,
    length: Optional[int] = None,
    output_dir: Optional[str] = None,
) -> list[TextContent]:
    """Tool handler for carve_image.

    Scans in a worker thread, then records every match in the catalog.
    """
    if length is not None and length < 0:
        return _text(f"Error: length must not be negative, got {length}")
    # 0 means "to the end", as in the command line input slices
    length = length or None

    try:
        matches = await asyncio.to_thread(
            carve_file,
            Path(path).expanduser(),
            start_offset,
            length,
            Path(output_dir).expanduser() if output_dir else None,
        )
    except (OSError, ValueError) as e:
        print(f"Error carving {path}: {e}", file=sys.stderr)
        return _text(f"Error: failed to carve {path}: {e}")

    if not matches:
        return _text(f"No bookmarks documents found in {path}")

    catalog = await get_catalog()
    results = []
    for info in matches:
        entry = info.to_dict()
        entry["catalog_id"] = await catalog.record_match(info)
        results.append(entry)

    return _text(json.dumps(results, indent=2))


async def export_bookmarks_html_tool(
    output: str,
    path: Optional[str] = None,
    fetch_icons: bool = False,
) -> list[TextContent]:
    """Tool handler for export_bookmarks_html."""
    document, valid, error = _load(path)
    if error:
        return _text(error)
    if not valid:
        return _text("Error: bookmarks checksum does not match; refusing to export")

    favicon = None
    if fetch_icons:
        icons = await fetch_favicons(document_urls(document))
        favicon = icons.get

    output_path = Path(output).expanduser()
    with open(output_path, "w", encoding="utf-8", newline="") as f:
        f.write(render_html(document, favicon))

    return _text(f"Exported bookmarks to {output_path}")


async def list_recovered_tool(limit: int = 20) -> list[TextContent]:
    """Tool handler for list_recovered."""
    catalog = await get_catalog()
    matches = await catalog.get_matches(limit=limit)
    if not matches:
        return _text("No recovered documents recorded yet.")
    return _text(json.dumps(matches, indent=2))


def create_server() -> Server:
    """Create and configure the MCP server.

    Returns:
        Configured Server instance
    """
    server = Server("bookmarks-recovery-mcp")

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """List available tools."""
        return [
            Tool(
                name="inspect_bookmarks",
                description="Decode a Chrome Bookmarks file and report whether its checksum verifies, with folder/bookmark counts and the most recent date.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "path": {
                            "type": "string",
                            "description": "Bookmarks file path (defaults to the configured Chrome profile)"
                        }
                    },
                }
            ),
            Tool(
                name="bookmark_tree",
                description="Show the folder tree of a Chrome Bookmarks file.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "path": {
                            "type": "string",
                            "description": "Bookmarks file path (defaults to the configured Chrome profile)"
                        },
                        "verbose": {
                            "type": "boolean",
                            "description": "Include dates"
                        }
                    },
                }
            ),
            Tool(
                name="carve_image",
                description="Scan a disk image, memory dump or any file for embedded Chrome Bookmarks files. Only copies whose checksum verifies are reported; matches are recorded in the recovery catalog.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "path": {
                            "type": "string",
                            "description": "File or device to scan"
                        },
                        "start_offset": {
                            "type": "integer",
                            "description": "Byte offset to start scanning at"
                        },
                        "length": {
                            "type": "integer",
                            "description": "Number of bytes to scan (default: to the end)"
                        },
                        "output_dir": {
                            "type": "string",
                            "description": "Directory to write recovered files to"
                        }
                    },
                    "required": ["path"]
                }
            ),
            Tool(
                name="export_bookmarks_html",
                description="Export a Chrome Bookmarks file as an HTML bookmark file that any browser can import.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "output": {
                            "type": "string",
                            "description": "Path of the HTML file to write"
                        },
                        "path": {
                            "type": "string",
                            "description": "Bookmarks file path (defaults to the configured Chrome profile)"
                        },
                        "fetch_icons": {
                            "type": "boolean",
                            "description": "Fetch site favicons and embed them"
                        }
                    },
                    "required": ["output"]
                }
            ),
            Tool(
                name="list_recovered",
                description="List bookmarks documents recorded in the recovery catalog by earlier carving runs.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "limit": {
                            "type": "integer",
                            "description": "Maximum number of records (default: 20)"
                        }
                    },
                }
            ),
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: Any) -> list[TextContent]:
        """Handle tool calls."""
        arguments = arguments or {}
        if name == "inspect_bookmarks":
            return await inspect_bookmarks_tool(arguments.get("path"))
        elif name == "bookmark_tree":
            return await bookmark_tree_tool(arguments.get("path"), bool(arguments.get("verbose", False)))
        elif name == "carve_image":
            path = arguments.get("path", "")
            if not path:
                return _text("Error: 'path' parameter is required")
            return await carve_image_tool(
                path,
                int(arguments.get("start_offset", 0)),
                arguments.get("length"),
                arguments.get("output_dir"),
            )
        elif name == "export_bookmarks_html":
            output = arguments.get("output", "")
            if not output:
                return _text("Error: 'output' parameter is required")
            return await export_bookmarks_html_tool(
                output,
                arguments.get("path"),
                bool(arguments.get("fetch_icons", False)),
            )
        elif name == "list_recovered":
            return await list_recovered_tool(int(arguments.get("limit", 20)))
        else:
            raise ValueError(f"Unknown tool: {name}")

    return server


async def main():
    """Main entry point for the MCP server."""
    server = create_server()

    async with stdio_server() as (read_stream, write_stream):
        initialization_options = server.create_initialization_options()
        await server.run(read_stream, write_stream, initialization_options)
