"""Command line entry point: inspect, carve and serve."""
import argparse
import asyncio
import json
import logging
import re
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from bookmarks_recovery.catalog import RecoveryCatalog
from bookmarks_recovery.codec import Document, decode, get_chrome_bookmarks_path
from bookmarks_recovery.config import get_config
from bookmarks_recovery.errors import DecodeError
from bookmarks_recovery.favicons import document_urls, fetch_favicons
from bookmarks_recovery.html_export import render_html
from bookmarks_recovery.recover import carve_file
from bookmarks_recovery.report import (
    OUTPUT_FIELDS,
    MatchInfo,
    describe,
    render_tree,
    validate_output_format,
)


# path[:start_offset[:end_offset|+length]]
_INPUT_RE = re.compile(r"^(.+?)(?::([0-9]*)(?::([0-9]*)|\+([0-9]*))?)?$")


def parse_input_spec(spec: str) -> Tuple[str, int, Optional[int]]:
    """Split an input argument into (path, start, length).

    length is None when the rest of the file should be scanned.

    Raises:
        ValueError: If an end offset lies before the start offset
    """
    m = _INPUT_RE.match(spec)
    if m is None:
        return spec, 0, None
    path, start, end, plus = m.groups()
    offset = int(start) if start else 0
    length = 0
    if end:
        length = int(end) - offset
    if plus:
        length = int(plus)
    if length < 0:
        raise ValueError(
            f"invalid slice for {path!r}: length <= 0 (did you mean to use '+' instead of ':'?)"
        )
    return path, offset, length or None


def _output_fields_help() -> str:
    lines = ["output fields (--output-format, --json):"]
    for name, description in OUTPUT_FIELDS.items():
        lines.append(f"  {name:<24}   {description}")
    lines.append(f"  {'output':<24}   output file basename (not for --output-format)")
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bookmarks-recovery",
        description="Validate, export and carve Chrome bookmarks files.",
    )
    parser.add_argument("--debug", action="store_true", help="log scanner details to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    inspect = sub.add_parser("inspect", help="parse, validate and export a bookmarks file")
    inspect.add_argument("file", nargs="?", help="bookmarks file, - for stdin (default: Chrome profile)")
    inspect.add_argument("-E", "--export", action="append", default=[], metavar="PATH",
                         help="export bookmarks HTML to the specified file (- for stdout)")
    inspect.add_argument("-t", "--tree", action="store_true", help="write the bookmarks tree to stderr")
    inspect.add_argument("-v", "--verbose", action="store_true", help="show dates in the tree")
    inspect.add_argument("-q", "--quiet", action="store_true",
                         help="don't write info about the bookmarks file to stderr")
    inspect.add_argument("--favicons", action="store_true", help="fetch favicons for the HTML export")
    inspect.add_argument("--allow-invalid", action="store_true",
                         help="continue even if the checksum does not match")

    carve = sub.add_parser(
        "carve",
        help="recover bookmarks files from a disk image or other file",
        epilog=_output_fields_help(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    carve.add_argument("inputs", nargs="+", metavar="file[:[start_offset][:[end_offset]|+length]]")
    carve.add_argument("-o", "--output", metavar="DIR", help="write the recovered files to the specified directory")
    carve.add_argument("-O", "--output-format", default=None, help="output file name format")
    carve.add_argument("-q", "--quiet", action="store_true", help="don't show information about the recovered files")
    carve.add_argument("-j", "--json", action="store_true", help="show information about the recovered files as JSON")
    carve.add_argument("--catalog", action="store_true", help="record recovered files in the recovery catalog")

    sub.add_parser("serve", help="run the MCP server on stdio")
    return parser


def _read_document(file: Optional[str]) -> Tuple[Document, bool]:
    if file == "-":
        return decode(sys.stdin.buffer)
    path = Path(file) if file else get_chrome_bookmarks_path(get_config().chrome_profile)
    with open(path, "rb") as f:
        return decode(f)


def _export(target: str, document: Document, favicon) -> None:
    text = render_html(document, favicon)
    if target == "-":
        sys.stdout.buffer.write(text.encode("utf-8"))
        sys.stdout.buffer.flush()
        return
    with open(target, "w", encoding="utf-8", newline="") as f:
        f.write(text)


def run_inspect(args: argparse.Namespace) -> int:
    try:
        document, valid = _read_document(args.file)
    except (OSError, DecodeError) as e:
        print(f"fatal: parse bookmarks: {e}", file=sys.stderr)
        return 1
    if not valid and not args.allow_invalid:
        print("fatal: parse bookmarks: invalid checksum", file=sys.stderr)
        return 1

    if not args.quiet:
        sys.stderr.write(describe(document))
        if not valid:
            sys.stderr.write(f"Computed checksum: {document.compute_checksum()} (mismatch)\n")

    if args.tree:
        sys.stderr.write("\n" + render_tree(document, verbose=args.verbose, color=sys.stderr.isatty()) + "\n")

    favicon = None
    if args.export and args.favicons:
        icons = asyncio.run(fetch_favicons(document_urls(document)))
        favicon = icons.get

    failed = False
    for target in args.export:
        try:
            _export(target, document, favicon)
        except OSError as e:
            print(f"error: export to {target!r}: {e}", file=sys.stderr)
            failed = True
    return 1 if failed else 0


async def _record(matches: List[MatchInfo]) -> None:
    catalog = RecoveryCatalog(get_config().catalog_db_path)
    await catalog.initialize()
    try:
        for info in matches:
            await catalog.record_match(info)
    finally:
        await catalog.close()


def run_carve(args: argparse.Namespace) -> int:
    output_format = args.output_format or get_config().output_format
    try:
        validate_output_format(output_format)
    except ValueError as e:
        print(f"fatal: {e}", file=sys.stderr)
        return 2

    inputs = []
    for spec in args.inputs:
        try:
            inputs.append(parse_input_spec(spec))
        except ValueError as e:
            print(f"fatal: {e}", file=sys.stderr)
            return 2

    def show(info: MatchInfo) -> None:
        if args.quiet:
            return
        if args.json:
            print(json.dumps(info.to_dict(), ensure_ascii=False), flush=True)
        else:
            print(info.format_line(), flush=True)

    failed = False
    for path, start, length in inputs:
        try:
            matches = carve_file(
                path,
                start,
                length,
                output_dir=args.output,
                output_format=output_format,
                on_match=show,
            )
        except OSError as e:
            print(f"error: failed to carve {path!r}: {e}", file=sys.stderr)
            failed = True
            continue
        if args.catalog and matches:
            asyncio.run(_record(matches))
    return 1 if failed else 0


def run_serve(args: argparse.Namespace) -> int:
    from bookmarks_recovery.server import main as serve

    asyncio.run(serve())
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.command == "inspect":
        return run_inspect(args)
    if args.command == "carve":
        return run_carve(args)
    return run_serve(args)


if __name__ == "__main__":
    sys.exit(main())
