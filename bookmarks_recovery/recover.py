"""Carve a file on disk and save what is found."""
import os
from pathlib import Path
from typing import Callable, List, Optional, Union

from bookmarks_recovery.carver import carve, open_source
from bookmarks_recovery.codec import Document
from bookmarks_recovery.config import CarveConfig, get_config
from bookmarks_recovery.report import MatchInfo, validate_output_format


def carve_file(
    path: Union[str, Path],
    start: int = 0,
    length: Optional[int] = None,
    output_dir: Optional[Union[str, Path]] = None,
    output_format: Optional[str] = None,
    carve_config: Optional[CarveConfig] = None,
    on_match: Optional[Callable[[MatchInfo], None]] = None,
) -> List[MatchInfo]:
    """Carve bookmarks documents out of a file.

    Args:
        path: File or device to scan
        start: Offset where scanning starts
        length: Number of bytes to scan, or None for the rest of the file
        output_dir: If set, each recovered document is written there
        output_format: File name template for written documents (defaults to config)
        carve_config: Scanner limits (defaults to config)
        on_match: Called with each match report after it is written; may
            raise Stop to end the scan

    Returns:
        Reports for every match, in offset order

    Raises:
        OSError: If the input cannot be read or an output cannot be written
        ValueError: If output_format is not a usable file name template
    """
    config = get_config()
    if carve_config is None:
        carve_config = config.carve
    if output_format is None:
        output_format = config.output_format
    validate_output_format(output_format)

    if output_dir is not None:
        os.makedirs(output_dir, exist_ok=True)

    path = str(path)
    matches: List[MatchInfo] = []

    def sink(offset: int, data: bytes, document: Document) -> None:
        info = MatchInfo.from_match(path, start, offset, data, document)
        if output_dir is not None:
            info.output = info.render_output_name(output_format)
            with open(os.path.join(output_dir, info.output), "wb") as f:
                f.write(data)
        matches.append(info)
        if on_match is not None:
            on_match(info)

    with open_source(path, start, length) as source:
        carve(
            source,
            sink,
            buffer_size=carve_config.buffer_size,
            window_size=carve_config.window_size,
            lookahead_size=carve_config.lookahead_size,
        )

    return matches
