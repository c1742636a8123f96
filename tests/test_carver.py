"""Tests for carver module."""
import json
import logging
import random
from dataclasses import replace

import pytest
from unittest.mock import patch

from bookmarks_recovery.carver import (
    PREFIX,
    BytesSource,
    FileSource,
    carve,
    iter_carve,
    open_source,
)
from bookmarks_recovery.codec import decode, encode
from bookmarks_recovery.errors import Stop


def _noise(size, seed=1):
    return random.Random(seed).randbytes(size)


def _collect(source, **kwargs):
    found = []
    count = carve(source, lambda offset, data, doc: found.append((offset, data, doc)), **kwargs)
    assert count == len(found)
    return found


@pytest.fixture
def doc_bytes(sample_bookmarks_data):
    """Sample bookmarks laid out the way the browser writes them."""
    return json.dumps(sample_bookmarks_data, indent=3, sort_keys=True).encode("utf-8")


@pytest.fixture
def rich_bytes(rich_bookmarks_data):
    return json.dumps(rich_bookmarks_data, indent=3, sort_keys=True, ensure_ascii=False).encode("utf-8")


def _renamed(doc_bytes, name):
    """Re-encode doc_bytes with the first bookmark renamed and a fresh checksum."""
    document, _ = decode(doc_bytes)
    child = replace(document.bookmark_bar.children[0], name=name)
    bar = replace(document.bookmark_bar, children=(child,))
    return encode(replace(document, bookmark_bar=bar).with_checksum())


class TestCarve:
    def test_prefix_opening_brace_not_repeated(self):
        assert PREFIX[:1] == b"{"
        assert b"{" not in PREFIX[1:]

    def test_whole_file(self, doc_bytes):
        found = _collect(BytesSource(doc_bytes))
        assert len(found) == 1
        offset, data, document = found[0]
        assert offset == 0
        assert data == doc_bytes
        assert document.verify()

    def test_embedded_in_noise(self, doc_bytes, rich_bytes):
        head = _noise(1024 * 1024, seed=7)
        gap = _noise(4096, seed=8)
        image = head + doc_bytes + gap + rich_bytes + _noise(1000, seed=9)

        found = _collect(BytesSource(image))
        assert [offset for offset, _, _ in found] == [len(head), len(head) + len(doc_bytes) + len(gap)]
        assert found[0][1] == doc_bytes
        assert found[1][1] == rich_bytes

    def test_noise_only(self):
        assert carve(BytesSource(_noise(1024 * 1024, seed=3)), None) == 0

    def test_empty_source(self):
        assert carve(BytesSource(b""), None) == 0

    def test_back_to_back(self, doc_bytes):
        found = _collect(BytesSource(doc_bytes + doc_bytes))
        assert [offset for offset, _, _ in found] == [0, len(doc_bytes)]

    def test_brace_before_document(self, doc_bytes):
        found = _collect(BytesSource(b"{" + doc_bytes))
        assert [offset for offset, _, _ in found] == [1]

    def test_partial_prefix_before_document(self, doc_bytes):
        found = _collect(BytesSource(PREFIX[:9] + doc_bytes))
        assert [offset for offset, _, _ in found] == [9]

    def test_corrupted_checksum_rejected(self, doc_bytes, rich_bytes):
        i = doc_bytes.index(b'"checksum": "') + len(b'"checksum": "')
        corrupted = doc_bytes[:i] + (b"0" if doc_bytes[i:i + 1] != b"0" else b"1") + doc_bytes[i + 1:]
        image = corrupted + _noise(100) + rich_bytes

        found = _collect(BytesSource(image))
        assert [offset for offset, _, _ in found] == [len(corrupted) + 100]

    def test_corrupted_name_rejected(self, doc_bytes):
        corrupted = doc_bytes.replace(b'"Example"', b'"Exampla"')
        assert carve(BytesSource(corrupted), None) == 0

    def test_truncated_document(self, doc_bytes):
        assert carve(BytesSource(doc_bytes[:-40]), None) == 0

    def test_truncated_then_valid(self, doc_bytes, rich_bytes):
        truncated = doc_bytes[:len(doc_bytes) // 2]
        found = _collect(BytesSource(truncated + rich_bytes))
        assert [offset for offset, _, _ in found] == [len(truncated)]

    def test_other_layouts_not_found(self, sample_bookmarks_data):
        compact = json.dumps(sample_bookmarks_data).encode()
        two_spaces = json.dumps(sample_bookmarks_data, indent=2).encode()
        assert carve(BytesSource(compact + two_spaces), None) == 0

    def test_structural_characters_in_names(self, doc_bytes):
        data = _renamed(doc_bytes, 'a "quoted" {brace} [bracket] \\ back\\slash }]')
        found = _collect(BytesSource(_noise(333) + data + b"}}]]"))
        assert len(found) == 1
        assert found[0][1] == data
        assert found[0][2].bookmark_bar.children[0].name.startswith('a "quoted"')

    def test_non_ascii_names(self, rich_bytes):
        found = _collect(BytesSource(rich_bytes))
        assert found[0][2].bookmark_bar.children[0].name == "Café 😀"

    @pytest.mark.parametrize("buffer_size", [1, 2, 7, 17, 64])
    def test_tiny_buffer(self, doc_bytes, rich_bytes, buffer_size):
        image = _noise(500) + b"{" + doc_bytes + rich_bytes
        found = _collect(BytesSource(image), buffer_size=buffer_size)
        assert [offset for offset, _, _ in found] == [501, 501 + len(doc_bytes)]

    def test_window_too_small(self, doc_bytes):
        assert carve(BytesSource(doc_bytes), None, window_size=100) == 0

    def test_window_just_large_enough(self, doc_bytes):
        window = len(doc_bytes) - len(PREFIX)
        assert carve(BytesSource(doc_bytes), None, window_size=window) == 1
        assert carve(BytesSource(doc_bytes), None, window_size=window - 1) == 0

    def test_marker_outside_lookahead(self, sample_bookmarks_data):
        sample_bookmarks_data["checksum"] = "f" * 2000
        data = json.dumps(sample_bookmarks_data, indent=3, sort_keys=True).encode()
        with patch("bookmarks_recovery.carver.decode") as mock_decode:
            assert carve(BytesSource(data), None) == 0
        mock_decode.assert_not_called()

    def test_prefix_at_eof(self):
        assert carve(BytesSource(_noise(10) + PREFIX), None) == 0

    def test_stop(self, doc_bytes):
        seen = []

        def sink(offset, data, document):
            seen.append(offset)
            raise Stop()

        count = carve(BytesSource(doc_bytes + doc_bytes), sink)
        assert seen == [0]
        assert count == 1

    def test_sink_error_propagates(self, doc_bytes):
        def sink(offset, data, document):
            raise RuntimeError("disk full")

        with pytest.raises(RuntimeError, match="disk full"):
            carve(BytesSource(doc_bytes), sink)

    def test_read_error_propagates(self, doc_bytes):
        class FailingSource(BytesSource):
            def read_at(self, offset, size):
                if offset >= 4096:
                    raise OSError("read error")
                return super().read_at(offset, size)

        with pytest.raises(OSError, match="read error"):
            carve(FailingSource(_noise(8192)), None, buffer_size=1024)

    @pytest.mark.parametrize("kwargs", [
        {"lookahead_size": 10},
        {"buffer_size": 0},
        {"window_size": 0},
    ])
    def test_invalid_sizes(self, doc_bytes, kwargs):
        with pytest.raises(ValueError):
            carve(BytesSource(doc_bytes), None, **kwargs)

    def test_rejections_logged(self, doc_bytes, caplog):
        caplog.set_level(logging.DEBUG, logger="bookmarks_recovery.carver")
        corrupted = doc_bytes.replace(b'"Example"', b'"Exampla"')
        carve(BytesSource(corrupted), None)
        assert "checksum mismatch" in caplog.text


class TestIterCarve:
    def test_match_fields(self, doc_bytes):
        image = _noise(50) + doc_bytes
        matches = list(iter_carve(BytesSource(image)))
        assert len(matches) == 1
        match = matches[0]
        assert match.offset == 50
        assert match.length == len(doc_bytes)
        assert match.end == len(image)
        assert match.document.checksum == "5f0790067509a830e0af562da72b1f19"

    def test_lazy(self, doc_bytes):
        it = iter_carve(BytesSource(doc_bytes * 3))
        assert next(it).offset == 0
        assert next(it).offset == len(doc_bytes)


class TestFileSource:
    def test_whole_file(self, tmp_path, doc_bytes):
        path = tmp_path / "disk.img"
        path.write_bytes(_noise(70000) + doc_bytes + _noise(70000, seed=2))
        with open_source(path) as source:
            found = _collect(source)
        assert [offset for offset, _, _ in found] == [70000]

    def test_section(self, tmp_path, doc_bytes):
        path = tmp_path / "disk.img"
        path.write_bytes(_noise(5000) + doc_bytes + _noise(5000, seed=2))
        with open_source(path, start=4000, length=len(doc_bytes) + 2000) as source:
            found = _collect(source)
        assert [offset for offset, _, _ in found] == [1000]

    def test_section_cuts_document(self, tmp_path, doc_bytes):
        path = tmp_path / "disk.img"
        path.write_bytes(_noise(5000) + doc_bytes + _noise(5000, seed=2))
        with open_source(path, start=4000, length=1000 + len(doc_bytes) - 1) as source:
            assert carve(source, None) == 0

    def test_read_at_limits(self, tmp_path):
        path = tmp_path / "data.bin"
        path.write_bytes(bytes(range(100)))
        with open(path, "rb") as fp:
            source = FileSource(fp, start=10, length=20)
            assert source.read_at(0, 5) == bytes(range(10, 15))
            assert source.read_at(15, 100) == bytes(range(25, 30))
            assert source.read_at(20, 1) == b""

    def test_negative_start(self, tmp_path):
        path = tmp_path / "data.bin"
        path.write_bytes(b"")
        with open(path, "rb") as fp:
            with pytest.raises(ValueError):
                FileSource(fp, start=-1)
