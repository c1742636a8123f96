"""Shared fixtures for tests."""
import copy
import json
import pytest

from bookmarks_recovery.codec import decode


# Checksums below were produced independently of the codec, by feeding the
# id / UTF-16LE name / type / url byte stream through md5sum.
SAMPLE_CHECKSUM = "5f0790067509a830e0af562da72b1f19"
RICH_CHECKSUM = "084c9b70b04fbee7eef5227e76e26d6b"
EMPTY_CHECKSUM = "1e54fbb25d92a354f7aeaf576726429e"

BAR_GUID = "0bc5d13f-2cba-5d74-951f-3f233fe6c908"


SAMPLE_BOOKMARKS = {
    "checksum": SAMPLE_CHECKSUM,
    "roots": {
        "bookmark_bar": {
            "children": [
                {
                    "date_added": "13305000000000000",
                    "date_last_used": "13310000000000000",
                    "guid": "5a3e8a1c-6b0e-4c7e-9d8b-0a1f2e3d4c5b",
                    "id": "4",
                    "name": "Example",
                    "type": "url",
                    "url": "https://example.com/"
                }
            ],
            "date_added": "13300000000000000",
            "date_modified": "13305000000000000",
            "guid": BAR_GUID,
            "id": "1",
            "name": "Bookmarks bar",
            "type": "folder"
        },
        "other": {
            "children": [],
            "date_added": "13300000000000000",
            "guid": "82b081ec-3dd3-529c-8475-ab6c344590dd",
            "id": "2",
            "name": "Other bookmarks",
            "type": "folder"
        },
        "synced": {
            "children": [],
            "date_added": "13300000000000000",
            "guid": "4cf2e351-0e85-532b-bb37-df045d8f8d0f",
            "id": "3",
            "name": "Mobile bookmarks",
            "type": "folder"
        }
    },
    "version": 1
}


RICH_BOOKMARKS = {
    "checksum": RICH_CHECKSUM,
    "roots": {
        "bookmark_bar": {
            "children": [
                {
                    "date_added": "13305000000000000",
                    "id": "4",
                    "meta_info": {"power_bookmark_meta": ""},
                    "name": "Café 😀",
                    "type": "url",
                    "url": "https://example.com/é"
                },
                {
                    "children": [
                        {
                            "date_added": "13310000000000000",
                            "id": "6",
                            "name": "Docs",
                            "show_icon": True,
                            "source": "user_add",
                            "type": "url",
                            "url": "https://docs.python.org/3/"
                        }
                    ],
                    "date_added": "13300000000000000",
                    "date_modified": "13310000000000000",
                    "id": "5",
                    "name": "Work",
                    "type": "folder"
                }
            ],
            "date_added": "13300000000000000",
            "guid": BAR_GUID,
            "id": "1",
            "name": "Bookmarks bar",
            "type": "folder"
        },
        "other": {
            "children": [],
            "id": "2",
            "name": "Other bookmarks",
            "type": "folder"
        },
        "synced": {
            "children": [],
            "id": "3",
            "name": "Mobile bookmarks",
            "type": "folder"
        }
    },
    "sync_metadata": "CgQIARAB",
    "version": 1
}


@pytest.fixture
def sample_bookmarks_data():
    """Return a fresh copy of the sample bookmarks JSON object."""
    return copy.deepcopy(SAMPLE_BOOKMARKS)


@pytest.fixture
def rich_bookmarks_data():
    """Return a fresh copy of the nested, non-ASCII bookmarks JSON object."""
    return copy.deepcopy(RICH_BOOKMARKS)


@pytest.fixture
def sample_bookmarks_path(tmp_path):
    """Create a temporary bookmarks file with sample data."""
    bookmarks_file = tmp_path / "Bookmarks"
    bookmarks_file.write_text(json.dumps(SAMPLE_BOOKMARKS, indent=3), encoding="utf-8")
    return bookmarks_file


@pytest.fixture
def sample_document():
    """Return the sample bookmarks as a decoded Document."""
    document, valid = decode(json.dumps(SAMPLE_BOOKMARKS))
    assert valid
    return document


@pytest.fixture
def rich_document():
    """Return the nested, non-ASCII bookmarks as a decoded Document."""
    document, valid = decode(json.dumps(RICH_BOOKMARKS, ensure_ascii=False).encode("utf-8"))
    assert valid
    return document


@pytest.fixture
def catalog_db_path(tmp_path):
    """Return path for a temporary catalog database."""
    return tmp_path / "test_catalog.db"
