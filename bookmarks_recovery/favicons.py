"""Favicon lookup for HTML export.

Icons are fetched from each site's /favicon.ico and embedded as data: URLs,
which is what the ICON attribute of a bookmark export holds. One request is
made per site no matter how many bookmarks point at it.
"""
import asyncio
import base64
import sys
from typing import Dict, Iterable, List, Optional
from urllib.parse import urlsplit

import httpx

from bookmarks_recovery.codec import Document, iter_nodes
from bookmarks_recovery.config import FaviconConfig, get_config


USER_AGENT = "BookmarksRecovery/1.0 (favicon lookup)"


def favicon_url(page_url: str) -> Optional[str]:
    """Return the /favicon.ico URL for a page, or None for non-web URLs."""
    parts = urlsplit(page_url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}/favicon.ico"


def document_urls(document: Document) -> List[str]:
    """All bookmark URLs in walk order."""
    return [node.url for node, _ in iter_nodes(document) if node.is_url and node.url]


async def fetch_favicon(client: httpx.AsyncClient, icon_url: str, max_bytes: int) -> Optional[str]:
    """Fetch one icon and return it as a data: URL.

    Args:
        client: HTTP client to use
        icon_url: Icon location
        max_bytes: Larger icons are ignored

    Returns:
        data: URL or None if the icon is missing, too large or not an image
    """
    try:
        response = await client.get(icon_url)
        response.raise_for_status()
    except httpx.HTTPError as e:
        print(f"HTTP error fetching {icon_url}: {e}", file=sys.stderr)
        return None

    content = response.content
    if not content or len(content) > max_bytes:
        return None

    content_type = response.headers.get("content-type", "image/x-icon").split(";")[0].strip()
    if not content_type.startswith("image/"):
        return None

    return f"data:{content_type};base64,{base64.b64encode(content).decode('ascii')}"


async def fetch_favicons(
    urls: Iterable[str],
    config: Optional[FaviconConfig] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Optional[str]]:
    """Fetch favicons for a set of bookmark URLs.

    Args:
        urls: Bookmark URLs
        config: Fetch limits (defaults to config)
        client: Optional client to reuse; one is created if omitted

    Returns:
        Mapping of bookmark URL to data: URL (None where no icon was found)
    """
    if config is None:
        config = get_config().favicons

    icon_for_page = {url: favicon_url(url) for url in urls}
    icon_urls = sorted({icon for icon in icon_for_page.values() if icon})
    semaphore = asyncio.Semaphore(config.max_concurrent_requests)

    async def fetch_all(c: httpx.AsyncClient) -> List[Optional[str]]:
        async def one(icon_url: str) -> Optional[str]:
            async with semaphore:
                return await fetch_favicon(c, icon_url, config.max_icon_bytes)

        return await asyncio.gather(*(one(icon_url) for icon_url in icon_urls))

    if client is None:
        async with httpx.AsyncClient(
            timeout=config.request_timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        ) as own_client:
            results = await fetch_all(own_client)
    else:
        results = await fetch_all(client)

    icons = dict(zip(icon_urls, results))
    return {
        page: icons.get(icon) if icon else None
        for page, icon in icon_for_page.items()
    }
