import html
import logging
import re
from urllib.parse import urlparse

import requests

from huechat.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

TITLE_PATTERN = re.compile(r"<title[^>]*>([^<]+)</title>", re.IGNORECASE)


def _read_head(response: requests.Response, limit: int) -> bytes:
    chunks = []
    size = 0
    for chunk in response.iter_content(chunk_size=8192):
        chunks.append(chunk)
        size += len(chunk)
        if size >= limit:
            break
    return b"".join(chunks)[:limit]


def _decode(raw: bytes, encoding: str | None) -> str:
    try:
        return raw.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        return raw.decode("utf-8", errors="replace")


def fetch_title(url: str, timeout: float | None = None) -> str:
    """
    Best-effort page title for a link preview.

    Any failure (bad scheme, error status, timeout, network error, no
    <title>) falls back to the URL itself; this never raises.
    """
    if urlparse(url).scheme not in ("http", "https"):
        return url

    timeout = timeout or settings.link_preview_timeout_seconds
    try:
        response = requests.get(
            url,
            timeout=timeout,
            stream=True,
            headers={"User-Agent": "Mozilla/5.0 (compatible; HueBot/1.0)"}
        )
        try:
            if not response.ok:
                return url
            raw = _read_head(response, settings.link_preview_max_bytes)
        finally:
            response.close()
    except requests.RequestException as e:
        logger.warning("Link preview failed for %s: %s", url, e)
        return url

    match = TITLE_PATTERN.search(_decode(raw, response.encoding))
    if not match:
        return url
    title = html.unescape(match.group(1)).strip()
    return title or url
