"""
Best-effort thumbnail discovery from OpenGraph / Twitter card meta tags.
"""
import logging
import re
from typing import Optional

import aiohttp

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; NewsBot/1.0)"
MAX_HTML_BYTES = 500_000
CHUNK_SIZE = 16_384

_OG_IMAGE_PATTERNS = [
    re.compile(r"""<meta[^>]*property=["']og:image["'][^>]*content=["']([^"']+)["'][^>]*>""", re.IGNORECASE),
    re.compile(r"""<meta[^>]*content=["']([^"']+)["'][^>]*property=["']og:image["'][^>]*>""", re.IGNORECASE),
]
_TWITTER_IMAGE_PATTERNS = [
    re.compile(r"""<meta[^>]*name=["']twitter:image["'][^>]*content=["']([^"']+)["'][^>]*>""", re.IGNORECASE),
    re.compile(r"""<meta[^>]*content=["']([^"']+)["'][^>]*name=["']twitter:image["'][^>]*>""", re.IGNORECASE),
]


def _first_match(patterns, html: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(html)
        if match:
            return match.group(1)
    return None


def extract_og_image(html: str) -> Optional[str]:
    return _first_match(_OG_IMAGE_PATTERNS, html)


def extract_twitter_image(html: str) -> Optional[str]:
    return _first_match(_TWITTER_IMAGE_PATTERNS, html)


async def _read_head(response: aiohttp.ClientResponse) -> str:
    """Read the page up to ``</head>`` or ``MAX_HTML_BYTES``, whichever comes first."""
    buffer = bytearray()
    async for chunk in response.content.iter_chunked(CHUNK_SIZE):
        buffer.extend(chunk)
        if len(buffer) >= MAX_HTML_BYTES or b"</head>" in buffer:
            break
    charset = response.charset or "utf-8"
    return bytes(buffer[:MAX_HTML_BYTES]).decode(charset, errors="replace")


async def _fetch_with(session: aiohttp.ClientSession, url: str, timeout: float) -> Optional[str]:
    async with session.get(
        url,
        headers={"User-Agent": USER_AGENT},
        timeout=aiohttp.ClientTimeout(total=timeout),
        allow_redirects=True,
    ) as resp:
        if resp.status != 200:
            return None
        html = await _read_head(resp)
    return extract_og_image(html) or extract_twitter_image(html)


async def fetch_og_image(
    url: str,
    session: Optional[aiohttp.ClientSession] = None,
    timeout: float = 5.0,
) -> Optional[str]:
    """Return the page's og:image (or twitter:image) URL; None on any failure."""
    if not url or not url.startswith(("http://", "https://")):
        return None
    try:
        if session is not None:
            return await _fetch_with(session, url, timeout)
        async with aiohttp.ClientSession() as own_session:
            return await _fetch_with(own_session, url, timeout)
    except Exception as e:
        logger.debug(f"OG image lookup failed for {url}: {e}")
        return None
