import logging
import mimetypes
from typing import Optional, Tuple
from urllib.parse import urlparse

import httpx

from .exceptions import ResourceFetchError

logger = logging.getLogger("polyllm.fetch")

DEFAULT_MEDIA_TYPE = "application/octet-stream"


def guess_media_type(location: str, default: str = DEFAULT_MEDIA_TYPE) -> str:
    """Guess a media type from a path or URL extension."""
    path = urlparse(location).path or location
    mime_type, _ = mimetypes.guess_type(path)
    return mime_type or default


def fetch_resource(
    url: str,
    client: Optional[httpx.Client] = None,
    timeout: float = 30.0,
) -> Tuple[bytes, str]:
    """
    Download a remote resource.
    Returns (content, media_type). Raises ResourceFetchError on any failure.
    """
    if not (url.startswith("http://") or url.startswith("https://")):
        raise ResourceFetchError(f"Not a remote URL: {url}", url=url)

    logger.debug(f"FETCH {url}")
    try:
        if client is not None:
            resp = client.get(url, follow_redirects=True)
        else:
            resp = httpx.get(url, follow_redirects=True, timeout=timeout)
        resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise ResourceFetchError(
            f"Failed to fetch '{url}': HTTP {e.response.status_code}", url=url
        ) from e
    except httpx.HTTPError as e:
        raise ResourceFetchError(f"Failed to fetch '{url}': {e}", url=url) from e

    header = resp.headers.get("content-type", "")
    media_type = header.split(";")[0].strip()
    if not media_type or media_type == DEFAULT_MEDIA_TYPE:
        media_type = guess_media_type(url)
    return resp.content, media_type
