import logging
import re
import urllib.parse
from typing import Union
from urllib.parse import urljoin, urlparse

logger = logging.getLogger(__name__)

URI_ATTRIBUTE_RE = re.compile(r'URI="([^"]+)"')
LINE_SPLIT_RE = re.compile(r'\r?\n')

M3U8_CONTENT_TYPES = (
    'application/vnd.apple.mpegurl',
    'application/x-mpegurl',
    'audio/mpegurl',
    'audio/x-mpegurl',
)


def is_m3u8_url(url: str) -> bool:
    url = url.lower()
    return url.endswith('.m3u8') or '.m3u8?' in url


def is_m3u8_content_type(content_type: str) -> bool:
    content_type = (content_type or '').lower()
    return any(t in content_type for t in M3U8_CONTENT_TYPES)


def looks_like_m3u8(content: Union[bytes, str]) -> bool:
    """Check the first bytes for an HLS marker without decoding a whole binary payload."""
    if not content:
        return False
    head = content[:100]
    if isinstance(head, (bytes, bytearray)):
        head = bytes(head).decode('utf-8', errors='replace')
    head = head.strip()
    return head.startswith('#EXTM3U') or head.startswith('#EXT-X-')


def _base_path(base_url: str) -> str:
    """Directory of the playlist, used to resolve relative references."""
    if base_url.endswith('.m3u8'):
        return base_url[:base_url.rfind('/') + 1]
    if not base_url.endswith('/'):
        return base_url + '/'
    return base_url


def _resolve(reference: str, base_path: str, scheme: str) -> str:
    if reference.startswith('http://') or reference.startswith('https://'):
        return reference
    if reference.startswith('//'):
        return f"{scheme}:{reference}"

    absolute = urljoin(base_path, reference)
    if urlparse(absolute).scheme not in ('http', 'https'):
        raise ValueError(f"cannot resolve '{reference}' against '{base_path}'")
    return absolute


def _proxied(absolute_url: str, proxy_url: str) -> str:
    return f"{proxy_url}?url={urllib.parse.quote(absolute_url, safe='')}"


def rewrite_m3u8(content: str, base_url: str, proxy_url: str) -> str:
    """
    Rewrite every segment, sub-playlist and ``URI="..."`` reference of an HLS
    playlist so that it points back at ``proxy_url``.

    Lines are handled independently: a reference that can't be resolved is
    logged and left as it was. If the document as a whole can't be processed,
    the original text is returned untouched.
    """
    try:
        scheme = urlparse(base_url).scheme
        base_path = _base_path(base_url)

        def rewrite_uri_attribute(match):
            original_uri = match.group(1)
            if original_uri.startswith(proxy_url):
                return match.group(0)
            try:
                absolute_uri = _resolve(original_uri, base_path, scheme)
            except ValueError as e:
                logger.warning(f"⚠️ Failed to parse URI in M3U8 tag '{original_uri}': {e}")
                return match.group(0)
            proxied = _proxied(absolute_uri, proxy_url)
            logger.debug(f"Rewrote M3U8 URI attribute: {original_uri} -> {proxied}")
            return f'URI="{proxied}"'

        rewritten_lines = []
        for line in LINE_SPLIT_RE.split(content):
            stripped = line.strip()

            if not stripped:
                rewritten_lines.append(line)

            elif stripped.startswith('#'):
                if 'URI="' in line:
                    rewritten_lines.append(URI_ATTRIBUTE_RE.sub(rewrite_uri_attribute, line))
                else:
                    rewritten_lines.append(line)

            elif stripped.startswith(proxy_url):
                rewritten_lines.append(line)

            else:
                try:
                    absolute_url = _resolve(stripped, base_path, scheme)
                except ValueError as e:
                    logger.warning(f"⚠️ Failed to parse M3U8 line '{line}': {e}")
                    rewritten_lines.append(line)
                    continue
                rewritten_lines.append(_proxied(absolute_url, proxy_url))

        return '\n'.join(rewritten_lines)

    except Exception as e:
        logger.error(f"❌ Critical error processing M3U8 content from {base_url}: {e}")
        return content
