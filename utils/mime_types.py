"""
Content-type detection for streaming resources.

Some CDNs serve MPEG-TS segments behind misleading extensions (``.jpg``,
``.js``, ``.html``...) or under a ``.m3u8`` URL, so the declared type and the
extension can't be trusted on their own.
"""

import logging
import re
from typing import Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

M3U8_CONTENT_TYPE = "application/vnd.apple.mpegurl"
TS_CONTENT_TYPE = "video/mp2t"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

TS_SYNC_BYTE = 0x47
TS_PACKET_SIZE = 188

SEGMENT_PATTERNS = [
    re.compile(r"seg-\d+", re.IGNORECASE),
    re.compile(r"segment-\d+", re.IGNORECASE),
    re.compile(r"chunk-\d+", re.IGNORECASE),
    re.compile(r"frag-\d+", re.IGNORECASE),
    re.compile(r"part-\d+", re.IGNORECASE),
    # HLS-style
    re.compile(r"-v\d+-a\d+", re.IGNORECASE),
    re.compile(r"-f\d+-v\d+-a\d+", re.IGNORECASE),
    re.compile(r"media-\d+", re.IGNORECASE),
    re.compile(r"stream_\d+", re.IGNORECASE),
    re.compile(r"_\d+\.ts$", re.IGNORECASE),
    re.compile(r"_\d+\.m4s$", re.IGNORECASE),
]

TS_EXTENSIONS = ('.ts', '.mts', '.m2ts', '.mp2t')

PLAYLIST_EXTENSIONS = ('.m3u8', '.m3u')

# Extensions seen on segments renamed to look like static assets
DISGUISE_EXTENSIONS = ('.js', '.jpg', '.jpeg', '.png', '.gif', '.css', '.html', '.txt', '.webp', '.ico')

SUSPICIOUS_EXTENSIONS = DISGUISE_EXTENSIONS + ('.json', '.xml', '.svg', '.pdf', '.doc', '.docx')


def _path_of(url_or_path: str) -> str:
    """Path component of a URL (query and fragment dropped), or the input if it is already a path."""
    if not url_or_path:
        return ""
    try:
        return urlparse(url_or_path).path or url_or_path
    except ValueError:
        return url_or_path


def is_m3u8_playlist(path: str) -> bool:
    return _path_of(path).lower().endswith(PLAYLIST_EXTENSIONS)


def has_suspicious_extension(path: str) -> bool:
    return _path_of(path).lower().endswith(SUSPICIOUS_EXTENSIONS)


def is_disguised_segment(path: str) -> bool:
    """A segment-like file name hiding behind a static-asset extension."""
    path = _path_of(path)
    if not path:
        return False

    has_segment_pattern = any(pattern.search(path) for pattern in SEGMENT_PATTERNS)
    return has_segment_pattern and path.lower().endswith(DISGUISE_EXTENSIONS)


def is_ts_segment(path: str) -> bool:
    if not path:
        return False

    if _path_of(path).lower().endswith(TS_EXTENSIONS):
        return True

    return is_disguised_segment(path)


def detect_transport_stream(data: bytes) -> bool:
    """
    Sniff MPEG-TS by its sync bytes.

    Every 188-byte packet starts with 0x47. The first byte must be a sync byte
    and at least one of the next five packet boundaries present in the buffer
    must be one too, so a single coincidental 0x47 is not enough.
    """
    try:
        if data is None or len(data) < TS_PACKET_SIZE:
            return False

        if data[0] != TS_SYNC_BYTE:
            return False

        sync_count = 1
        for i in range(1, 6):
            offset = i * TS_PACKET_SIZE
            if offset < len(data) and data[offset] == TS_SYNC_BYTE:
                sync_count += 1

        return sync_count >= 2
    except Exception as e:
        logger.debug(f"Transport stream detection failed: {e}")
        return False


def get_streaming_content_type(path: str, data: Optional[bytes] = None, fallback: Optional[str] = None) -> str:
    """
    Best guess of the real content type of a streaming resource.

    Args:
        path: URL or path of the resource.
        data: optional leading bytes of the payload for signature checks.
        fallback: declared content type, returned when nothing more specific is found.
    """
    if not path:
        return fallback or DEFAULT_CONTENT_TYPE

    if is_m3u8_playlist(path):
        if data is None:
            return M3U8_CONTENT_TYPE
        # "#E" as in #EXTM3U, anything else may be a binary segment under a playlist name
        if data[:2] == b"#E":
            return M3U8_CONTENT_TYPE

    if data is not None and has_suspicious_extension(path):
        if detect_transport_stream(data):
            return TS_CONTENT_TYPE

    if data is not None and detect_transport_stream(data):
        return TS_CONTENT_TYPE

    if is_ts_segment(path):
        return TS_CONTENT_TYPE

    return fallback or DEFAULT_CONTENT_TYPE
