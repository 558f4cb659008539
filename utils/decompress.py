import gzip
import logging
import zlib

import brotli
import zstandard

logger = logging.getLogger(__name__)


class DecompressionError(Exception):
    pass


def decompress_content(content: bytes, encoding: str) -> bytes:
    """
    Undo a transport ``Content-Encoding`` (gzip, deflate, br, zstd).

    Unknown or empty encodings return the content unchanged. Raises
    DecompressionError when the payload can't be decoded.
    """
    if not encoding:
        return content

    encoding = encoding.strip().lower()

    try:
        if encoding in ('gzip', 'x-gzip'):
            logger.debug("Decompressing gzip content")
            return gzip.decompress(content)
        elif encoding == 'deflate':
            logger.debug("Decompressing deflate content")
            try:
                return zlib.decompress(content)
            except zlib.error:
                # Some servers send raw deflate without the zlib header
                return zlib.decompress(content, -zlib.MAX_WBITS)
        elif encoding == 'br':
            logger.debug("Decompressing brotli content")
            return brotli.decompress(content)
        elif encoding in ('zstd', 'zst'):
            logger.debug("Decompressing zstd content")
            dctx = zstandard.ZstdDecompressor()
            # stream_reader copes with frames that don't declare their content size
            with dctx.stream_reader(content) as reader:
                return reader.read()
        else:
            logger.debug(f"Unknown encoding '{encoding}', returning original content")
            return content
    except (OSError, EOFError, zlib.error, brotli.error, zstandard.ZstdError) as e:
        raise DecompressionError(f"Failed to decompress {encoding} content: {e}") from e
