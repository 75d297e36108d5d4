"""
jffs2recover - Compression Codec
Decompresses the data range carried by an inode node

Supported methods:
- none (0): data stored verbatim
- zlib (6): deflate, with or without the 2-byte zlib header
- lzma (8): raw LZMA1 stream as written by the OpenWrt JFFS2 LZMA patch
"""

import logging
import lzma
import zlib
from typing import Callable, Dict, List, Optional

from .structures import (
    Diagnostic,
    InodeNode,
    JFFS2_COMPR_LZMA,
    JFFS2_COMPR_NAMES,
    JFFS2_COMPR_NONE,
    JFFS2_COMPR_ZLIB,
    LZMA_DICT_SIZE,
    LZMA_LC,
    LZMA_LP,
    LZMA_PB,
)

logger = logging.getLogger(__name__)

LZMA_FILTERS = [{
    'id': lzma.FILTER_LZMA1,
    'dict_size': LZMA_DICT_SIZE,
    'lc': LZMA_LC,
    'lp': LZMA_LP,
    'pb': LZMA_PB,
}]


class DecompressionError(Exception):
    """Malformed compressed stream"""


class UnsupportedCompressionError(DecompressionError):
    """Compression method without a decompressor"""

    def __init__(self, method: int):
        self.method = method
        name = JFFS2_COMPR_NAMES.get(method, 'unknown')
        super().__init__(f"unsupported compression method {method} ({name})")


def decompress_none(data: bytes, expected_size: int) -> bytes:
    return data


def has_zlib_header(data: bytes) -> bool:
    """
    Detect a zlib container header (RFC 1950) in front of a deflate stream.

    CM must be 8, FDICT must be clear and CMF/FLG must pass the FCHECK test.
    """
    if len(data) <= 2:
        return False
    b0, b1 = data[0], data[1]
    return (b1 & 0x20) == 0 and (b0 & 0x0F) == 8 and ((b0 << 8) + b1) % 31 == 0


def decompress_zlib(data: bytes, expected_size: int) -> bytes:
    """
    Inflate a deflate stream.

    With a zlib header the header is stripped and the window size is taken
    from CINFO; without one the data is inflated as headerless raw deflate.
    """
    wbits = -15
    if has_zlib_header(data):
        wbits = -((data[0] >> 4) + 8)
        data = data[2:]

    try:
        inflater = zlib.decompressobj(wbits)
        return inflater.decompress(data) + inflater.flush()
    except (zlib.error, ValueError) as e:
        raise DecompressionError(f"zlib: {e}") from e


def decompress_lzma(data: bytes, expected_size: int) -> bytes:
    """
    Decode a raw LZMA1 stream (lc=0, lp=0, pb=0, 8 KiB dictionary).

    Some encoders pad the output with zero bytes; a zero-only tail beyond
    the expected size is dropped.
    """
    try:
        decoder = lzma.LZMADecompressor(format=lzma.FORMAT_RAW, filters=LZMA_FILTERS)
        output = decoder.decompress(data)
    except lzma.LZMAError as e:
        raise DecompressionError(f"lzma: {e}") from e

    if len(output) > expected_size and output[expected_size:].count(0) == len(output) - expected_size:
        # discard trailing nuls
        output = output[:expected_size]
    return output


DECOMPRESSORS: Dict[int, Callable[[bytes, int], bytes]] = {
    JFFS2_COMPR_NONE: decompress_none,
    JFFS2_COMPR_ZLIB: decompress_zlib,
    JFFS2_COMPR_LZMA: decompress_lzma,
}


def decompress(method: int, data: bytes, expected_size: int) -> bytes:
    """
    Decompress data with the given JFFS2 method.

    Args:
        method: compr1 field of the inode node
        data: Raw (compressed) bytes
        expected_size: Declared decompressed size (dsize)

    Returns:
        Decompressed bytes

    Raises:
        UnsupportedCompressionError: If no decompressor exists for the method
        DecompressionError: If the stream is malformed
    """
    decompressor = DECOMPRESSORS.get(method)
    if decompressor is None:
        raise UnsupportedCompressionError(method)
    return decompressor(data, expected_size)


def decompress_node(node: InodeNode, diagnostics: Optional[List[Diagnostic]] = None) -> bytes:
    """
    Decompress the data of an inode node, degrading instead of failing.

    Unsupported methods and malformed streams are logged and recorded, and
    the raw node data is returned in their place. A length different from
    dsize is logged but the data is returned as decoded.
    """
    try:
        data = decompress(node.compr1, node.data, node.dsize)
    except UnsupportedCompressionError as e:
        _report(diagnostics, node, 'unsupported_compression', str(e))
        return node.data
    except DecompressionError as e:
        _report(diagnostics, node, 'decompression_failed', str(e))
        return node.data

    if len(data) != node.dsize:
        _report(diagnostics, node, 'length_mismatch',
                f"bad file data: decompressed {len(data)} bytes, expected {node.dsize}")
    return data


def _report(diagnostics: Optional[List[Diagnostic]], node: InodeNode, kind: str, message: str):
    logger.warning(f"jffs2: inode {node.ino} version {node.version} at 0x{node.offset:X}: {message}")
    if diagnostics is not None:
        diagnostics.append(Diagnostic(kind=kind, message=message, offset=node.offset, inode=node.ino))
