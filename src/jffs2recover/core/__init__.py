"""JFFS2 recovery engine: scanner, decoder, codec, index and reconstructors"""

from .compression import DecompressionError, UnsupportedCompressionError, decompress
from .decoder import NodeDecoder
from .fs_index import FilesystemIndex
from .history import FileHistoryBuilder, ResourceLimitError
from .jffs2_parser import EmptyImageError, Jffs2Parser
from .scanner import NodeScanner, jffs2_crc32

__all__ = [
    "DecompressionError",
    "EmptyImageError",
    "FileHistoryBuilder",
    "FilesystemIndex",
    "Jffs2Parser",
    "NodeDecoder",
    "NodeScanner",
    "ResourceLimitError",
    "UnsupportedCompressionError",
    "decompress",
    "jffs2_crc32",
]
