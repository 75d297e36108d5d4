"""
jffs2recover - JFFS2 On-Flash Structures
Constants, wire layouts and record types shared by the recovery pipeline

JFFS2 node header (12 bytes):
    |  0x19 |  0x85 |   node type   |
    |        total node length      |   (header included)
    |          header CRC32         |

Every multi-byte field is stored in the byte order of the host that wrote
the image; the whole pipeline is parameterised by one endianness selector.
"""

import struct
from collections import namedtuple
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, NamedTuple, Optional, Tuple, Union


# Node header
JFFS2_MAGIC_1 = 0x19
JFFS2_MAGIC_2 = 0x85
JFFS2_MAGIC_BYTES = bytes((JFFS2_MAGIC_1, JFFS2_MAGIC_2))
JFFS2_HEADER_SIZE = 12
JFFS2_NODE_ALIGN = 4            # node headers are kept 32-bit aligned

# Scanner windows
JFFS2_ERASED_BYTE = 0xFF
JFFS2_ERASED_WINDOW = 512       # erased flash is skipped up to the next 512-byte boundary
JFFS2_RESYNC_WINDOW = 1024      # bytes searched for the next magic after corruption

# Node types (low 12 bits of the type tag, upper bits are compat flags)
JFFS2_TYPE_MASK = 0x0FFF
JFFS2_NODETYPE_DIRENT = 1
JFFS2_NODETYPE_INODE = 2

# Compression methods (compr1 field of inode nodes)
JFFS2_COMPR_NONE = 0x00
JFFS2_COMPR_ZERO = 0x01
JFFS2_COMPR_RTIME = 0x02
JFFS2_COMPR_RUBINMIPS = 0x03
JFFS2_COMPR_COPY = 0x04
JFFS2_COMPR_DYNRUBIN = 0x05
JFFS2_COMPR_ZLIB = 0x06
JFFS2_COMPR_LZO = 0x07
JFFS2_COMPR_LZMA = 0x08

JFFS2_COMPR_NAMES = {
    JFFS2_COMPR_NONE: 'none',
    JFFS2_COMPR_ZERO: 'zero',
    JFFS2_COMPR_RTIME: 'rtime',
    JFFS2_COMPR_RUBINMIPS: 'rubinmips',
    JFFS2_COMPR_COPY: 'copy',
    JFFS2_COMPR_DYNRUBIN: 'dynrubin',
    JFFS2_COMPR_ZLIB: 'zlib',
    JFFS2_COMPR_LZO: 'lzo',
    JFFS2_COMPR_LZMA: 'lzma',
}

# LZMA settings from the OpenWrt JFFS2 LZMA patch (raw LZMA1 stream, no header)
LZMA_DICT_SIZE = 0x2000
LZMA_LC = 0
LZMA_LP = 0
LZMA_PB = 0

# Directory entry types (Linux DT_* values)
DT_FIFO = 1
DT_CHR = 2
DT_DIR = 4
DT_BLK = 6
DT_REG = 8
DT_LNK = 10
DT_SOCK = 12

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S Z"

ENDIANNESS_PREFIX = {
    'big': '>',
    'little': '<',
}

# Field layouts, without byte order prefix
_HEADER_FORMAT = 'BBHII'                    # magic1 magic2 type length hdr_crc
_INODE_FORMAT = 'IIIHHIIIIIIIBBHII'         # 56 bytes, data follows
_DIRENT_FORMAT = 'IIIIBBHII'                # 28 bytes, name follows

NodeLayouts = namedtuple('NodeLayouts', ['endianness', 'header', 'inode', 'dirent'])


def get_layouts(endianness: str = 'big') -> NodeLayouts:
    """
    Build the struct layouts for one byte order.

    Args:
        endianness: 'big' (default) or 'little'

    Returns:
        NodeLayouts with precompiled header/inode/dirent structs

    Raises:
        ValueError: If the endianness is not recognised
    """
    prefix = ENDIANNESS_PREFIX.get(endianness)
    if prefix is None:
        raise ValueError(f"Invalid endianness: {endianness}. Must be 'big' or 'little'")

    return NodeLayouts(
        endianness=endianness,
        header=struct.Struct(prefix + _HEADER_FORMAT),
        inode=struct.Struct(prefix + _INODE_FORMAT),
        dirent=struct.Struct(prefix + _DIRENT_FORMAT),
    )


def format_timestamp(epoch: int) -> str:
    """Render a 32-bit epoch timestamp as a UTC string"""
    try:
        return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime(TIMESTAMP_FORMAT)
    except (OSError, OverflowError, ValueError):
        return f"invalid ({epoch})"


def decode_name(name: bytes) -> str:
    """Text view of an on-flash name; undecodable bytes stay visible as escapes"""
    return name.decode('utf-8', errors='backslashreplace')


@dataclass
class Diagnostic:
    """Non-fatal anomaly found while scanning or reconstructing"""
    kind: str                       # 'bad_signature', 'truncated_node', 'unsupported_compression', ...
    message: str
    offset: Optional[int] = None    # byte offset in the image, when known
    inode: Optional[int] = None


@dataclass
class RawNode:
    """One node as cut out of the image by the scanner"""
    offset: int
    type: int
    length: int                     # header included
    hdr_crc: int
    payload: bytes = field(repr=False)
    pad: bytes = field(default=b'', repr=False)

    @property
    def payload_length(self) -> int:
        return self.length - JFFS2_HEADER_SIZE


@dataclass
class InodeNode:
    """Inode node: metadata plus one (possibly compressed) data range of a file"""
    offset: int
    type: int
    ino: int
    version: int
    mode: int
    uid: int
    gid: int
    isize: int          # logical file size at the time of the write
    atime: int
    mtime: int
    ctime: int
    foff: int           # offset of the data range in the file
    csize: int          # compressed data size
    dsize: int          # decompressed data size
    compr1: int
    compr2: int
    flags: int
    data_crc: int
    node_crc: int
    data: bytes = field(repr=False)
    atime_a: str = ''
    mtime_a: str = ''
    ctime_a: str = ''
    pad: bytes = field(default=b'', repr=False)

    @property
    def data_range(self) -> Tuple[int, int]:
        return (self.foff, self.dsize)


@dataclass
class DentryNode:
    """Directory entry node: binds a name in a parent directory to an inode (0 = unlinked)"""
    offset: int
    type: int
    pino: int
    version: int
    ino: int
    mctime: int
    nsize: int
    itype: int
    unk: int
    node_crc: int
    name_crc: int
    name: bytes
    name_pad: bytes = field(default=b'', repr=False)
    mctime_a: str = ''
    pad: bytes = field(default=b'', repr=False)

    @property
    def name_str(self) -> str:
        return decode_name(self.name)

    @property
    def is_dir(self) -> bool:
        return self.itype == DT_DIR

    @property
    def deleted(self) -> bool:
        return self.ino == 0


@dataclass
class OpaqueNode:
    """Any other node type, kept verbatim"""
    offset: int
    type: int
    raw: bytes = field(repr=False)
    pad: bytes = field(default=b'', repr=False)


Node = Union[InodeNode, DentryNode, OpaqueNode]


@dataclass
class ScanResult:
    """Output of the node scanner"""
    nodes: List[RawNode] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    erased_bytes: int = 0


@dataclass(frozen=True)
class FileSnapshot:
    """One historically distinct state of a file's contents"""
    serial: int
    data: bytes = field(repr=False)
    version: int = 0        # version of the last inode node applied before the flush

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class FileHistory:
    """Every reconstructed content state of an inode, with the names it was known by"""
    inode: int
    names: List[str] = field(default_factory=list)
    snapshots: List[FileSnapshot] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)


@dataclass
class ChildEntry:
    """A name inside a directory and the inodes it pointed to through time"""
    name: bytes
    is_dir: bool
    inodes: List[int]           # historical inode numbers, dirent version order, 0 = unlinked
    current_inode: int          # inode of the highest-version dirent for this name

    @property
    def name_str(self) -> str:
        return decode_name(self.name)

    @property
    def deleted(self) -> bool:
        return self.current_inode == 0


@dataclass
class TreeEntry:
    """One line of a recursive directory listing"""
    depth: int
    parent_inode: int
    path: Tuple[str, ...]
    entry: ChildEntry


class TimelineEvent(NamedTuple):
    """Time-stamped filesystem event; field order is the sort order"""
    timestamp: int
    action: str             # access, create, write, delete, rename
    inode: int
    name: str
    parent_inode: int

    @property
    def timestamp_a(self) -> str:
        return format_timestamp(self.timestamp)
