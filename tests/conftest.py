"""Builders for real JFFS2 wire-format nodes and common images"""

import logging
import struct

import pytest

from jffs2recover.core.decoder import NodeDecoder
from jffs2recover.core.scanner import jffs2_crc32
from jffs2recover.core.structures import RawNode

NODETYPE_DIRENT = 0xE001
NODETYPE_INODE = 0xE002
NODETYPE_CLEANMARKER = 0x2003

PREFIX = {'big': '>', 'little': '<'}

S_IFREG = 0o100000
S_IFDIR = 0o040000


def make_node(node_type, payload, endian='big', pad=b'\x00'):
    """Header + payload, padded to 32 bits"""
    p = PREFIX[endian]
    length = 12 + len(payload)
    head = struct.pack(p + 'BBH', 0x19, 0x85, node_type) + struct.pack(p + 'I', length)
    crc = jffs2_crc32(head)
    node = head + struct.pack(p + 'I', crc) + payload
    if len(node) % 4:
        node += pad * (4 - len(node) % 4)
    return node


def inode_payload(ino, version, data=b'', foff=0, dsize=None, isize=None, compr=0,
                  atime=1000, mtime=2000, ctime=3000, mode=S_IFREG | 0o644, uid=0, gid=0,
                  endian='big'):
    if dsize is None:
        dsize = len(data)
    if isize is None:
        isize = foff + dsize
    p = PREFIX[endian]
    fixed = struct.pack(p + 'IIIHHIIIIIIIBBHII', ino, version, mode, uid, gid, isize,
                        atime, mtime, ctime, foff, len(data), dsize, compr, 0, 0, 0, 0)
    return fixed + data


def inode_node(ino, version, data=b'', endian='big', **kwargs):
    return make_node(NODETYPE_INODE, inode_payload(ino, version, data, endian=endian, **kwargs), endian)


def dirent_payload(pino, version, ino, name, itype=8, mctime=5000, name_pad=b'', endian='big'):
    p = PREFIX[endian]
    fixed = struct.pack(p + 'IIIIBBHII', pino, version, ino, mctime, len(name), itype, 0, 0, 0)
    return fixed + name + name_pad


def dirent_node(pino, version, ino, name, endian='big', **kwargs):
    return make_node(NODETYPE_DIRENT, dirent_payload(pino, version, ino, name, endian=endian, **kwargs), endian)


def cleanmarker(endian='big'):
    return make_node(NODETYPE_CLEANMARKER, b'', endian)


def raw_node(node_type, payload, offset=0):
    return RawNode(offset=offset, type=node_type, length=12 + len(payload), hdr_crc=0, payload=payload)


def decoded_inode(ino, version, data=b'', offset=0, **kwargs):
    """InodeNode record, as the decoder would produce it"""
    return NodeDecoder().parse_inode(raw_node(NODETYPE_INODE, inode_payload(ino, version, data, **kwargs), offset))


def decoded_dirent(pino, version, ino, name, offset=0, **kwargs):
    """DentryNode record, as the decoder would produce it"""
    return NodeDecoder().parse_dentry(raw_node(NODETYPE_DIRENT, dirent_payload(pino, version, ino, name, **kwargs), offset))


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Handlers added by the application must not leak between tests"""
    yield
    logger = logging.getLogger('jffs2recover')
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def hello_world_image():
    """a.txt (inode 2) in the root directory, written twice over the same range"""
    return b''.join([
        dirent_node(1, 1, 2, b'a.txt'),
        inode_node(2, 1, b'hello'),
        inode_node(2, 2, b'world'),
    ])


@pytest.fixture
def deleted_image(hello_world_image):
    """The same image after a.txt has been unlinked"""
    return hello_world_image + dirent_node(1, 2, 0, b'a.txt', mctime=6000)


@pytest.fixture
def nested_image():
    """
    /            inode 1
    /etc/        inode 3
    /etc/passwd  inode 4
    /readme      inode 5, renamed to /README
    """
    return b''.join([
        cleanmarker(),
        dirent_node(1, 1, 3, b'etc', itype=4),
        inode_node(3, 1, mode=S_IFDIR | 0o755),
        dirent_node(3, 1, 4, b'passwd'),
        inode_node(4, 1, b'root:x:0:0\n'),
        dirent_node(1, 2, 5, b'readme'),
        inode_node(5, 1, b'read me'),
        dirent_node(1, 3, 5, b'README', mctime=7000),
        dirent_node(1, 4, 0, b'readme', mctime=7000),
    ])
