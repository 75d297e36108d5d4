"""
jffs2recover - Node Decoder
Interprets the payload of a raw node as an inode node, a directory entry
or an opaque record
"""

import logging
import struct
from typing import List, Optional

from .structures import (
    DentryNode,
    Diagnostic,
    InodeNode,
    Node,
    OpaqueNode,
    RawNode,
    format_timestamp,
    get_layouts,
    JFFS2_NODETYPE_DIRENT,
    JFFS2_NODETYPE_INODE,
    JFFS2_TYPE_MASK,
)


class NodeDecoder:
    """
    Decodes raw nodes into typed records.

    Never rejects a node: unknown types, and known types whose payload is too
    short for the fixed layout, are kept as OpaqueNode.
    """

    def __init__(self, endianness: str = 'big'):
        self.layouts = get_layouts(endianness)
        self.logger = logging.getLogger(__name__)

    def decode(self, raw_node: RawNode,
               diagnostics: Optional[List[Diagnostic]] = None) -> Node:
        """
        Decode one raw node.

        Args:
            raw_node: Node cut out by the scanner
            diagnostics: Optional list collecting decode anomalies

        Returns:
            InodeNode, DentryNode or OpaqueNode
        """
        node_type = raw_node.type & JFFS2_TYPE_MASK
        try:
            if node_type == JFFS2_NODETYPE_INODE:
                return self.parse_inode(raw_node)
            if node_type == JFFS2_NODETYPE_DIRENT:
                return self.parse_dentry(raw_node)
        except struct.error as e:
            message = (f"short {'inode' if node_type == JFFS2_NODETYPE_INODE else 'dirent'} "
                       f"node at 0x{raw_node.offset:X} ({len(raw_node.payload)} payload bytes): {e}")
            self.logger.warning(f"jffs2: {message}")
            if diagnostics is not None:
                diagnostics.append(Diagnostic(kind='short_node', message=message,
                                              offset=raw_node.offset))

        return OpaqueNode(offset=raw_node.offset, type=raw_node.type,
                          raw=raw_node.payload, pad=raw_node.pad)

    def decode_all(self, raw_nodes: List[RawNode],
                   diagnostics: Optional[List[Diagnostic]] = None) -> List[Node]:
        return [self.decode(raw_node, diagnostics) for raw_node in raw_nodes]

    def parse_inode(self, raw_node: RawNode) -> InodeNode:
        """Decode an inode node; everything after the fixed part is file data"""
        layout = self.layouts.inode
        payload = raw_node.payload
        (ino, version, mode, uid, gid, isize, atime, mtime, ctime, foff, csize, dsize,
         compr1, compr2, flags, data_crc, node_crc) = layout.unpack_from(payload)

        return InodeNode(
            offset=raw_node.offset,
            type=raw_node.type,
            ino=ino,
            version=version,
            mode=mode,
            uid=uid,
            gid=gid,
            isize=isize,
            atime=atime,
            mtime=mtime,
            ctime=ctime,
            foff=foff,
            csize=csize,
            dsize=dsize,
            compr1=compr1,
            compr2=compr2,
            flags=flags,
            data_crc=data_crc,
            node_crc=node_crc,
            data=payload[layout.size:],
            atime_a=format_timestamp(atime),
            mtime_a=format_timestamp(mtime),
            ctime_a=format_timestamp(ctime),
            pad=raw_node.pad,
        )

    def parse_dentry(self, raw_node: RawNode) -> DentryNode:
        """Decode a directory entry; the name is padded to 32 bits on flash"""
        layout = self.layouts.dirent
        payload = raw_node.payload
        (pino, version, ino, mctime, nsize, itype, unk,
         node_crc, name_crc) = layout.unpack_from(payload)
        name = payload[layout.size:]

        return DentryNode(
            offset=raw_node.offset,
            type=raw_node.type,
            pino=pino,
            version=version,
            ino=ino,
            mctime=mctime,
            nsize=nsize,
            itype=itype,
            unk=unk,
            node_crc=node_crc,
            name_crc=name_crc,
            name=name[:nsize],
            name_pad=name[nsize:],
            mctime_a=format_timestamp(mctime),
            pad=raw_node.pad,
        )
