"""
jffs2recover - JFFS2 Image Parser
Entry point of the recovery engine: scans an image, indexes its nodes and
answers tree, timeline and file history queries

Pipeline:
    raw bytes -> NodeScanner -> NodeDecoder -> FilesystemIndex
              -> tree / timeline / file history

Author: jffs2recover developers
Version: 1.0.0
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from .decoder import NodeDecoder
from .fs_index import FilesystemIndex
from .history import DEFAULT_MAX_FILE_SIZE, FileHistoryBuilder
from .scanner import NodeScanner
from .structures import (
    ChildEntry,
    DentryNode,
    Diagnostic,
    FileHistory,
    InodeNode,
    Node,
    OpaqueNode,
    TimelineEvent,
    TreeEntry,
    decode_name,
    get_layouts,
)
from .tree import build_timeline, list_children, walk_tree


class EmptyImageError(ValueError):
    """The image contains no bytes at all"""


class Jffs2Parser:
    """
    JFFS2 Image Parser

    Reconstructs the directory hierarchy, the rename/delete timeline and
    every historical revision of every file from a raw JFFS2 dump.
    """

    def __init__(self, image_path: Optional[str] = None, endianness: str = 'big',
                 verify_crc: bool = False, max_file_size: int = DEFAULT_MAX_FILE_SIZE,
                 progress_callback: Optional[Callable[[int, int, str], None]] = None):
        """
        Initialize JFFS2 parser.

        Args:
            image_path: Path to the flash dump (optional when using from_bytes)
            endianness: Byte order of the image, 'big' (default) or 'little'
            verify_crc: Verify node header CRCs during the scan
            max_file_size: Upper bound for a reconstructed file, in bytes
            progress_callback: Optional callback(current, total, message)
        """
        get_layouts(endianness)     # validate early
        self.image_path = Path(image_path) if image_path else None
        self.endianness = endianness
        self.verify_crc = verify_crc
        self.max_file_size = max_file_size
        self.progress_callback = progress_callback
        self.logger = logging.getLogger(__name__)

        self.raw: Optional[bytes] = None
        self.nodes: List[Node] = []
        self.diagnostics: List[Diagnostic] = []
        self.erased_bytes = 0
        self.scanned = False
        self.index: Optional[FilesystemIndex] = None

        # Cache of reconstructed histories, inode -> FileHistory
        self.history_cache: Dict[int, FileHistory] = {}

    @classmethod
    def from_bytes(cls, raw: bytes, **kwargs) -> 'Jffs2Parser':
        """Build a parser over an in-memory image"""
        parser = cls(**kwargs)
        parser.raw = bytes(raw)
        return parser

    def open(self):
        """Read the image into memory"""
        if self.image_path is None:
            raise ValueError("No image path given")
        try:
            self.raw = self.image_path.read_bytes()
            self.logger.info(f"Image {self.image_path} opened ({len(self.raw)} bytes)")
        except OSError as e:
            self.logger.error(f"Failed to open image: {e}")
            raise

    def close(self):
        """Drop the image and every derived structure"""
        self.raw = None
        self.nodes = []
        self.diagnostics = []
        self.scanned = False
        self.index = None
        self.history_cache.clear()

    def __enter__(self):
        """Context manager entry"""
        if self.raw is None:
            self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        self.close()

    def read_nodes(self) -> List[Node]:
        """
        Scan the image and decode every node.

        Returns:
            Decoded nodes in image order

        Raises:
            EmptyImageError: If the image is empty
        """
        if self.raw is None:
            self.open()
        if not self.raw:
            raise EmptyImageError("Image is empty")

        scanner = NodeScanner(self.endianness, self.verify_crc, self.progress_callback)
        result = scanner.scan(self.raw)

        self.diagnostics = list(result.diagnostics)
        self.erased_bytes = result.erased_bytes
        self.nodes = NodeDecoder(self.endianness).decode_all(result.nodes, self.diagnostics)
        self.scanned = True
        self.index = None
        self.history_cache.clear()
        return self.nodes

    def rebuild_fs(self) -> FilesystemIndex:
        """Build the per-inode and per-directory histories"""
        if not self.scanned:
            self.read_nodes()
        self.index = FilesystemIndex(self.nodes)
        self.history_cache.clear()
        return self.index

    def load(self) -> 'Jffs2Parser':
        """Scan, decode and index in one go"""
        self.read_nodes()
        self.rebuild_fs()
        return self

    def _fs(self) -> FilesystemIndex:
        if self.index is None:
            self.load()
        return self.index

    # Tree and timeline

    def list_root_inodes(self) -> List[int]:
        return list(self._fs().root_inos)

    def list_children(self, pino: int) -> List[ChildEntry]:
        return list_children(self._fs(), pino)

    def walk_tree(self) -> Iterator[TreeEntry]:
        return walk_tree(self._fs())

    def timeline(self) -> List[TimelineEvent]:
        return build_timeline(self._fs().nodes)

    # Raw histories

    def inode_numbers(self) -> List[int]:
        """Inodes that have at least one inode node"""
        return self._fs().inode_numbers()

    def ino_sorted(self, ino: int) -> List[InodeNode]:
        return self._fs().ino_sorted(ino)

    def dent_sorted(self, pino: int) -> List[DentryNode]:
        return self._fs().dent_sorted(pino)

    def inode_history(self, ino: int) -> List[InodeNode]:
        """Decoded inode nodes of an inode, for diagnostic dumps"""
        return self.ino_sorted(ino)

    def dentry_history(self, pino: int) -> List[DentryNode]:
        """Decoded dirents of a directory, for diagnostic dumps"""
        return self.dent_sorted(pino)

    def names_for_inode(self, ino: int, raw: bool = False) -> List[Union[str, bytes]]:
        """
        Every name ever bound to an inode, in dirent version order per parent,
        consecutive repeats collapsed.

        Args:
            ino: Inode number
            raw: Return the on-flash bytes instead of their text view
        """
        fs = self._fs()
        names: List[bytes] = []
        for pino in fs.dent:
            for node in fs.dent_sorted(pino):
                if node.ino != ino:
                    continue
                if not names or names[-1] != node.name:
                    names.append(node.name)
        return names if raw else [decode_name(name) for name in names]

    def last_name(self, ino: int, pino: int, raw: bool = False) -> Optional[Union[str, bytes]]:
        """Most recent name of an inode inside one directory"""
        names = [node.name for node in self.dent_sorted(pino) if node.ino == ino]
        if not names:
            return None
        return names[-1] if raw else decode_name(names[-1])

    # File contents

    def file_history(self, ino: int) -> FileHistory:
        """
        Every distinct content state of an inode.

        Raises:
            ResourceLimitError: If the inode's nodes point beyond max_file_size
        """
        if ino not in self.history_cache:
            builder = FileHistoryBuilder(self.max_file_size)
            history = builder.reconstruct(ino, self.ino_sorted(ino), self.names_for_inode(ino))
            self.logger.info(f"Inode {ino}: {len(history.snapshots)} snapshot(s), "
                             f"{len(history.diagnostics)} diagnostic(s)")
            self.history_cache[ino] = history
        return self.history_cache[ino]

    def get_filesystem_info(self) -> Dict[str, Any]:
        """Summary counts of the scanned image"""
        fs = self._fs()
        return {
            'image_path': str(self.image_path) if self.image_path else None,
            'image_size': len(self.raw or b''),
            'endianness': self.endianness,
            'header_crc_verified': self.verify_crc,
            'nodes': len(fs.nodes),
            'inode_nodes': sum(1 for n in fs.nodes if isinstance(n, InodeNode)),
            'dirent_nodes': sum(1 for n in fs.nodes if isinstance(n, DentryNode)),
            'opaque_nodes': sum(1 for n in fs.nodes if isinstance(n, OpaqueNode)),
            'inodes': len(fs.ino),
            'directories': len(fs.dent),
            'root_inodes': list(fs.root_inos),
            'erased_bytes': self.erased_bytes,
            'diagnostics': len(self.diagnostics),
        }
