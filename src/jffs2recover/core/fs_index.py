"""
jffs2recover - Filesystem Index
Groups decoded nodes into per-inode and per-directory version histories

Nodes live in one flat list in image order; the two mappings hold indexes
into that list.
"""

import logging
from typing import Dict, Iterable, Iterator, List

from .structures import DentryNode, InodeNode, Node


class FilesystemIndex:
    """
    Version histories of a scanned JFFS2 image.

    - ino:  inode number  -> indexes of its inode nodes
    - dent: parent inode  -> indexes of the dirent nodes in that directory
    - root_inos: directories that are never the child of a dirent
    """

    def __init__(self, nodes: Iterable[Node] = ()):
        self.logger = logging.getLogger(__name__)
        self.nodes: List[Node] = []
        self.ino: Dict[int, List[int]] = {}
        self.dent: Dict[int, List[int]] = {}
        self.root_inos: List[int] = []
        self.build(nodes)

    def build(self, nodes: Iterable[Node]):
        """(Re)build the index from nodes in image order"""
        self.nodes = list(nodes)
        self.ino = {}
        self.dent = {}

        for idx, node in enumerate(self.nodes):
            # dirents are the only records with a parent, inode nodes the only
            # ones with a compression method; the type tag is not trusted here
            if getattr(node, 'pino', None) is not None:
                self.dent.setdefault(node.pino, []).append(idx)
            elif getattr(node, 'compr1', None) is not None:
                self.ino.setdefault(node.ino, []).append(idx)

        children = {node.ino for node in self.iter_dirents()}
        self.root_inos = sorted(set(self.dent) - children)

        self.logger.info(
            f"Index rebuilt: {len(self.ino)} inodes, {len(self.dent)} directories, "
            f"roots {self.root_inos}")

    def iter_dirents(self) -> Iterator[DentryNode]:
        """Every dirent, grouped by parent in first-seen order"""
        for indexes in self.dent.values():
            for idx in indexes:
                yield self.nodes[idx]

    def inode_numbers(self) -> List[int]:
        return sorted(self.ino)

    def directory_numbers(self) -> List[int]:
        return sorted(self.dent)

    def is_directory(self, ino: int) -> bool:
        return ino in self.dent

    def ino_sorted(self, ino: int) -> List[InodeNode]:
        """Inode nodes of one inode, oldest version first"""
        return sorted((self.nodes[idx] for idx in self.ino.get(ino, ())),
                      key=lambda node: node.version)

    def dent_sorted(self, pino: int) -> List[DentryNode]:
        """Dirents of one directory, oldest version first"""
        return sorted((self.nodes[idx] for idx in self.dent.get(pino, ())),
                      key=lambda node: node.version)
