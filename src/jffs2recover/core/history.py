"""
jffs2recover - File History Reconstruction
Replays the inode nodes of one file to recover each distinct content state

Inode nodes are independent write events. Writes are applied in version
order and the content is only snapshotted when a new write would overwrite
data that has not been snapshotted yet, or when a truncation would discard
data. The result is one snapshot per meaningful revision rather than one
per node.
"""

import logging
from typing import Iterable, List, Optional, Tuple

from .compression import decompress_node
from .structures import FileHistory, FileSnapshot, InodeNode

DEFAULT_MAX_FILE_SIZE = 500 * 1024 * 1024

# zero-length range before the start of the file: overlaps nothing but marks
# the content as not yet snapshotted
UNFLUSHED = (-1, 0)


class ResourceLimitError(Exception):
    """A node would grow the reconstructed file past the configured limit"""


def ranges_overlap(a: Tuple[int, int], b: Tuple[int, int]) -> bool:
    """
    (offset, length) ranges intersect.

    Non-empty ranges are half-open, so touching ranges do not intersect. A
    zero-length range intersects a range whose bytes contain its offset.
    """
    a_off, a_len = a
    b_off, b_len = b
    if a_len == 0 or b_len == 0:
        return (a_len == 0 and b_off <= a_off < b_off + b_len) or \
               (b_len == 0 and a_off <= b_off < a_off + a_len)
    return a_off < b_off + b_len and b_off < a_off + a_len


class FileHistoryBuilder:
    """Rebuilds the content history of an inode from its inode nodes"""

    def __init__(self, max_file_size: int = DEFAULT_MAX_FILE_SIZE):
        """
        Args:
            max_file_size: Largest content buffer a replay may build, in bytes
        """
        self.max_file_size = max_file_size
        self.logger = logging.getLogger(__name__)

    def reconstruct(self, ino: int, nodes: Iterable[InodeNode],
                    names: Optional[List[str]] = None) -> FileHistory:
        """
        Replay inode nodes into snapshots.

        Args:
            ino: Inode number
            nodes: Inode nodes of that inode, sorted by version
            names: Names the inode was known by, for reporting

        Returns:
            FileHistory with snapshots in serial order

        Raises:
            ResourceLimitError: If a node points beyond max_file_size
        """
        history = FileHistory(inode=ino, names=list(names or []))
        content = bytearray()
        pending: List[Tuple[int, int]] = [UNFLUSHED]    # ranges written since the last snapshot
        applied_version = 0

        def flush():
            snapshot = FileSnapshot(serial=len(history.snapshots), data=bytes(content),
                                    version=applied_version)
            history.snapshots.append(snapshot)
            pending.clear()
            self.logger.debug(f"inode {ino}: snapshot {snapshot.serial:04d} "
                              f"({snapshot.size} bytes, version {applied_version})")

        for node in nodes:
            cur_range = node.data_range
            self._check_limit(node, node.foff + node.dsize)
            data = decompress_node(node, history.diagnostics)

            # this write overwrites unsaved data: snapshot first
            if any(ranges_overlap(cur_range, r) for r in pending):
                flush()

            if node.foff > len(content):
                # write past the end of file, the hole reads as zeros
                padlen = node.foff - len(content)
                pending.append((len(content), padlen))
                content.extend(bytes(padlen))

            content[node.foff:node.foff + node.dsize] = data
            self._check_limit(node, len(content))
            if node.dsize != 0:
                pending.append(cur_range)
            applied_version = node.version

            if node.isize < len(content):
                # truncation discards data: snapshot unconditionally
                flush()
                del content[node.isize:]

        if pending:
            flush()

        return history

    def _check_limit(self, node: InodeNode, size: int):
        if size > self.max_file_size:
            raise ResourceLimitError(
                f"inode {node.ino} version {node.version} at 0x{node.offset:X} would grow the file "
                f"to {size} bytes (limit {self.max_file_size})")
