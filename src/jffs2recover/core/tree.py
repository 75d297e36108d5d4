"""
jffs2recover - Tree and Timeline Reconstruction
Derives directory contents, a recursive listing and an event timeline
from the filesystem index
"""

from typing import Dict, Iterable, Iterator, List, Tuple

from .fs_index import FilesystemIndex
from .structures import ChildEntry, DentryNode, InodeNode, Node, TimelineEvent, TreeEntry


def list_children(index: FilesystemIndex, pino: int) -> List[ChildEntry]:
    """
    Every name ever seen in a directory.

    Args:
        index: Filesystem index
        pino: Inode number of the directory

    Returns:
        One ChildEntry per distinct name, sorted by name. The last dirent by
        version decides the current inode (0 = deleted); a name is a
        directory if any of its dirents says so.
    """
    by_name: Dict[bytes, List[DentryNode]] = {}
    for node in index.dent_sorted(pino):
        by_name.setdefault(node.name, []).append(node)

    children = []
    for name in sorted(by_name):
        nodes = by_name[name]
        inodes: List[int] = []
        for node in nodes:
            if node.ino not in inodes:
                inodes.append(node.ino)
        children.append(ChildEntry(
            name=name,
            is_dir=any(node.is_dir for node in nodes),
            inodes=inodes,
            current_inode=nodes[-1].ino,
        ))
    return children


def walk_tree(index: FilesystemIndex) -> Iterator[TreeEntry]:
    """
    Depth-first listing of every name reachable from the root inodes.

    Each name is followed by the contents of every inode it ever pointed to.
    An inode already on the current path is not entered again.
    """
    stack: List[Tuple[TreeEntry, frozenset]] = []

    def push_children(pino: int, depth: int, path: Tuple[str, ...], ancestors: frozenset):
        for child in reversed(list_children(index, pino)):
            stack.append((TreeEntry(depth=depth, parent_inode=pino,
                                    path=path + (child.name_str,), entry=child), ancestors))

    for root in reversed(index.root_inos):
        push_children(root, 0, (), frozenset((root,)))

    while stack:
        item, ancestors = stack.pop()
        yield item
        # reversed so the first inode's subtree comes out first
        for ino in reversed(item.entry.inodes):
            if ino == 0 or ino in ancestors:
                continue
            push_children(ino, item.depth + 1, item.path, ancestors | {ino})


def build_timeline(nodes: Iterable[Node]) -> List[TimelineEvent]:
    """
    Events of every inode node and dirent, deduplicated and sorted.

    Inode nodes give access/create/write events from their timestamps;
    dirents give a delete event when unlinking, else a rename (a first link
    looks the same as a rename on flash).
    """
    events = set()
    for node in nodes:
        if isinstance(node, InodeNode):
            events.add(TimelineEvent(node.atime, 'access', node.ino, '', 0))
            events.add(TimelineEvent(node.ctime, 'create', node.ino, '', 0))
            events.add(TimelineEvent(node.mtime, 'write', node.ino, '', 0))
        elif isinstance(node, DentryNode):
            action = 'delete' if node.ino == 0 else 'rename'
            events.add(TimelineEvent(node.mctime, action, node.ino, node.name_str, node.pino))
    return sorted(events)
