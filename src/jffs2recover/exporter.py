"""
jffs2recover - Snapshot Exporter
Writes reconstructed file histories to disk and links them back into a
directory tree

Layout of an export directory:
    ino_<inode>_<names>/log     dirent and inode node history, one line each
    ino_<inode>_<names>/0000    first snapshot
    ino_<inode>_<names>/0001    ...

Tree rebuild (after an export):
    root_1/tmp_5/toto.txt_123_0000
"""

import logging
import os
import re
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .core.history import ResourceLimitError
from .core.jffs2_parser import Jffs2Parser
from .utils import clean_name, compute_snapshot_hash

_EXPORT_DIR_RE = re.compile(r'^ino_(\d+)_')
_SNAPSHOT_RE = re.compile(r'^\d+$')


class SnapshotExporter:
    """Dumps file histories of a parsed image into an output directory"""

    def __init__(self, parser: Jffs2Parser, output_dir: str, hash_algorithm: str = 'sha256'):
        """
        Args:
            parser: Parser over the image to export
            output_dir: Directory receiving the ino_* directories
            hash_algorithm: Hash logged for every snapshot
        """
        self.parser = parser
        self.output_dir = Path(output_dir)
        self.hash_algorithm = hash_algorithm
        self.logger = logging.getLogger(__name__)

    def inode_dirname(self, ino: int) -> str:
        names = [clean_name(name) for name in self.parser.names_for_inode(ino, raw=True)]
        return f"ino_{ino}_{'_'.join(names)}"

    def export_inode(self, ino: int) -> Dict[str, Any]:
        """
        Write every snapshot of an inode plus its log.

        Returns:
            Export summary for the inode

        Raises:
            ResourceLimitError: If the inode cannot be reconstructed within limits
        """
        history = self.parser.file_history(ino)
        inode_dir = self.output_dir / self.inode_dirname(ino)
        inode_dir.mkdir(parents=True, exist_ok=True)

        snapshot_paths = []
        with open(inode_dir / 'log', 'a') as log:
            for node in self.parser.dentry_history(ino):
                log.write(f"{node!r}\n")
            for node in self.parser.inode_history(ino):
                log.write(f"{node!r}\n")
            for diagnostic in history.diagnostics:
                log.write(f"{diagnostic.kind}: {diagnostic.message}\n")

            for snapshot in history.snapshots:
                curname = f"{snapshot.serial:04d}"
                digest = compute_snapshot_hash(snapshot.data, self.hash_algorithm)
                log.write(f"dumping {curname} ({snapshot.size} bytes, "
                          f"{self.hash_algorithm} {digest})\n")
                path = inode_dir / curname
                path.write_bytes(snapshot.data)
                snapshot_paths.append(str(path))

        self.logger.info(f"Exported inode {ino}: {len(snapshot_paths)} snapshot(s) to {inode_dir}")
        return {
            'inode': ino,
            'names': history.names,
            'directory': str(inode_dir),
            'snapshots': snapshot_paths,
            'diagnostics': len(history.diagnostics),
            'status': 'exported',
        }

    def export_all(self, inodes: Optional[List[int]] = None) -> List[Dict[str, Any]]:
        """
        Export several inodes, every indexed inode by default.

        An inode that exceeds the resource limit is reported and skipped.
        """
        results = []
        for ino in (inodes if inodes is not None else self.parser.inode_numbers()):
            try:
                results.append(self.export_inode(ino))
            except ResourceLimitError as e:
                self.logger.error(f"Skipping inode {ino}: {e}")
                results.append({'inode': ino, 'status': 'failed', 'error': str(e)})
        return results

    def find_exported_snapshots(self) -> Dict[int, List[Tuple[Path, int]]]:
        """Snapshots of a previous export, inode -> [(path, serial)]"""
        found: Dict[int, List[Tuple[Path, int]]] = {}
        if not self.output_dir.is_dir():
            return found

        for inode_dir in sorted(self.output_dir.glob('ino_*')):
            match = _EXPORT_DIR_RE.match(inode_dir.name)
            if not match or not inode_dir.is_dir():
                continue
            ino = int(match.group(1))
            for entry in sorted(inode_dir.iterdir()):
                if entry.name == 'log':
                    continue
                if not _SNAPSHOT_RE.match(entry.name):
                    self.logger.warning(f"Unknown entry {inode_dir.name}/{entry.name}")
                    continue
                found.setdefault(ino, []).append((entry, int(entry.name)))
        return found

    def rebuild_tree(self) -> int:
        """
        Link exported snapshots into the reconstructed hierarchy.

        Directories become <name>_<inode>/, files <name>_<inode>_<serial>.

        Returns:
            Number of snapshot files linked

        Raises:
            FileNotFoundError: If nothing was exported yet
        """
        exported = self.find_exported_snapshots()
        if not exported:
            raise FileNotFoundError(f"No exported snapshots in {self.output_dir}, run extract beforehand")

        linked = 0
        # (inode, directory to create it in, parent inode or None for roots, ancestors)
        stack = [(root, self.output_dir, None, frozenset())
                 for root in reversed(self.parser.list_root_inodes())]

        while stack:
            ino, curpath, pino, ancestors = stack.pop()
            name = self.parser.last_name(ino, pino, raw=True) if pino is not None else None
            name = clean_name(name) if name else 'root'

            if not self.parser.index.is_directory(ino):
                for path, serial in exported.get(ino, []):
                    linked += self._link(path, curpath / f"{name}_{ino}_{serial:04d}")
                continue

            subdir = curpath / f"{name}_{ino}"
            subdir.mkdir(parents=True, exist_ok=True)
            self.logger.debug(f"Rebuilt directory {subdir}")

            children = []
            for node in self.parser.dentry_history(ino):
                if node.ino != 0 and node.ino not in children and node.ino not in ancestors | {ino}:
                    children.append(node.ino)
            for child in reversed(children):
                stack.append((child, subdir, ino, ancestors | {ino}))

        self.logger.info(f"Linked {linked} snapshot(s) under {self.output_dir}")
        return linked

    def _link(self, source: Path, target: Path) -> int:
        if target.exists():
            return 0
        try:
            os.link(source, target)
        except OSError:
            # hard links refused (e.g. across devices): fall back to a copy
            shutil.copy2(source, target)
        return 1
