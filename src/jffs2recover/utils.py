"""
jffs2recover Utility Functions
Includes name sanitising, hashing and text formatting helpers
"""

import csv
import hashlib
import re
from io import StringIO
from typing import Iterable, List, Union

from .core.structures import TimelineEvent, TreeEntry

_UNSAFE_NAME_CHARS = re.compile(rb'[^a-zA-Z0-9_.-]')


class NameSanitizer:
    """Turn on-flash names into names that are safe on any host filesystem"""

    @staticmethod
    def clean_name(name: Union[str, bytes]) -> str:
        """
        Hex-encode every byte outside [a-zA-Z0-9_.-]

        Args:
            name: Name as stored on flash (bytes) or its text view

        Returns:
            Sanitised name, e.g. "my file" -> "my20file"
        """
        if isinstance(name, str):
            name = name.encode('utf-8', errors='surrogateescape')
        return _UNSAFE_NAME_CHARS.sub(lambda m: m.group(0).hex().encode(), name).decode('ascii')


class SnapshotHasher:
    """Compute cryptographic hashes of reconstructed snapshots"""

    ALGORITHMS = ('md5', 'sha1', 'sha256')

    @staticmethod
    def compute_hash(data: bytes, algorithm: str = 'sha256') -> str:
        """
        Hash a byte buffer

        Args:
            data: Snapshot contents
            algorithm: Hash algorithm ('md5', 'sha1', 'sha256')

        Returns:
            Hex string of hash
        """
        if algorithm not in SnapshotHasher.ALGORITHMS:
            raise ValueError(f"Unsupported algorithm: {algorithm}")
        return hashlib.new(algorithm, data).hexdigest()


class ReportFormatter:
    """Plain-text renderings of the reconstruction results"""

    TIMELINE_HEADER = ['time', 'action', 'inode', 'name', 'parent_inode']

    @staticmethod
    def timeline_csv(events: Iterable[TimelineEvent]) -> str:
        """Timeline as CSV with a header row"""
        output = StringIO()
        writer = csv.writer(output, lineterminator='\n')
        writer.writerow(ReportFormatter.TIMELINE_HEADER)
        for event in events:
            writer.writerow([event.timestamp, event.action, event.inode, event.name, event.parent_inode])
        return output.getvalue()

    @staticmethod
    def tree_lines(entries: Iterable[TreeEntry], indent: str = '    ') -> List[str]:
        """
        Indented listing: each name (directories end with '/') followed by
        the inode numbers it pointed to through time
        """
        lines = []
        for item in entries:
            name = item.entry.name_str + ('/' if item.entry.is_dir else '')
            inodes = ' '.join(str(ino) for ino in item.entry.inodes)
            lines.append(f"{indent * item.depth}{name}  {inodes}")
        return lines

    @staticmethod
    def format_size(bytes_size: int) -> str:
        """
        Format byte size to human-readable format

        Args:
            bytes_size: Size in bytes

        Returns:
            Formatted string (e.g., "1.5 MB")
        """
        size = float(bytes_size)
        for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
            if size < 1024.0:
                return f"{size:.1f} {unit}"
            size /= 1024.0
        return f"{size:.1f} PB"


# Convenience functions
def clean_name(name: Union[str, bytes]) -> str:
    """Sanitise a name for use on the host filesystem"""
    return NameSanitizer.clean_name(name)


def compute_snapshot_hash(data: bytes, algorithm: str = 'sha256') -> str:
    """Hash snapshot contents"""
    return SnapshotHasher.compute_hash(data, algorithm)


def format_bytes(size: int) -> str:
    """Format byte size to human-readable string"""
    return ReportFormatter.format_size(size)
