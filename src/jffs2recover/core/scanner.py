"""
jffs2recover - Node Scanner
Cuts the raw flash image into nodes and recovers from corrupted regions

JFFS2 has no index: the image is an append-only log of variable-length
nodes. The scanner walks it front to back, skips erased (0xFF) flash,
and resynchronises on the next node magic after any corruption.
"""

import logging
import zlib
from typing import Callable, Optional

from .structures import (
    Diagnostic,
    RawNode,
    ScanResult,
    get_layouts,
    JFFS2_ERASED_BYTE,
    JFFS2_ERASED_WINDOW,
    JFFS2_HEADER_SIZE,
    JFFS2_MAGIC_BYTES,
    JFFS2_NODE_ALIGN,
    JFFS2_RESYNC_WINDOW,
)

PROGRESS_STEP = 1024 * 1024


def jffs2_crc32(data: bytes) -> int:
    """
    CRC32 as computed by the JFFS2 kernel code.

    The kernel seeds the table-driven CRC32 with 0 and does not invert the
    result; zlib seeds with ~0 and inverts, so undo both.
    """
    return (zlib.crc32(data, 0xFFFFFFFF) ^ 0xFFFFFFFF) & 0xFFFFFFFF


class NodeScanner:
    """
    JFFS2 node scanner

    Produces the ordered list of raw nodes found in an image together with
    the diagnostics of every resynchronisation.
    """

    def __init__(self, endianness: str = 'big', verify_crc: bool = False,
                 progress_callback: Optional[Callable[[int, int, str], None]] = None):
        """
        Initialize the scanner.

        Args:
            endianness: Byte order of the image ('big' or 'little')
            verify_crc: Check the header CRC32 instead of accepting every header
            progress_callback: Optional callback(current, total, message)
        """
        self.layouts = get_layouts(endianness)
        self.verify_crc = verify_crc
        self.progress_callback = progress_callback
        self.logger = logging.getLogger(__name__)

    def check_header_crc(self, header: bytes, crc: int) -> bool:
        """
        Header CRC hook.

        Always passes unless CRC verification was requested, in which case
        the CRC covers the 8 header bytes before the CRC field.
        """
        if not self.verify_crc:
            return True
        return jffs2_crc32(header[:JFFS2_HEADER_SIZE - 4]) == crc

    def scan(self, raw: bytes) -> ScanResult:
        """
        Scan a whole image.

        Args:
            raw: Complete flash dump

        Returns:
            ScanResult with nodes in image order and resync diagnostics
        """
        result = ScanResult()
        header_struct = self.layouts.header
        total = len(raw)
        offset = 0
        next_progress = PROGRESS_STEP

        while offset < total:
            rawhdr = raw[offset:offset + JFFS2_HEADER_SIZE]
            problem = self._check_header(rawhdr)

            if problem is None:
                _, _, node_type, length, hdr_crc = header_struct.unpack(rawhdr)
                end = offset + length
                if end > total:
                    result.diagnostics.append(Diagnostic(
                        kind='truncated_node',
                        message=f"node at 0x{offset:X} claims {length} bytes, "
                                f"only {total - offset} left in image",
                        offset=offset))
                    self.logger.warning(f"jffs2: truncated node at 0x{offset:X} (length {length})")

                node = RawNode(
                    offset=offset,
                    type=node_type,
                    length=length,
                    hdr_crc=hdr_crc,
                    payload=raw[offset + JFFS2_HEADER_SIZE:end],
                )
                offset = end
                if offset % JFFS2_NODE_ALIGN:
                    # keep headers 32-bit aligned
                    padlen = JFFS2_NODE_ALIGN - (offset % JFFS2_NODE_ALIGN)
                    node.pad = raw[offset:offset + padlen]
                    offset += padlen
                result.nodes.append(node)

            else:
                window_len = JFFS2_ERASED_WINDOW - (offset % JFFS2_ERASED_WINDOW)
                window = raw[offset:offset + window_len]
                if window.count(JFFS2_ERASED_BYTE) == len(window):
                    # erased flash
                    self.logger.debug(f"jffs2: erased space at 0x{offset:X} ({len(window)} bytes)")
                    result.erased_bytes += len(window)
                    offset += window_len
                else:
                    offset = self._resync(raw, offset, rawhdr, problem, result)

            if self.progress_callback and offset >= next_progress:
                self.progress_callback(min(offset, total), total, "Scanning nodes...")
                next_progress = offset + PROGRESS_STEP

        if self.progress_callback:
            self.progress_callback(total, total, "Scan complete")

        self.logger.info(
            f"Scan complete. Found {len(result.nodes)} nodes, "
            f"{len(result.diagnostics)} diagnostics, {result.erased_bytes} erased bytes skipped")
        return result

    def _check_header(self, rawhdr: bytes) -> Optional[str]:
        """Return None for a usable header, else the kind of problem"""
        if len(rawhdr) < JFFS2_HEADER_SIZE or rawhdr[:2] != JFFS2_MAGIC_BYTES:
            return 'bad_signature'

        _, _, _, length, hdr_crc = self.layouts.header.unpack(rawhdr)
        if length < JFFS2_HEADER_SIZE:
            return 'bad_length'
        if not self.check_header_crc(rawhdr, hdr_crc):
            return 'bad_header_crc'
        return None

    def _resync(self, raw: bytes, offset: int, rawhdr: bytes, problem: str,
                result: ScanResult) -> int:
        """Record the corruption and return the offset of the next candidate header"""
        message = f"bad node {problem.replace('_', ' ')} at 0x{offset:X} {rawhdr.hex()}"
        self.logger.warning(f"jffs2: {message}")
        result.diagnostics.append(Diagnostic(kind=problem, message=message, offset=offset))

        # the header at offset itself is already rejected; a magic may start
        # on the last byte of the window
        idx = raw.find(JFFS2_MAGIC_BYTES, offset + 1, offset + JFFS2_RESYNC_WINDOW + 1)
        if idx != -1:
            return idx
        return offset + JFFS2_RESYNC_WINDOW
