import sys
import os
import logging
from collections import Counter

# Add src to path to import local modules
sys.path.insert(0, os.path.join(os.getcwd(), 'src'))

from jffs2recover.core.scanner import NodeScanner
from jffs2recover.core.structures import JFFS2_TYPE_MASK


def debug_scan(image_path, endianness='big', verify_crc=False):
    print(f"--- Debugging JFFS2 Scan on {image_path} ({endianness} endian, crc {'on' if verify_crc else 'off'}) ---")

    # Enable verbose logging to stdout
    logging.basicConfig(level=logging.DEBUG, format='%(message)s')

    try:
        with open(image_path, 'rb') as f:
            raw = f.read()
        print(f"Image size: {len(raw) / (1024*1024):.2f} MB")

        result = NodeScanner(endianness, verify_crc).scan(raw)

        print(f"\n--- Results ---")
        print(f"Nodes found: {len(result.nodes)}")
        print(f"Erased bytes skipped: {result.erased_bytes}")
        types = Counter(node.type & JFFS2_TYPE_MASK for node in result.nodes)
        for node_type, count in sorted(types.items()):
            print(f"  type 0x{node_type:03X}: {count}")

        print(f"Diagnostics: {len(result.diagnostics)}")
        for diagnostic in result.diagnostics[:50]:
            print(f"  0x{diagnostic.offset:08X} {diagnostic.kind}: {diagnostic.message}")

    except Exception as e:
        print(f"ERROR: {e}")
        import traceback
        traceback.print_exc()


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python3 debug_scan.py <image_path> [big|little] [--crc]")
    else:
        endian = sys.argv[2] if len(sys.argv) > 2 and sys.argv[2] in ('big', 'little') else 'big'
        debug_scan(sys.argv[1], endian, '--crc' in sys.argv)
