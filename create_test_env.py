import os
import shutil
import subprocess
from pathlib import Path


def create_jffs2_test_image(filename="test_jffs2.img", endianness="big", compression="zlib"):
    """Create a JFFS2 test image from a small directory tree with mkfs.jffs2."""
    print(f"Creating {filename} ({endianness} endian, {compression})...")

    # 1. Build the source tree
    source = Path("jffs2_test_root")
    if source.exists():
        shutil.rmtree(source)
    (source / "etc").mkdir(parents=True)
    (source / "var" / "log").mkdir(parents=True)

    print("Creating files...")
    (source / "etc" / "hostname").write_text("router\n")
    (source / "etc" / "passwd").write_text("root:x:0:0:root:/root:/bin/sh\n")
    (source / "var" / "log" / "messages").write_text("boot ok\n" * 2000)
    (source / "empty").write_bytes(b"")
    os.symlink("etc/hostname", source / "hostname.link")

    # 2. Build the image (mtd-utils)
    command = [
        "mkfs.jffs2",
        "--root", str(source),
        "--output", filename,
        "--eraseblock=0x10000",
        "--pad",
        "--big-endian" if endianness == "big" else "--little-endian",
    ]
    if compression == "none":
        command.append("--disable-compressor=zlib")
    try:
        subprocess.run(command, check=True)
    finally:
        shutil.rmtree(source)

    print(f"\nDone! Created {filename}.")
    print(f"You can now inspect {os.path.abspath(filename)} with: jffs2recover tree {filename}")


if __name__ == "__main__":
    if shutil.which("mkfs.jffs2") is None:
        print("Note: mkfs.jffs2 not found, install mtd-utils first.")
    else:
        create_jffs2_test_image()
        create_jffs2_test_image("test_jffs2_le.img", endianness="little")
