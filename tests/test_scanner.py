import struct

import pytest

from conftest import NODETYPE_DIRENT, NODETYPE_INODE, dirent_node, inode_node
from jffs2recover.core.scanner import NodeScanner, jffs2_crc32


def garbage(length):
    # never 0xFF, never the 0x19 0x85 magic
    return bytes((i * 7 + 3) % 251 for i in range(length))


def test_single_node():
    node = inode_node(2, 1, b'hello')
    result = NodeScanner().scan(node)

    assert len(result.nodes) == 1
    assert result.diagnostics == []
    raw = result.nodes[0]
    assert raw.offset == 0
    assert raw.type == NODETYPE_INODE
    assert raw.length == 12 + 56 + 5
    assert raw.payload.endswith(b'hello')


def test_nodes_are_32bit_aligned():
    first = dirent_node(1, 1, 2, b'hello')      # 45 bytes on flash, 3 bytes of padding
    second = inode_node(2, 1, b'x')
    result = NodeScanner().scan(first + second)

    assert [n.offset for n in result.nodes] == [0, 48]
    assert result.nodes[0].length == 45
    assert result.nodes[0].pad == b'\x00\x00\x00'
    assert result.nodes[1].type == NODETYPE_INODE


def test_all_erased_image():
    result = NodeScanner().scan(b'\xff' * 3000)

    assert result.nodes == []
    assert result.diagnostics == []
    assert result.erased_bytes == 3000


def test_erased_space_between_nodes():
    first = inode_node(2, 1, b'hello')
    second = dirent_node(1, 1, 2, b'a.txt')
    image = first + b'\xff' * (512 - len(first)) + second
    result = NodeScanner().scan(image)

    assert [n.offset for n in result.nodes] == [0, 512]
    assert result.diagnostics == []
    assert result.erased_bytes == 512 - len(first)


def test_erased_tail_shorter_than_header():
    node = inode_node(2, 1, b'data')
    result = NodeScanner().scan(node + b'\xff\xff')

    assert len(result.nodes) == 1
    assert result.diagnostics == []


@pytest.mark.parametrize('junk_length', [1, 37, 1023, 1024, 1025, 1500, 3000])
def test_resync_after_corruption(junk_length):
    first = inode_node(2, 1, b'hello')
    second = inode_node(2, 2, b'world')
    image = first + garbage(junk_length) + second
    result = NodeScanner().scan(image)

    assert [n.offset for n in result.nodes] == [0, len(first) + junk_length]
    assert result.nodes[1].payload.endswith(b'world')
    assert result.diagnostics
    assert result.diagnostics[0].kind == 'bad_signature'
    assert result.diagnostics[0].offset == len(first)


def test_corruption_without_any_later_magic():
    node = inode_node(2, 1, b'hello')
    result = NodeScanner().scan(node + garbage(2000))

    assert len(result.nodes) == 1
    assert len(result.diagnostics) >= 1
    assert all(d.kind == 'bad_signature' for d in result.diagnostics)


def test_partial_header_at_end_of_image():
    node = inode_node(2, 1, b'hello')
    result = NodeScanner().scan(node + b'\x19\x85\x00')

    assert len(result.nodes) == 1
    assert [d.kind for d in result.diagnostics] == ['bad_signature']
    assert result.diagnostics[0].offset == len(node)


def test_length_below_header_size_is_corruption():
    bogus = struct.pack('>BBHII', 0x19, 0x85, NODETYPE_DIRENT, 4, 0)
    good = inode_node(2, 1, b'hello')
    result = NodeScanner().scan(bogus + good)

    assert [d.kind for d in result.diagnostics] == ['bad_length']
    assert [n.offset for n in result.nodes] == [len(bogus)]


def test_truncated_last_node():
    full = inode_node(2, 1, b'x' * 40)
    image = full[:-10]
    result = NodeScanner().scan(image)

    assert len(result.nodes) == 1
    assert len(result.nodes[0].payload) == len(image) - 12
    assert [d.kind for d in result.diagnostics] == ['truncated_node']


def test_header_crc_ignored_by_default():
    first = bytearray(inode_node(2, 1, b'hello'))
    first[8:12] = b'\xde\xad\xbe\xef'
    second = inode_node(2, 2, b'world')
    result = NodeScanner().scan(bytes(first) + second)

    assert len(result.nodes) == 2
    assert result.diagnostics == []


def test_header_crc_verified_on_request():
    first = bytearray(inode_node(2, 1, b'hello'))
    first[8:12] = b'\xde\xad\xbe\xef'
    second = inode_node(2, 2, b'world')
    result = NodeScanner(verify_crc=True).scan(bytes(first) + second)

    assert [n.offset for n in result.nodes] == [len(first)]
    assert [d.kind for d in result.diagnostics] == ['bad_header_crc']


def test_valid_crcs_pass_verification(hello_world_image):
    result = NodeScanner(verify_crc=True).scan(hello_world_image)

    assert len(result.nodes) == 3
    assert result.diagnostics == []


def test_little_endian_image():
    image = dirent_node(1, 1, 2, b'a.txt', endian='little') + inode_node(2, 1, b'hi', endian='little')
    result = NodeScanner('little').scan(image)

    assert [n.type for n in result.nodes] == [NODETYPE_DIRENT, NODETYPE_INODE]
    assert result.diagnostics == []


def test_invalid_endianness():
    with pytest.raises(ValueError):
        NodeScanner('middle')


def test_progress_callback_reports_completion(hello_world_image):
    calls = []
    NodeScanner(progress_callback=lambda cur, total, msg: calls.append((cur, total))).scan(hello_world_image)

    assert calls[-1] == (len(hello_world_image), len(hello_world_image))


def test_jffs2_crc32():
    assert jffs2_crc32(b'') == 0
    header = struct.pack('>BBHI', 0x19, 0x85, NODETYPE_INODE, 73)
    assert jffs2_crc32(header) == jffs2_crc32(bytearray(header))
    assert jffs2_crc32(header) != jffs2_crc32(header[:-1] + b'\x00')
