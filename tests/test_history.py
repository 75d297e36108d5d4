import zlib

import pytest

from conftest import decoded_inode
from jffs2recover.core.history import FileHistoryBuilder, ResourceLimitError, ranges_overlap
from jffs2recover.core.structures import JFFS2_COMPR_ZLIB


def replay(*nodes, **kwargs):
    return FileHistoryBuilder(**kwargs).reconstruct(2, nodes)


def contents(history):
    return [snapshot.data for snapshot in history.snapshots]


@pytest.mark.parametrize('a, b, expected', [
    ((0, 5), (0, 5), True),
    ((0, 5), (4, 2), True),
    ((2, 1), (0, 10), True),
    ((0, 5), (5, 5), False),            # touching
    ((5, 5), (0, 5), False),
    ((0, 0), (0, 5), True),             # empty write at a written byte
    ((3, 0), (0, 5), True),
    ((5, 0), (0, 5), False),            # empty write at the end
    ((0, 0), (0, 0), False),
    ((-1, 0), (0, 5), False),
])
def test_ranges_overlap(a, b, expected):
    assert ranges_overlap(a, b) is expected
    assert ranges_overlap(b, a) is expected


def test_overwrite_creates_new_snapshot():
    history = replay(decoded_inode(2, 1, b'hello'), decoded_inode(2, 2, b'world'))

    assert contents(history) == [b'hello', b'world']
    assert [s.serial for s in history.snapshots] == [0, 1]
    assert [s.version for s in history.snapshots] == [1, 2]


def test_appends_merge_into_one_snapshot():
    history = replay(
        decoded_inode(2, 1, b'hello'),
        decoded_inode(2, 2, b' world', foff=5),
        decoded_inode(2, 3, b'!', foff=11),
    )

    assert contents(history) == [b'hello world!']


def test_hole_reads_as_zeros():
    history = replay(
        decoded_inode(2, 1, b'abc'),
        decoded_inode(2, 2, b'xyz', foff=6),
    )

    assert contents(history) == [b'abc\x00\x00\x00xyz']


def test_writing_into_a_hole_is_an_overwrite():
    history = replay(
        decoded_inode(2, 1, b'abc'),
        decoded_inode(2, 2, b'xyz', foff=6),
        decoded_inode(2, 3, b'HH', foff=3, isize=9),
    )

    assert contents(history) == [b'abc\x00\x00\x00xyz', b'abcHH\x00xyz']


def test_truncation_snapshots_before_cutting():
    history = replay(
        decoded_inode(2, 1, b'hello world'),
        decoded_inode(2, 2, b'HELLO', isize=5),
        decoded_inode(2, 3, b'!', foff=5),
    )

    assert contents(history) == [b'hello world', b'HELLO world', b'HELLO!']


def test_truncated_state_alone_is_not_a_snapshot():
    history = replay(
        decoded_inode(2, 1, b'hello world'),
        decoded_inode(2, 2, b'', foff=11, isize=5),
    )

    assert contents(history) == [b'hello world']


def test_truncation_then_rewrite():
    history = replay(
        decoded_inode(2, 1, b'hello world'),
        decoded_inode(2, 2, b'', foff=11, isize=0),
        decoded_inode(2, 3, b'bye'),
    )

    assert contents(history) == [b'hello world', b'bye']


@pytest.mark.parametrize('foff', [0, 3])
def test_metadata_node_inside_unsaved_data_flushes(foff):
    history = replay(
        decoded_inode(2, 1, b'hello'),
        decoded_inode(2, 2, b'', foff=foff, isize=5),
        decoded_inode(2, 3, b' world', foff=5),
    )

    assert contents(history) == [b'hello', b'hello world']


def test_metadata_node_at_end_of_file_does_not_flush():
    history = replay(
        decoded_inode(2, 1, b'hello'),
        decoded_inode(2, 2, b'', foff=5, isize=5),
        decoded_inode(2, 3, b' world', foff=5),
    )

    assert contents(history) == [b'hello world']


def test_file_without_nodes_is_empty():
    history = FileHistoryBuilder().reconstruct(9, [])

    assert contents(history) == [b'']
    assert history.inode == 9


def test_metadata_only_nodes():
    history = replay(decoded_inode(2, 1), decoded_inode(2, 2, atime=99))

    assert contents(history) == [b'']
    assert history.snapshots[0].version == 2


def test_compressed_writes():
    first = b'first revision ' * 30
    second = b'SECOND'
    history = replay(
        decoded_inode(2, 1, zlib.compress(first), dsize=len(first), compr=JFFS2_COMPR_ZLIB),
        decoded_inode(2, 2, zlib.compress(second), dsize=len(second), isize=len(first),
                      compr=JFFS2_COMPR_ZLIB),
    )

    assert contents(history) == [first, second + first[len(second):]]
    assert history.diagnostics == []


def test_unsupported_compression_degrades():
    history = replay(decoded_inode(2, 1, b'\x00\x01\x02', compr=0x07))

    assert contents(history) == [b'\x00\x01\x02']
    assert [d.kind for d in history.diagnostics] == ['unsupported_compression']


def test_offset_beyond_limit():
    with pytest.raises(ResourceLimitError):
        replay(decoded_inode(2, 1, b'x', foff=100), max_file_size=16)


def test_huge_offset_does_not_allocate():
    with pytest.raises(ResourceLimitError):
        replay(decoded_inode(2, 1, b'x', foff=0xFFFFFFF0))


def test_limit_is_inclusive():
    history = replay(decoded_inode(2, 1, b'x' * 16), max_file_size=16)

    assert contents(history) == [b'x' * 16]


def test_names_are_carried():
    history = FileHistoryBuilder().reconstruct(2, [], ['a.txt', 'b.txt'])

    assert history.names == ['a.txt', 'b.txt']
