import hashlib

import pytest

from jffs2recover.core.structures import ChildEntry, TimelineEvent, TreeEntry
from jffs2recover.utils import ReportFormatter, clean_name, compute_snapshot_hash, format_bytes


@pytest.mark.parametrize('name, expected', [
    ('passwd', 'passwd'),
    ('a-b_c.txt', 'a-b_c.txt'),
    ('my file', 'my20file'),
    (b'../etc', '..2fetc'),
    (b'\xff\x00', 'ff00'),
    ('café', 'cafc3a9'),
])
def test_clean_name(name, expected):
    assert clean_name(name) == expected


def test_snapshot_hash():
    assert compute_snapshot_hash(b'abc') == hashlib.sha256(b'abc').hexdigest()
    assert compute_snapshot_hash(b'abc', 'md5') == hashlib.md5(b'abc').hexdigest()
    with pytest.raises(ValueError):
        compute_snapshot_hash(b'abc', 'crc32')


def test_format_bytes():
    assert format_bytes(0) == '0.0 B'
    assert format_bytes(1536) == '1.5 KB'
    assert format_bytes(3 * 1024 * 1024) == '3.0 MB'


def test_timeline_csv_quotes_names():
    events = [
        TimelineEvent(10, 'rename', 2, 'a,b.txt', 1),
        TimelineEvent(20, 'write', 2, '', 0),
    ]

    assert ReportFormatter.timeline_csv(events).splitlines() == [
        'time,action,inode,name,parent_inode',
        '10,rename,2,"a,b.txt",1',
        '20,write,2,,0',
    ]


def test_tree_lines():
    entries = [
        TreeEntry(0, 1, ('bin',), ChildEntry(b'bin', True, [3], 3)),
        TreeEntry(1, 3, ('bin', 'sh'), ChildEntry(b'sh', False, [4, 0, 6], 6)),
    ]

    assert ReportFormatter.tree_lines(entries) == ['bin/  3', '    sh  4 0 6']
    assert ReportFormatter.tree_lines(entries, indent='\t')[1] == '\tsh  4 0 6'
