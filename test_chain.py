from __future__ import annotations

import hashlib
import unittest

from stfs.chain import read_chain_record, walk_chain
from stfs.constants import BLOCK_TERMINATOR
from stfs.container import Container
from stfs.errors import BoundsError, MalformedContainerError
from stfs_fixture import PackageBuilder


def _chained(links, *, shift: int = 0) -> Container:
    b = PackageBuilder(shift=shift)
    for block, nxt in links.items():
        b.link(block, nxt)
    return Container.from_bytes(b.build())


class WalkChainTests(unittest.TestCase):
    def test_follows_pointers_in_order(self):
        pkg = _chained({5: 2, 2: 9, 9: BLOCK_TERMINATOR})
        self.assertEqual([5, 2, 9], walk_chain(pkg, 5, 3))

    def test_single_block_ignores_record(self):
        pkg = _chained({7: 8, 8: 9})
        self.assertEqual([7], walk_chain(pkg, 7, 1))

    def test_expected_count_bounds_length(self):
        pkg = _chained({1: 2, 2: 3, 3: 4, 4: 5, 5: BLOCK_TERMINATOR})
        self.assertEqual([1, 2, 3], walk_chain(pkg, 1, 3))

    def test_terminator_stops_early(self):
        pkg = _chained({1: 2, 2: BLOCK_TERMINATOR})
        blocks = walk_chain(pkg, 1, 10)
        self.assertEqual([1, 2], blocks)
        self.assertNotIn(BLOCK_TERMINATOR, blocks)

    def test_self_reference_stops_early(self):
        pkg = _chained({1: 2, 2: 2})
        self.assertEqual([1, 2], walk_chain(pkg, 1, 10))

    def test_zero_count_is_empty(self):
        pkg = _chained({1: 2})
        self.assertEqual([], walk_chain(pkg, 1, 0))

    def test_terminator_start_is_empty(self):
        pkg = _chained({})
        self.assertEqual([], walk_chain(pkg, BLOCK_TERMINATOR, 4))

    def test_loop_back_is_malformed(self):
        pkg = _chained({1: 2, 2: 3, 3: 1})
        with self.assertRaises(MalformedContainerError) as cm:
            walk_chain(pkg, 1, 10)
        self.assertEqual(1, cm.exception.actual)

    def test_pointer_outside_package_is_bounds_error(self):
        pkg = _chained({1: 0x5000, 2: BLOCK_TERMINATOR})
        blocks = walk_chain(pkg, 1, 2)
        self.assertEqual([1, 0x5000], blocks)
        with self.assertRaises(BoundsError):
            walk_chain(pkg, 1, 3)

    def test_crosses_table_boundary(self):
        for shift in (0, 1):
            pkg = _chained({0xA8: 0xA9, 0xA9: 0xAA, 0xAA: 0xAB, 0xAB: BLOCK_TERMINATOR}, shift=shift)
            self.assertEqual([0xA8, 0xA9, 0xAA, 0xAB], walk_chain(pkg, 0xA8, 8))

    def test_never_exceeds_expected_count(self):
        links = {i: i + 1 for i in range(1, 40)}
        pkg = _chained(links)
        for n in range(0, 12):
            blocks = walk_chain(pkg, 1, n)
            self.assertEqual(n, len(blocks))
            self.assertNotIn(BLOCK_TERMINATOR, blocks)


class ChainRecordTests(unittest.TestCase):
    def test_record_fields(self):
        b = PackageBuilder()
        b.add_file("f", b"\x11" * 5000)
        pkg = Container.from_bytes(b.build())
        first = read_chain_record(pkg, 1)
        self.assertEqual(1, first.block)
        self.assertEqual(2, first.next_block)
        self.assertEqual(0x80, first.status)
        self.assertEqual(hashlib.sha1(b"\x11" * 4096).digest(), first.sha1)
        last = read_chain_record(pkg, 2)
        self.assertEqual(BLOCK_TERMINATOR, last.next_block)
        self.assertEqual(0x80, last.status)


if __name__ == "__main__":
    unittest.main()
