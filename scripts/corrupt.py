from __future__ import annotations

import argparse
import os
import random
import sys
from typing import Optional

from stfs.constants import BLOCK_SIZE, BLOCK_TERMINATOR, HASH_RECORD_NEXT
from stfs.container import Container
from stfs.errors import StfsError
from stfs.table import entry_path, find_entry
from stfs.translate import block_to_chain_record_offset, block_to_data_offset


def _flip_byte(path: str, offset: int, xor_val: int = 0xFF) -> None:
    if offset < 0:
        raise ValueError("Offset must be non-negative")
    with open(path, "r+b") as f:
        f.seek(offset)
        b = f.read(1)
        if not b:
            raise ValueError("Offset beyond end of file")
        f.seek(offset)
        f.write(bytes([b[0] ^ (xor_val & 0xFF)]))
        f.flush()
        os.fsync(f.fileno())


def _write_next(path: str, offset: int, value: int) -> None:
    with open(path, "r+b") as f:
        f.seek(offset)
        f.write(bytes([(value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF]))
        f.flush()
        os.fsync(f.fileno())


def cmd_by_offset(args: argparse.Namespace) -> None:
    _flip_byte(args.package, args.offset, xor_val=args.xor)
    print(f"Flipped 1 byte at offset {args.offset}")


def cmd_block(args: argparse.Namespace) -> None:
    if args.within < 0 or args.within >= BLOCK_SIZE:
        raise ValueError(f"--within must be within a block (0..{BLOCK_SIZE - 1})")
    with Container.open(args.package) as pkg:
        off = block_to_data_offset(pkg, args.index) + args.within
        if off >= len(pkg):
            raise ValueError(f"Block {args.index} lies past the end of the package")
    _flip_byte(args.package, off, xor_val=args.xor)
    print(f"Flipped 1 byte in block {args.index} at package offset {off}")


def cmd_file(args: argparse.Namespace) -> None:
    with Container.open(args.package) as pkg:
        entries = pkg.file_table()
        entry = find_entry(entries, args.path)
        if entry is None:
            raise ValueError(f"No such entry: {args.path}")
        if entry.is_directory or entry.file_size == 0:
            raise ValueError(f"Entry has no data blocks: {entry_path(entries, entry)}")
        within = min(args.within, entry.file_size - 1, BLOCK_SIZE - 1)
        off = block_to_data_offset(pkg, entry.starting_block) + within
    _flip_byte(args.package, off, xor_val=args.xor)
    print(f"Flipped 1 byte in the first block of {args.path} at package offset {off}")


def cmd_break_chain(args: argparse.Namespace) -> None:
    with Container.open(args.package) as pkg:
        off = block_to_chain_record_offset(pkg, args.index) + HASH_RECORD_NEXT
        if off + 3 > len(pkg):
            raise ValueError(f"Chain record for block {args.index} lies past the end of the package")
    _write_next(args.package, off, args.next)
    print(f"Block {args.index} now links to 0x{args.next:06X}")


def cmd_random(args: argparse.Namespace) -> None:
    rng = random.Random(args.seed)
    flips = 0
    size = os.path.getsize(args.package)
    with open(args.package, "r+b") as f:
        for _ in range(args.count):
            pos = rng.randrange(0, size)
            f.seek(pos)
            b = f.read(1)
            if not b:
                continue
            f.seek(pos)
            f.write(bytes([b[0] ^ (args.xor & 0xFF)]))
            flips += 1
        f.flush()
        os.fsync(f.fileno())
    print(f"Flipped {flips} byte(s) at random offsets")


def main(argv: Optional[list[str]] = None) -> None:
    ap = argparse.ArgumentParser(prog="stfs.corrupt", description="Damage STFS packages for testing")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p_off = sub.add_parser("by-offset", help="Flip one byte at an absolute package offset")
    p_off.add_argument("package", help="Package path")
    p_off.add_argument("--offset", type=lambda x: int(x, 0), required=True, help="Absolute byte offset in package")
    p_off.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_off.set_defaults(func=cmd_by_offset)

    p_block = sub.add_parser("block", help="Flip a byte inside a data block")
    p_block.add_argument("package", help="Package path")
    p_block.add_argument("--index", type=lambda x: int(x, 0), required=True, help="Block number")
    p_block.add_argument("--within", type=int, default=10, help="Byte offset within the block (default 10)")
    p_block.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_block.set_defaults(func=cmd_block)

    p_file = sub.add_parser("file", help="Flip a byte in the first block of a package file")
    p_file.add_argument("package", help="Package path")
    p_file.add_argument("path", help="Path of the file inside the package")
    p_file.add_argument("--within", type=int, default=0, help="Byte offset within the file (default 0)")
    p_file.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_file.set_defaults(func=cmd_file)

    p_chain = sub.add_parser("break-chain", help="Rewrite the next-block pointer of a block")
    p_chain.add_argument("package", help="Package path")
    p_chain.add_argument("--index", type=lambda x: int(x, 0), required=True, help="Block number")
    p_chain.add_argument(
        "--next",
        type=lambda x: int(x, 0),
        default=BLOCK_TERMINATOR,
        help="New next-block value (default: end of chain)",
    )
    p_chain.set_defaults(func=cmd_break_chain)

    p_rand = sub.add_parser("random", help="Flip N random bytes anywhere in the package")
    p_rand.add_argument("package", help="Package path")
    p_rand.add_argument("--count", type=int, default=1, help="Number of random byte flips (default 1)")
    p_rand.add_argument("--seed", type=int, default=None, help="PRNG seed for reproducibility")
    p_rand.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_rand.set_defaults(func=cmd_random)

    args = ap.parse_args(argv)
    try:
        args.func(args)
    except (StfsError, OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
