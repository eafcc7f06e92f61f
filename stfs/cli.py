from __future__ import annotations

import os
import sys
import time
import argparse
import logging
import json as _json

from typing import List, Optional

from stfs.container import Container
from stfs.errors import StfsError, MalformedContainerError
from stfs.extract import extract_entry
from stfs.header import (
    RESIGN_MAGICS,
    read_header,
    package_thumbnail,
    title_thumbnail,
    resign,
    set_content_type,
    set_title_id,
)
from stfs.table import clean_path, entry_path
from stfs.verify import verify_package


def _safe_utime(path: str, atime: Optional[float], mtime: Optional[float]) -> None:
    """Best-effort utime that never raises.

    Args:
        path: Destination filesystem path to update.
        atime: Access time (seconds since epoch). If None, mtime is reused.
        mtime: Modification time (seconds since epoch). If None, no change is made.
    """
    if mtime is None:
        return
    if atime is None:
        atime = mtime
    try:
        os.utime(path, (atime, mtime))
    except OSError as exc:
        print(f"Warning: failed to set timestamps on {path}: {exc}", file=sys.stderr)


def _timestamp(dt) -> Optional[float]:
    if dt is None:
        return None
    try:
        return dt.timestamp()
    except (OverflowError, OSError, ValueError):
        return None


def _parse_int(value: str) -> int:
    try:
        return int(value, 0)
    except ValueError:
        return int(value, 16)


def _check_u32(value: int, what: str) -> int:
    if not 0 <= value <= 0xFFFFFFFF:
        raise ValueError(f"{what} must be in 0..0xFFFFFFFF, got {value}")
    return value


def _next_nonconflicting_path(path: str) -> str:
    if not os.path.lexists(path):
        return path
    base_dir = os.path.dirname(path)
    root, ext = os.path.splitext(os.path.basename(path))
    i = 1
    while True:
        candidate = os.path.join(base_dir, f"{root} ({i}){ext}")
        if not os.path.lexists(candidate):
            return candidate
        i += 1


def _write_output(pkg: Container, source: str, output: Optional[str]) -> str:
    target = output or source
    pkg.save(target)
    return target


def cmd_info(package: str, *, as_json: bool = False) -> bool:
    """Show package header information and entry counts.

    Args:
        package: Path to an STFS package.
        as_json: Print a JSON object instead of text.
    """
    with Container.open(package) as pkg:
        hdr = read_header(pkg)
        entries = pkg.file_table()
        n_dirs = sum(1 for e in entries if e.is_directory)
        n_files = len(entries) - n_dirs
        if as_json:
            print(
                _json.dumps(
                    {
                        "package": package,
                        "type": hdr.package_type,
                        "content_type": hdr.content_type,
                        "content_type_name": hdr.content_type_name,
                        "title_id": f"{hdr.title_id:08X}",
                        "content_id": hdr.content_id,
                        "display_name": hdr.display_name,
                        "description": hdr.description,
                        "publisher": hdr.publisher,
                        "title_name": hdr.title_name,
                        "table_size_shift": hdr.table_size_shift,
                        "allocated_blocks": hdr.allocated_blocks,
                        "files": n_files,
                        "directories": n_dirs,
                    }
                )
            )
            return True
        print(f"Package: {package}")
        print(f"  Type: {hdr.package_type}")
        print(f"  Content type: {hdr.content_type_name} (0x{hdr.content_type:X})")
        print(f"  Title ID: {hdr.title_id:08X}")
        print(f"  Content ID: {hdr.content_id}")
        if hdr.display_name:
            print(f"  Name: {hdr.display_name}")
        if hdr.title_name:
            print(f"  Title: {hdr.title_name}")
        if hdr.publisher:
            print(f"  Publisher: {hdr.publisher}")
        if hdr.description:
            print(f"  Description: {hdr.description}")
        print(f"  Table size shift: {hdr.table_size_shift}")
        print(f"  Blocks: {hdr.allocated_blocks} allocated, {hdr.unallocated_blocks} unallocated")
        print(f"  Entries: {len(entries)}")
        print(f"    Files: {n_files}")
        print(f"    Directories: {n_dirs}")
    return True


def cmd_list(package: str) -> bool:
    """List package entries as `kind<TAB>size<TAB>path` lines."""
    with Container.open(package) as pkg:
        entries = pkg.file_table()
        for e in entries:
            path = entry_path(entries, e)
            if e.is_directory:
                print(f"dir\t{path}")
            else:
                print(f"file\t{e.file_size}\t{path}")
    return True


def cmd_extract(
    package: str,
    *,
    outdir: str = ".",
    paths: Optional[List[str]] = None,
    exists: str = "rename",
    allow_truncated: bool = False,
    quiet: bool = False,
) -> bool:
    """Extract files (and recreate directories) from a package.

    Args:
        package: Path to an STFS package.
        outdir: Destination directory.
        paths: Package paths to extract (files or directories); all when empty.
        exists: What to do when a destination file exists: overwrite, skip,
            rename (append ' (n)' before the extension) or fail.
        allow_truncated: Write files whose block chain ends early instead of aborting.
        quiet: Limit output to the summary line.

    Returns:
        True when every selected file was extracted in full and, with no
        paths given, every entry's path could be resolved.
    """
    with Container.open(package) as pkg:
        entries = pkg.file_table()
        selected = []
        unresolved = []
        for e in entries:
            try:
                selected.append((clean_path(entry_path(entries, e)), e))
            except (MalformedContainerError, ValueError) as exc:
                unresolved.append((e, exc))
        broken = 0 if paths else len(unresolved)
        if not paths:
            for e, exc in unresolved:
                print(f"Warning: skipping entry #{e.index} '{e.name}': {exc}", file=sys.stderr)
        else:
            wanted = [clean_path(p) for p in paths]
            selected = [
                (p, e) for p, e in selected if any(p == w or p.startswith(w + "/") for w in wanted)
            ]

        t0 = time.time()
        total_files = sum(1 for _, e in selected if not e.is_directory)
        processed_files = 0
        processed_bytes = 0
        created_dirs = 0
        skipped = 0
        renamed = 0
        truncated = 0
        for path, e in selected:
            dst = os.path.join(outdir or ".", path)
            if e.is_directory:
                os.makedirs(dst, exist_ok=True)
                if not quiet:
                    print(f"   creating: {path}/")
                created_dirs += 1
                continue

            os.makedirs(os.path.dirname(dst) or ".", exist_ok=True)
            actual_dst = dst
            if os.path.lexists(actual_dst):
                if exists == "overwrite":
                    if os.path.isdir(actual_dst):
                        raise RuntimeError(f"Cannot overwrite directory with file: {actual_dst}")
                elif exists == "skip":
                    if not quiet:
                        print(f"    skipping: {path} (exists)")
                    skipped += 1
                    continue
                elif exists == "rename":
                    actual_dst = _next_nonconflicting_path(actual_dst)
                else:
                    raise RuntimeError(f"Destination exists: {actual_dst}")

            processed_files += 1
            if not quiet:
                print(f" extracting: {processed_files:>4}/{total_files:<4} {path}")
            data = extract_entry(pkg, e, allow_truncated=allow_truncated)
            if len(data) < e.file_size:
                truncated += 1
                print(f"Warning: {path} truncated ({len(data)}/{e.file_size} bytes)", file=sys.stderr)
            with open(actual_dst, "wb") as wf:
                wf.write(data)
            processed_bytes += len(data)
            if actual_dst != dst:
                if not quiet:
                    print(f"       note: renamed to {actual_dst}")
                renamed += 1
            _safe_utime(actual_dst, _timestamp(e.accessed), _timestamp(e.created))
    dt = max(0.000001, time.time() - t0)
    mib = processed_bytes / (1024.0 * 1024.0)
    print(
        f"Done: extracted {processed_files}/{total_files} files ({mib:.2f} MiB) in {dt:.1f}s; "
        f"dirs={created_dirs} skipped={skipped} renamed={renamed} truncated={truncated} unresolved={broken}"
    )
    return truncated == 0 and broken == 0


def cmd_verify(package: str, *, as_json: bool = False) -> bool:
    """Check every reachable block against the SHA-1 in its chain record.

    Prints:
        "OK" when all blocks match, otherwise "FAIL" plus the offending files.
    """
    with Container.open(package) as pkg:
        report = verify_package(pkg)
    if as_json:
        print(_json.dumps(report.to_dict()))
        return report.ok
    if report.bad_table_blocks:
        print(f"  file table: bad blocks {report.bad_table_blocks}")
    for path, bad in report.bad_files.items():
        print(f"  {path}: bad blocks {bad}")
    for path, msg in report.errors.items():
        print(f"  {path}: {msg}")
    print("OK" if report.ok else "FAIL")
    return report.ok


def cmd_thumbnail(package: str, output: str, *, title: bool = False) -> bool:
    """Write the package (or title) thumbnail PNG to `output`."""
    with Container.open(package) as pkg:
        data = title_thumbnail(pkg) if title else package_thumbnail(pkg)
    if not data:
        raise RuntimeError("Package has no thumbnail")
    with open(output, "wb") as f:
        f.write(data)
    print(f"Wrote {len(data)} byte(s) to {output}")
    return True


def cmd_resign(package: str, kind: str, *, output: Optional[str] = None) -> bool:
    """Retag a package as LIVE or PIRS and blank its signature (no real signing)."""
    with Container.open(package) as pkg:
        resign(pkg, RESIGN_MAGICS[kind])
        target = _write_output(pkg, package, output)
    print(f"Re-signed as {kind.upper()}: {target}")
    return True


def cmd_set_title_id(package: str, value: int, *, output: Optional[str] = None) -> bool:
    with Container.open(package) as pkg:
        set_title_id(pkg, value)
        target = _write_output(pkg, package, output)
    print(f"Title ID set to {value:08X}: {target}")
    return True


def cmd_set_content_type(package: str, value: int, *, output: Optional[str] = None) -> bool:
    with Container.open(package) as pkg:
        set_content_type(pkg, value)
        target = _write_output(pkg, package, output)
    print(f"Content type set to 0x{value:X}: {target}")
    return True


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="stfs",
        description="Inspect and extract STFS (CON/LIVE/PIRS) packages",
    )
    ap.add_argument("-v", "--verbose", action="store_true", help="Log parse details to stderr")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_info = sub.add_parser("info", help="Show package information")
    ap_info.add_argument("package", help="Package path")
    ap_info.add_argument("--json", action="store_true", help="Emit JSON")

    ap_list = sub.add_parser("list", help="List package contents")
    ap_list.add_argument("package", help="Package path")

    ap_extract = sub.add_parser("extract", help="Extract files")
    ap_extract.add_argument("package", help="Package path")
    ap_extract.add_argument("paths", nargs="*", help="Specific package paths to extract (files or directories)")
    ap_extract.add_argument("--outdir", default=".", help="Output directory")
    ap_extract.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")
    ap_extract.add_argument(
        "--allow-truncated",
        action="store_true",
        help="Write files whose block chain ends early instead of aborting",
    )
    ap_extract.add_argument(
        "--exists",
        choices=["overwrite", "skip", "rename", "fail"],
        default="rename",
        help=(
            "What to do if a destination file exists: overwrite, skip, "
            "rename (append ' (n)' before extension), or fail. Default: rename"
        ),
    )

    ap_verify = sub.add_parser("verify", help="Check block hashes")
    ap_verify.add_argument("package", help="Package path")
    ap_verify.add_argument("--json", action="store_true", help="Emit JSON")

    ap_thumb = sub.add_parser("thumbnail", help="Write the embedded thumbnail image")
    ap_thumb.add_argument("package", help="Package path")
    ap_thumb.add_argument("output", help="Output PNG path")
    ap_thumb.add_argument("--title", action="store_true", help="Use the title thumbnail instead of the package one")

    ap_resign = sub.add_parser("resign", help="Retag as LIVE/PIRS and blank the signature")
    ap_resign.add_argument("package", help="Package path")
    ap_resign.add_argument("kind", choices=sorted(RESIGN_MAGICS), help="New package type")
    ap_resign.add_argument("--output", help="Write to this path instead of modifying the input")

    ap_tid = sub.add_parser("set-title-id", help="Change the title ID")
    ap_tid.add_argument("package", help="Package path")
    ap_tid.add_argument("value", help="Title ID (hex)")
    ap_tid.add_argument("--output", help="Write to this path instead of modifying the input")

    ap_ct = sub.add_parser("set-content-type", help="Change the content type")
    ap_ct.add_argument("package", help="Package path")
    ap_ct.add_argument("value", help="Content type (0x-prefixed hex or decimal)")
    ap_ct.add_argument("--output", help="Write to this path instead of modifying the input")

    args = ap.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        if args.cmd == "info":
            cmd_info(args.package, as_json=args.json)
        elif args.cmd == "list":
            cmd_list(args.package)
        elif args.cmd == "extract":
            ok = cmd_extract(
                args.package,
                outdir=args.outdir,
                paths=args.paths,
                exists=args.exists,
                allow_truncated=args.allow_truncated,
                quiet=args.quiet,
            )
            sys.exit(0 if ok else 1)
        elif args.cmd == "verify":
            ok = cmd_verify(args.package, as_json=args.json)
            sys.exit(0 if ok else 1)
        elif args.cmd == "thumbnail":
            cmd_thumbnail(args.package, args.output, title=args.title)
        elif args.cmd == "resign":
            cmd_resign(args.package, args.kind, output=args.output)
        elif args.cmd == "set-title-id":
            cmd_set_title_id(args.package, _check_u32(int(args.value, 16), "Title ID"), output=args.output)
        elif args.cmd == "set-content-type":
            cmd_set_content_type(args.package, _check_u32(_parse_int(args.value), "Content type"), output=args.output)
        else:
            raise RuntimeError("Unknown command")
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except MalformedContainerError as e:
        print(f"Error: package appears corrupted: {e}", file=sys.stderr)
        sys.exit(2)
    except (StfsError, OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
