from __future__ import annotations

import contextlib
import datetime
import io
import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from typing import Dict

from stfs.cli import cmd_extract, cmd_list, main
from stfs.constants import BLOCK_TERMINATOR, MAGIC_LIVE
from stfs.container import Container
from stfs.header import read_header
from stfs.table import find_entry
from stfs.translate import block_to_data_offset
from stfs_fixture import PackageBuilder, fat_time

PNG = b"\x89PNG\r\n\x1a\n" + bytes(range(64))


def _fixture_contents() -> Dict[str, bytes]:
    return {
        "content/data.bin": bytes((i * 31) & 0xFF for i in range(10000)),
        "content/sub/notes.txt": b"hello world\n" * 20,
        "content/sub/empty.txt": b"",
        "top.cfg": b"fullscreen=1\n",
    }


def _build_package(path: Path) -> Dict[str, bytes]:
    files = _fixture_contents()
    b = PackageBuilder()
    b.set_metadata(display_name="CLI Fixture", title_name="Fixture Title", publisher="Tests")
    b.set_thumbnails(PNG, PNG[:16])
    content = b.add_dir("content")
    sub = b.add_dir("sub", parent=content)
    stamp = fat_time(2012, 3, 4, 5, 6, 8)
    b.add_file("data.bin", files["content/data.bin"], parent=content, created=stamp, accessed=stamp)
    b.add_file("notes.txt", files["content/sub/notes.txt"], parent=sub)
    b.add_file("empty.txt", files["content/sub/empty.txt"], parent=sub)
    b.add_file("top.cfg", files["top.cfg"])
    path.write_bytes(b.build())
    return files


class CLIIntegrationTests(unittest.TestCase):
    def run_cli(self, args, *, expect: int | None = 0, cwd: Path | None = None):
        cmd = [sys.executable, "-m", "stfs.cli"] + list(args)
        env = os.environ.copy()
        repo_root = Path(__file__).resolve().parent
        existing = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = str(repo_root) if not existing else f"{repo_root}{os.pathsep}{existing}"
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=env,
        )
        if expect is not None and proc.returncode != expect:
            raise AssertionError(
                f"CLI exited {proc.returncode}, expected {expect}\nCommand: {' '.join(cmd)}\nSTDOUT:\n{proc.stdout}\nSTDERR:\n{proc.stderr}"
            )
        return proc

    def workspace(self) -> Path:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        return Path(tmp.name)

    def test_list_info_extract_verify(self):
        ws = self.workspace()
        package = ws / "package.bin"
        files = _build_package(package)

        listing = self.run_cli(["list", str(package)]).stdout.splitlines()
        self.assertIn("dir\tcontent", listing)
        self.assertIn("dir\tcontent/sub", listing)
        self.assertIn("file\t10000\tcontent/data.bin", listing)
        self.assertIn("file\t0\tcontent/sub/empty.txt", listing)

        info = json.loads(self.run_cli(["info", str(package), "--json"]).stdout)
        self.assertEqual("Console-signed", info["type"])
        self.assertEqual("CLI Fixture", info["display_name"])
        self.assertEqual(4, info["files"])
        self.assertEqual(2, info["directories"])

        out = ws / "out"
        self.run_cli(["extract", str(package), "--outdir", str(out)])
        for rel, data in files.items():
            self.assertEqual(data, (out / rel).read_bytes(), rel)

        verify = self.run_cli(["verify", str(package)])
        self.assertIn("OK", verify.stdout)

    def test_verify_reports_damage(self):
        ws = self.workspace()
        package = ws / "package.bin"
        _build_package(package)
        raw = bytearray(package.read_bytes())
        pkg = Container.from_bytes(raw)
        data_entry = pkg.file_table()[2]
        raw[block_to_data_offset(pkg, data_entry.starting_block) + 3] ^= 0x01
        package.write_bytes(bytes(raw))
        proc = self.run_cli(["verify", str(package), "--json"], expect=1)
        report = json.loads(proc.stdout)
        self.assertFalse(report["ok"])
        self.assertEqual([data_entry.starting_block], report["bad_files"]["content/data.bin"])

    def test_corrupt_script_is_detected(self):
        ws = self.workspace()
        package = ws / "package.bin"
        _build_package(package)
        script = Path(__file__).resolve().parent / "scripts" / "corrupt.py"
        env = os.environ.copy()
        env["PYTHONPATH"] = str(Path(__file__).resolve().parent)

        proc = subprocess.run(
            [sys.executable, str(script), "file", str(package), "content/sub/notes.txt", "--within", "5"],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=env,
        )
        self.assertEqual(0, proc.returncode, proc.stderr)
        report = json.loads(self.run_cli(["verify", str(package), "--json"], expect=1).stdout)
        self.assertEqual(["content/sub/notes.txt"], list(report["bad_files"]))

        with Container.open(str(package)) as pkg:
            start = find_entry(pkg.file_table(), "content/data.bin").starting_block
        proc = subprocess.run(
            [sys.executable, str(script), "break-chain", str(package), "--index", str(start)],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=env,
        )
        self.assertEqual(0, proc.returncode, proc.stderr)
        proc = self.run_cli(["extract", str(package), "content/data.bin", "--outdir", str(ws / "out")], expect=2)
        self.assertIn("Error:", proc.stderr)
        self.run_cli(
            ["extract", str(package), "content/data.bin", "--outdir", str(ws / "out2"), "--allow-truncated"],
            expect=1,
        )
        self.assertEqual(4096, (ws / "out2" / "content" / "data.bin").stat().st_size)

    def test_not_a_package(self):
        ws = self.workspace()
        bogus = ws / "bogus.bin"
        bogus.write_bytes(b"\x00" * 0x10000)
        proc = self.run_cli(["list", str(bogus)], expect=2)
        self.assertIn("Error:", proc.stderr)
        proc = self.run_cli(["info", str(ws / "missing.bin")], expect=2)
        self.assertIn("Error:", proc.stderr)

    def test_thumbnail_and_resign(self):
        ws = self.workspace()
        package = ws / "package.bin"
        _build_package(package)
        thumb = ws / "thumb.png"
        self.run_cli(["thumbnail", str(package), str(thumb)])
        self.assertEqual(PNG, thumb.read_bytes())
        self.run_cli(["thumbnail", str(package), str(thumb), "--title"])
        self.assertEqual(PNG[:16], thumb.read_bytes())

        live = ws / "live.bin"
        before = package.read_bytes()
        self.run_cli(["resign", str(package), "live", "--output", str(live)])
        self.assertEqual(before, package.read_bytes())
        with Container.open(str(live)) as pkg:
            self.assertEqual(MAGIC_LIVE, read_header(pkg).magic)

    def test_set_title_id_and_content_type(self):
        ws = self.workspace()
        package = ws / "package.bin"
        _build_package(package)
        self.run_cli(["set-title-id", str(package), "584109A7"])
        self.run_cli(["set-content-type", str(package), "0xD0000"])
        with Container.open(str(package)) as pkg:
            hdr = read_header(pkg)
        self.assertEqual(0x584109A7, hdr.title_id)
        self.assertEqual(0xD0000, hdr.content_type)


class CLIFunctionTests(unittest.TestCase):
    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.ws = Path(tmp.name)
        self.package = self.ws / "package.bin"
        self.files = _build_package(self.package)

    def _quiet(self, fn, *args, **kwargs):
        buf = io.StringIO()
        with contextlib.redirect_stdout(buf):
            result = fn(*args, **kwargs)
        return result, buf.getvalue()

    def test_extract_selected_paths(self):
        out = self.ws / "out"
        ok, _ = self._quiet(cmd_extract, str(self.package), outdir=str(out), paths=["content/sub"])
        self.assertTrue(ok)
        self.assertTrue((out / "content" / "sub" / "notes.txt").exists())
        self.assertFalse((out / "content" / "data.bin").exists())
        self.assertFalse((out / "top.cfg").exists())

    def test_extract_sets_entry_timestamp(self):
        out = self.ws / "out"
        self._quiet(cmd_extract, str(self.package), outdir=str(out), quiet=True)
        st = os.stat(out / "content" / "data.bin")
        expected = datetime.datetime(2012, 3, 4, 5, 6, 8).timestamp()
        self.assertAlmostEqual(expected, st.st_mtime, delta=1.0)

    def test_existing_files(self):
        out = self.ws / "out"
        self._quiet(cmd_extract, str(self.package), outdir=str(out), quiet=True)
        (out / "top.cfg").write_bytes(b"local edit")

        self._quiet(cmd_extract, str(self.package), outdir=str(out), exists="skip", paths=["top.cfg"])
        self.assertEqual(b"local edit", (out / "top.cfg").read_bytes())

        _, text = self._quiet(cmd_extract, str(self.package), outdir=str(out), exists="rename", paths=["top.cfg"])
        self.assertIn("renamed", text)
        self.assertEqual(self.files["top.cfg"], (out / "top (1).cfg").read_bytes())

        with self.assertRaises(RuntimeError):
            self._quiet(cmd_extract, str(self.package), outdir=str(out), exists="fail", paths=["top.cfg"])

        self._quiet(cmd_extract, str(self.package), outdir=str(out), exists="overwrite", paths=["top.cfg"])
        self.assertEqual(self.files["top.cfg"], (out / "top.cfg").read_bytes())

    def test_truncated_file(self):
        b = PackageBuilder()
        b.add_file("cut.bin", b"\x07" * 9000)
        b.link(1, BLOCK_TERMINATOR)
        package = self.ws / "cut.bin"
        package.write_bytes(b.build())
        out = self.ws / "cut"

        with self.assertLogs("stfs.extract", level="WARNING"):
            with contextlib.redirect_stderr(io.StringIO()):
                ok, _ = self._quiet(cmd_extract, str(package), outdir=str(out), allow_truncated=True)
        self.assertFalse(ok)
        self.assertEqual(4096, (out / "cut.bin").stat().st_size)

        with self.assertRaises(SystemExit) as cm:
            with contextlib.redirect_stderr(io.StringIO()) as err:
                with contextlib.redirect_stdout(io.StringIO()):
                    main(["extract", str(package), "--outdir", str(self.ws / "cut2")])
        self.assertEqual(2, cm.exception.code)
        self.assertIn("Error:", err.getvalue())

    def test_unresolvable_entry_does_not_block_others(self):
        b = PackageBuilder()
        b.add_file("good.bin", b"\x5A" * 5000)
        b.add_file("orphan", b"o", parent=9)
        package = self.ws / "orphan.bin"
        package.write_bytes(b.build())

        out = self.ws / "picked"
        ok, _ = self._quiet(cmd_extract, str(package), outdir=str(out), paths=["good.bin"], quiet=True)
        self.assertTrue(ok)
        self.assertEqual(b"\x5A" * 5000, (out / "good.bin").read_bytes())

        out = self.ws / "all"
        err = io.StringIO()
        with contextlib.redirect_stderr(err):
            ok, text = self._quiet(cmd_extract, str(package), outdir=str(out), quiet=True)
        self.assertFalse(ok)
        self.assertEqual(b"\x5A" * 5000, (out / "good.bin").read_bytes())
        self.assertFalse((out / "orphan").exists())
        self.assertIn("#1 'orphan'", err.getvalue())
        self.assertIn("unresolved=1", text)

    def test_header_values_out_of_range(self):
        before = self.package.read_bytes()
        for args in (["set-title-id", str(self.package), "-1"], ["set-content-type", str(self.package), "0x100000000"]):
            with self.assertRaises(SystemExit) as cm:
                with contextlib.redirect_stderr(io.StringIO()) as err:
                    with contextlib.redirect_stdout(io.StringIO()):
                        main(args)
            self.assertEqual(2, cm.exception.code)
            self.assertIn("0..0xFFFFFFFF", err.getvalue())
        self.assertEqual(before, self.package.read_bytes())

    def test_list_output(self):
        ok, text = self._quiet(cmd_list, str(self.package))
        self.assertTrue(ok)
        lines = text.splitlines()
        self.assertEqual("dir\tcontent", lines[0])
        self.assertEqual("file\t13\ttop.cfg", lines[-1])


if __name__ == "__main__":
    unittest.main()
