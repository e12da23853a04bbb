from __future__ import annotations

import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from hashcc.errors import ArchiveError
from hashcc.io.archives import TAR, TAR_GZ, ZIP, ArchiveAdapter, archive_kind, normalise_entry_name
from tests.helpers import make_patched_zip, make_tar, make_zip

MEMBERS = {"top.txt": b"top level\n", "nested/deep.txt": b"nested content\n"}


class ArchiveKindTests(unittest.TestCase):
    def test_suffixes(self) -> None:
        self.assertEqual(archive_kind("x.zip"), ZIP)
        self.assertEqual(archive_kind("x.TAR"), TAR)
        self.assertEqual(archive_kind("x.tar.gz"), TAR_GZ)
        self.assertEqual(archive_kind("x.tgz"), TAR_GZ)
        self.assertIsNone(archive_kind("x.gz"))
        self.assertIsNone(archive_kind("x.txt"))

    def test_entry_names_are_posix_and_relative(self) -> None:
        self.assertEqual(normalise_entry_name("/a/b.txt"), "a/b.txt")
        self.assertEqual(normalise_entry_name("a\\b.txt"), "a/b.txt")
        self.assertEqual(normalise_entry_name("./a.txt"), "a.txt")


class ArchiveAdapterTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.adapter = ArchiveAdapter()

    def tearDown(self) -> None:
        self.adapter.close()
        self._tmp.cleanup()

    def _read_all(self, container: Path) -> dict[str, bytes]:
        contents = {}
        for entry in self.adapter.entries(container):
            with entry.open() as handle:
                contents[entry.name] = handle.read()
        return contents

    def test_zip_entries_skip_directories(self) -> None:
        container = make_zip(self.root / "bundle.zip", MEMBERS, directories=("nested",))
        names = [entry.name for entry in self.adapter.entries(container)]
        self.assertEqual(names, ["top.txt", "nested/deep.txt"])
        self.assertEqual(self._read_all(container), MEMBERS)

    def test_tar_and_tgz_entries(self) -> None:
        plain = make_tar(self.root / "bundle.tar", MEMBERS, directories=("nested",))
        packed = make_tar(self.root / "bundle.tgz", MEMBERS, gz=True)
        self.assertEqual(self._read_all(plain), MEMBERS)
        self.assertEqual(self._read_all(packed), MEMBERS)
        sizes = {entry.name: entry.size for entry in self.adapter.entries(plain)}
        self.assertEqual(sizes, {name: len(data) for name, data in MEMBERS.items()})

    def test_open_entry_by_name(self) -> None:
        container = make_tar(self.root / "bundle.tar.gz", MEMBERS, gz=True)
        with self.adapter.open_entry(container, "nested/deep.txt") as handle:
            self.assertEqual(handle.read(), b"nested content\n")

    def test_missing_entry(self) -> None:
        container = make_zip(self.root / "bundle.zip", MEMBERS)
        with self.assertRaises(ArchiveError):
            with self.adapter.open_entry(container, "absent.txt"):
                pass

    def test_unopenable_container(self) -> None:
        broken = self.root / "broken.zip"
        broken.write_bytes(b"definitely not a zip file")
        with self.assertRaises(ArchiveError):
            list(self.adapter.entries(broken))

        broken_tar = self.root / "broken.tgz"
        broken_tar.write_bytes(b"\x1f\x8b\x08garbage")
        with self.assertRaises(ArchiveError):
            list(self.adapter.entries(broken_tar))

    def test_unsupported_compression_method_is_archive_error(self) -> None:
        container = make_patched_zip(self.root / "odd.zip", "data.bin", b"payload", method=99)
        names = [entry.name for entry in self.adapter.entries(container)]
        self.assertEqual(names, ["data.bin"])
        with self.assertRaises(ArchiveError):
            with self.adapter.open_entry(container, "data.bin"):
                pass

    def test_encrypted_entry_is_archive_error(self) -> None:
        container = make_patched_zip(self.root / "locked.zip", "data.bin", b"payload", flag_bits=0x1)
        with self.assertRaises(ArchiveError):
            with self.adapter.open_entry(container, "data.bin"):
                pass

    def test_compressed_tar_entries_in_any_order(self) -> None:
        members = {f"part-{index}.txt": f"part {index}\n".encode() for index in range(6)}
        container = make_tar(self.root / "parts.tar.gz", members, gz=True)
        order = ["part-0.txt", "part-1.txt", "part-4.txt", "part-2.txt", "part-5.txt", "part-4.txt"]
        for name in order:
            with self.adapter.open_entry(container, name) as handle:
                self.assertEqual(handle.read(), members[name])
        self.adapter.close()
        with self.adapter.open_entry(container, "part-3.txt") as handle:
            self.assertEqual(handle.read(), members["part-3.txt"])
        with self.assertRaises(ArchiveError):
            with self.adapter.open_entry(container, "absent.txt"):
                pass
        self.adapter.close()

    def test_unsupported_type(self) -> None:
        with self.assertRaises(ArchiveError):
            list(self.adapter.entries(self.root / "file.rar"))


if __name__ == "__main__":
    unittest.main()
