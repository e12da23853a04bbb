from __future__ import annotations

import io
import tarfile
import zipfile
from pathlib import Path
from typing import Any, Mapping

from hashcc.config import HashccConfig, load_config

TREE: dict[str, bytes] = {
    "a.txt": b"alpha\n",
    "b-c.txt": b"bravo charlie\n",
    "b/inner.txt": b"inner\n",
    "b/deeper/z.bin": bytes(range(256)) * 4,
    "notes.tmp": b"scratch\n",
}


def make_tree(root: Path, files: Mapping[str, bytes] | None = None) -> Path:
    """Write ``files`` (relative POSIX path -> content) under ``root``."""

    for relative, content in (files if files is not None else TREE).items():
        dest = root / relative
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(content)
    return root


def make_zip(dest: Path, members: Mapping[str, bytes], *, directories: tuple[str, ...] = ()) -> Path:
    dest.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(dest, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
        for directory in directories:
            zf.writestr(directory.rstrip("/") + "/", b"")
        for name, content in members.items():
            zf.writestr(name, content)
    return dest


def make_patched_zip(
    dest: Path, name: str, content: bytes, *, method: int | None = None, flag_bits: int = 0
) -> Path:
    """Write a single stored entry, then rewrite its compression method and flags in both headers."""

    dest.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(dest, mode="w", compression=zipfile.ZIP_STORED) as zf:
        zf.writestr(name, content)
    data = bytearray(dest.read_bytes())
    # (signature, offset of the flag field); the method field follows it.
    for signature, flags_at in ((b"PK\x03\x04", 6), (b"PK\x01\x02", 8)):
        start = data.find(signature)
        flags = int.from_bytes(data[start + flags_at : start + flags_at + 2], "little") | flag_bits
        data[start + flags_at : start + flags_at + 2] = flags.to_bytes(2, "little")
        if method is not None:
            data[start + flags_at + 2 : start + flags_at + 4] = method.to_bytes(2, "little")
    dest.write_bytes(bytes(data))
    return dest


def make_tar(dest: Path, members: Mapping[str, bytes], *, gz: bool = False, directories: tuple[str, ...] = ()) -> Path:
    dest.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(dest, mode="w:gz" if gz else "w") as tf:
        for directory in directories:
            info = tarfile.TarInfo(directory)
            info.type = tarfile.DIRTYPE
            tf.addfile(info)
        for name, content in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            tf.addfile(info, io.BytesIO(content))
    return dest


def config_for(base_dir: Path | None = None, **overrides: Any) -> HashccConfig:
    """Load the packaged defaults with dotted-key overrides and an optional base_dir."""

    merged: dict[str, Any] = dict(overrides)
    if base_dir is not None:
        merged["policy.base_dir"] = str(base_dir)
    return load_config(overrides=merged)
