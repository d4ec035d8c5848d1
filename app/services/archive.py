"""
Archive reading and assembly helpers.

Reads uploaded ZIP archives into memory (entry order is preserved, merge
relies on it) and assembles new archives from named byte streams under a
path prefix.
"""

from __future__ import annotations

import io
import logging
import posixpath
import zipfile
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

import aiofiles

logger = logging.getLogger(__name__)

MARKUP_EXTENSIONS = (".html", ".htm")
COMPRESSION_LEVEL = 6

# Errors zipfile raises when a member cannot be decompressed
ARCHIVE_READ_ERRORS = (
    zipfile.BadZipFile,
    zlib.error,
    RuntimeError,
    NotImplementedError,
    EOFError,
)


@dataclass
class ArchiveEntry:
    name: str
    is_directory: bool
    _archive: Optional[zipfile.ZipFile] = field(default=None, repr=False)
    _data: Optional[bytes] = field(default=None, repr=False)

    def read(self) -> bytes:
        if self._data is not None:
            return self._data
        return self._archive.read(self.name)

    @property
    def is_markup(self) -> bool:
        return self.name.lower().endswith(MARKUP_EXTENSIONS)


class ArchiveReader:
    """In-memory view over a ZIP archive"""

    def __init__(self, archive_bytes: bytes):
        self._zip = zipfile.ZipFile(io.BytesIO(archive_bytes))
        self.entries: List[ArchiveEntry] = [
            ArchiveEntry(info.filename, info.is_dir(), self._zip)
            for info in self._zip.infolist()
        ]
        self._by_name: Dict[str, ArchiveEntry] = {
            entry.name: entry for entry in self.entries
        }

    def get(self, name: str) -> Optional[ArchiveEntry]:
        entry = self._by_name.get(name)
        if entry is None or entry.is_directory:
            return None
        return entry

    def has(self, name: str) -> bool:
        return self.get(name) is not None

    def read_text(self, name: str, encoding: str = "utf-8") -> str:
        entry = self.get(name)
        if entry is None:
            raise KeyError(name)
        return entry.read().decode(encoding, errors="replace")

    def markup_names(self) -> List[str]:
        """Names of all markup files, in archive order"""
        return [
            entry.name for entry in self.entries
            if not entry.is_directory and entry.is_markup
        ]

    def close(self) -> None:
        self._zip.close()

    def __enter__(self) -> "ArchiveReader":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def open_archive(archive_bytes: bytes) -> ArchiveReader:
    """Open archive bytes, raising zipfile.BadZipFile for invalid data"""
    return ArchiveReader(archive_bytes)


def list_entries(archive_bytes: bytes) -> List[ArchiveEntry]:
    """Entries in archive order with their content loaded; the archive is closed"""
    with open_archive(archive_bytes) as reader:
        return [
            ArchiveEntry(
                entry.name,
                entry.is_directory,
                _data=b"" if entry.is_directory else entry.read(),
            )
            for entry in reader.entries
        ]


def normalize_entry_name(name: str) -> Optional[str]:
    """Collapse an entry name to a relative path, or None if it leaves the archive root"""
    normalized = posixpath.normpath(name.replace("\\", "/"))
    if normalized in (".", "..") or normalized.startswith(("/", "../")):
        return None
    return normalized


async def read_archive_bytes(path: Union[str, Path]) -> bytes:
    async with aiofiles.open(path, "rb") as f:
        return await f.read()


async def write_bytes(path: Union[str, Path], data: bytes) -> None:
    async with aiofiles.open(path, "wb") as f:
        await f.write(data)


class ArchiveWriter:
    """Collects named byte streams and serializes them as one ZIP archive"""

    def __init__(self, prefix: str = ""):
        self.prefix = prefix.strip("/")
        self._buffer = io.BytesIO()
        self._zip = zipfile.ZipFile(
            self._buffer,
            "w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=COMPRESSION_LEVEL,
        )
        self.names: List[str] = []

    def _full_name(self, name: str, prefix: str = "") -> str:
        parts = [p for p in (self.prefix, prefix.strip("/"), name.lstrip("/")) if p]
        return "/".join(parts)

    def add(self, name: str, data: Union[bytes, str], prefix: str = "") -> str:
        if isinstance(data, str):
            data = data.encode("utf-8")
        full_name = self._full_name(name, prefix)
        self._zip.writestr(full_name, data)
        self.names.append(full_name)
        return full_name

    def add_all(self, files: Dict[str, Union[bytes, str]], prefix: str = "") -> None:
        for name, data in files.items():
            self.add(name, data, prefix)

    def to_bytes(self) -> bytes:
        self._zip.close()
        logger.debug("Assembled archive with %d entries", len(self.names))
        return self._buffer.getvalue()
