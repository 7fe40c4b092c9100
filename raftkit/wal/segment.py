"""Segment files: the pre-allocated, memory-mapped pieces of a log.

A segment named ``<prevIndex>.log`` holds entries ``prevIndex+1`` onwards.
Entries are stored from the start of the file. The last 8 bytes are the
header, which holds the number of committed entries. Before the header come
the entry offsets in reverse order, one 8-byte little-endian word each; with
``n`` entries there are ``n+1`` offsets, the last telling where the next
entry starts.
"""

from __future__ import annotations

import mmap
import os
import re
import stat
import struct
from typing import TYPE_CHECKING, BinaryIO, List

if TYPE_CHECKING:
    from raftkit.wal.log import Options

_UINT64 = struct.Struct("<Q")
_WORD = _UINT64.size
_SEGMENT_NAME = re.compile(r"([0-9]+)\.log")
_MAX_UINT64 = 2**64 - 1


def segment_file(directory: "str | os.PathLike[str]", prev_index: int) -> str:
    """Path of the segment file whose entries start after ``prev_index``."""
    return os.path.join(os.fspath(directory), f"{prev_index}.log")


def _file_exists(name: str) -> bool:
    try:
        info = os.stat(name)
    except FileNotFoundError:
        return False
    if stat.S_ISDIR(info.st_mode):
        raise IsADirectoryError(f"log: directory found at {name}")
    return True


def _create_segment(name: str, options: "Options") -> None:
    size = options.segment_size
    flags = os.O_RDWR | os.O_CREAT | getattr(os, "O_BINARY", 0)
    fd = os.open(name, flags, options.file_mode)
    try:
        os.ftruncate(fd, size)
        os.lseek(fd, size - 2 * _WORD, os.SEEK_SET)
        os.write(fd, bytes(2 * _WORD))
        os.fsync(fd)
    except OSError:
        os.close(fd)
        try:
            os.remove(name)
        except OSError:
            pass
        raise
    os.close(fd)


class Segment:
    """One segment file of a log, mapped into memory."""

    def __init__(
        self, prev_index: int, path: str, file: BinaryIO, data: mmap.mmap
    ) -> None:
        self.prev_index = prev_index
        self.path = path
        self._file = file
        self._data = data
        self.n = self._offset(0)
        # number of entries known to be synced; -1 after entries were removed
        self.synced = self.n
        self.size = self._offset(self.n + 1)

    @classmethod
    def open(
        cls, directory: "str | os.PathLike[str]", prev_index: int, options: "Options"
    ) -> "Segment":
        """Open the segment after ``prev_index``, creating it if missing."""
        path = segment_file(directory, prev_index)
        if not _file_exists(path):
            _create_segment(path, options)
        file = open(path, "r+b")
        try:
            data = mmap.mmap(file.fileno(), 0, access=mmap.ACCESS_WRITE)
        except (OSError, ValueError):
            file.close()
            raise
        return cls(prev_index, path, file, data)

    def _at(self, i: int) -> int:
        pos = len(self._data) - i * _WORD - _WORD
        if pos < 0:
            raise IndexError(f"log: offset {i} outside segment {self.path}")
        return pos

    def _offset(self, i: int) -> int:
        return _UINT64.unpack_from(self._data, self._at(i))[0]

    def _set_offset(self, off: int, i: int) -> None:
        _UINT64.pack_into(self._data, self._at(i), off)

    def last_index(self) -> int:
        return self.prev_index + self.n

    def get(self, i: int, n: int) -> bytes:
        """Return entries ``i`` to ``i+n-1`` as one byte string."""
        if i <= self.prev_index:
            raise IndexError("i<=prevIndex")
        k = i - self.prev_index
        return self._data[self._offset(k) : self._offset(k + n)]

    def available(self) -> int:
        """Bytes free for the next entry, after reserving its offset."""
        return self._at(self.n + 2) - self.size

    def append(self, b: bytes) -> None:
        end = self.size + len(b)
        self._data[self.size : end] = b
        self._set_offset(end, self.n + 2)
        self.n, self.size = self.n + 1, end

    def remove_gte(self, i: int) -> None:
        """Drop all entries ``>= i`` and sync the header."""
        n = i - self.prev_index - 1
        if n < self.n:
            self._set_offset(n, 0)
            self.n, self.size, self.synced = n, self._offset(n + 1), -1
        self.sync()

    def dirty(self) -> bool:
        return self.synced < self.n

    def sync(self) -> None:
        """Flush entries, then record their count in the header."""
        if self.dirty():
            self._data.flush()
            self._set_offset(self.n, 0)
            self._data.flush()
            self.synced = self.n

    def close(self) -> None:
        try:
            self.sync()
        finally:
            try:
                self._data.close()
            finally:
                self._file.close()

    def close_and_remove(self) -> None:
        close_error = None
        try:
            self.close()
        except OSError as exc:
            close_error = exc
        try:
            os.remove(self.path)
        except OSError:
            if close_error is None:
                raise
        if close_error is not None:
            raise close_error

    def __repr__(self) -> str:
        return f"Segment(prev_index={self.prev_index}, n={self.n})"


def list_segments(directory: "str | os.PathLike[str]") -> List[int]:
    """Sorted prev indexes of the segment files in ``directory``."""
    offsets = []
    for name in os.listdir(directory):
        if not name.endswith(".log"):
            continue
        match = _SEGMENT_NAME.fullmatch(name)
        if match is None or int(match.group(1)) > _MAX_UINT64:
            raise ValueError(f"log: invalid segment file name {name!r}")
        offsets.append(int(match.group(1)))
    return sorted(offsets)


def open_segments(
    directory: "str | os.PathLike[str]", options: "Options"
) -> List[Segment]:
    """Open the chain of segments in ``directory``.

    Segments that do not continue the chain are dangling and get deleted.
    An empty directory gets a fresh segment starting at index 1.
    """
    offsets = list_segments(directory) or [0]
    segments: List[Segment] = []
    try:
        last = Segment.open(directory, offsets[0], options)
        segments.append(last)
        for off in offsets[1:]:
            if last.n > 0 and off == last.last_index():
                last = Segment.open(directory, off, options)
                segments.append(last)
            else:
                os.remove(segment_file(directory, off))
    except Exception:
        for seg in segments:
            try:
                seg.close()
            except OSError:
                pass
        raise
    return segments