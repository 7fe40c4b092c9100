"""Append-only list of entries persisted to disk as segment files.

Index starts at 1; entries run from ``prev_index()+1`` to ``last_index()``.
Entries are opaque byte strings. New segments are created as the current one
fills; ``commit`` makes appended entries durable, and ``remove_lte``,
``remove_gte`` and ``close`` commit implicitly. ``remove_lte`` only removes
whole segments, so ``can_lte`` tells how far it would actually go.

A view is a read-only log bounded to a range. It can be read from another
thread while a single writer appends; after ``remove_lte``, ``remove_gte``
or ``reset`` on the writer, views must be created afresh.
"""

from __future__ import annotations

import dataclasses
import os
import stat
from dataclasses import dataclass
from typing import List, Optional, Tuple

from raftkit.wal.segment import Segment, open_segments

_RESERVED = 3 * 8


class NotFoundError(Exception):
    """The entry lies at or before ``prev_index``."""

    def __init__(self, message: str = "log: entry not found") -> None:
        super().__init__(message)


class ExceedsSegmentSizeError(ValueError):
    """The entry does not fit even in an empty segment."""

    def __init__(self, message: str = "log: entry exceeds segment size") -> None:
        super().__init__(message)


@dataclass
class Options:
    """Permissions of segment files and their pre-allocated size in bytes."""

    file_mode: int
    segment_size: int

    def _validate(self) -> None:
        if not self.file_mode & stat.S_IRUSR:
            mode = "-" + stat.filemode(self.file_mode & 0o777)[1:]
            raise ValueError(f'log: FileMode "{mode}" has no read permission')
        if self.segment_size < 1024:
            raise ValueError(f"log: SegmentSize {self.segment_size} is too small")


class Log:
    """Append-only log of entries stored in segment files."""

    def __init__(
        self,
        directory: str,
        options: Options,
        segments: List[Segment],
        bounds: Optional[Tuple[int, int]] = None,
    ) -> None:
        self._dir = directory
        self._options = options
        self._segments = segments
        self._bounds = bounds

    @classmethod
    def open(
        cls, directory: "str | os.PathLike[str]", dir_mode: int, options: Options
    ) -> "Log":
        """Open the log in ``directory``, creating the directory if needed."""
        options._validate()
        path = os.fspath(directory)
        os.makedirs(path, dir_mode, exist_ok=True)
        opts = dataclasses.replace(options)
        return cls(path, opts, open_segments(path, opts))

    def __enter__(self) -> "Log":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def view_at(self, prev_index: int, last_index: int) -> Optional["Log"]:
        """A read-only view bounded to ``(prev_index, last_index]``.

        Returns None if the bounds fall outside the log.
        """
        if last_index > self.last_index():
            raise IndexError(f"log: {last_index}>lastIndex({self.last_index()})")
        if prev_index > last_index or prev_index < self.prev_index():
            return None
        segs = self._segments
        first = max(k for k, s in enumerate(segs) if s.prev_index <= prev_index)
        last = self._position(last_index)
        last = first if last is None else max(first, last)
        return Log(
            self._dir,
            dataclasses.replace(self._options),
            segs[first : last + 1],
            (prev_index, last_index),
        )

    def view(self) -> Optional["Log"]:
        return self.view_at(self.prev_index(), self.last_index())

    def prev_index(self) -> int:
        if self._bounds is not None:
            return self._bounds[0]
        return self._segments[0].prev_index

    def last_index(self) -> int:
        if self._bounds is not None:
            return self._bounds[1]
        return self._segments[-1].last_index()

    def count(self) -> int:
        return self.last_index() - self.prev_index()

    def _position(self, i: int) -> Optional[int]:
        last = self.last_index()
        if i > last:
            raise IndexError(f"log: {i}>lastIndex({last})")
        if i <= self.prev_index():
            return None
        segs = self._segments
        return next(
            (k for k in reversed(range(len(segs))) if i > segs[k].prev_index), None
        )

    def contains(self, i: int) -> bool:
        return self.prev_index() < i <= self.last_index()

    def get(self, i: int) -> bytes:
        """Return entry ``i``.

        Raises IndexError beyond ``last_index`` and NotFoundError at or
        before ``prev_index``.
        """
        pos = self._position(i)
        if pos is None:
            raise NotFoundError()
        return self._segments[pos].get(i, 1)

    def get_n(self, i: int, n: int) -> List[bytes]:
        """Return entries ``i`` to ``i+n-1``, one byte string per segment."""
        last = self.last_index()
        if i + n - 1 > last:
            raise IndexError(f"log: {i + n - 1}>lastIndex({last})")
        pos = self._position(i)
        if pos is None:
            raise NotFoundError()
        buffs: List[bytes] = []
        final = self._segments[-1]
        for seg in self._segments[pos:]:
            if n == 0:
                break
            if seg is final:
                buffs.append(seg.get(i, n))
                break
            sn = min(seg.last_index() - (i - 1), n)
            buffs.append(seg.get(i, sn))
            i += sn
            n -= sn
        return buffs

    def append(self, b: bytes) -> None:
        """Append an entry, starting a new segment when the current is full."""
        b = bytes(b)
        last = self._segments[-1]
        if last.available() < len(b):
            if last.n == 0:
                raise ExceedsSegmentSizeError()
            if len(b) > self._options.segment_size - _RESERVED:
                self._options.segment_size = len(b) + _RESERVED
            self.commit()
            seg = Segment.open(self._dir, self.last_index(), self._options)
            self._segments.append(seg)
        self._segments[-1].append(b)

    def can_lte(self, i: int) -> int:
        """The index up to which ``remove_lte(i)`` would remove entries."""
        for seg in self._segments[:-1]:
            if not (seg.n > 0 and seg.last_index() <= i):
                return seg.prev_index
        return self._segments[-1].prev_index

    def remove_lte(self, i: int) -> None:
        """Remove whole segments whose entries are all ``<= i``."""
        self.commit()
        while len(self._segments) > 1:
            first = self._segments[0]
            if not (first.n > 0 and first.last_index() <= i):
                break
            del self._segments[0]
            first.close_and_remove()

    def remove_gte(self, i: int) -> None:
        """Remove all entries ``>= i``; afterwards ``last_index`` is ``i-1``."""
        self.commit()
        while True:
            last = self._segments[-1]
            if i <= last.prev_index + 1:
                if len(self._segments) == 1 and i == last.prev_index + 1:
                    last.remove_gte(i)
                    return
                self._segments.pop()
                last.close_and_remove()
                if not self._segments:
                    if i > 0:
                        i -= 1
                    self._segments.append(Segment.open(self._dir, i, self._options))
                    return
            else:
                last.remove_gte(min(i, last.last_index() + 1))
                return

    def reset(self, last_index: int) -> None:
        """Discard all entries and continue from ``last_index``."""
        while self._segments:
            self._segments.pop(0).close_and_remove()
        self._segments.append(Segment.open(self._dir, last_index, self._options))

    def commit_n(self, n: int) -> None:
        """Make at least the first ``n`` entries durable."""
        for seg in reversed(self._segments):
            if not seg.dirty():
                break
            if seg.prev_index >= n:
                continue
            seg.sync()

    def commit(self) -> None:
        self.commit_n(self.last_index())

    def close(self) -> None:
        """Commit all entries and close the segment files."""
        error: Optional[BaseException] = None
        try:
            self.commit()
        except OSError as exc:
            error = exc
        for seg in reversed(self._segments):
            try:
                seg.close()
            except OSError as exc:
                if error is None:
                    error = exc
        if error is not None:
            raise error