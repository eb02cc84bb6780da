"""Buffered file wrapper with a single-slot cache, positioned I/O and range locks."""

from __future__ import annotations

import os
import stat
import sys
import threading
from typing import Optional

_ACCMODE = os.O_RDONLY | os.O_WRONLY | os.O_RDWR


class Io61File:
    """A file descriptor wrapped with a single-slot cache.

    In normal mode the cache serves sequential reads or writes. In positioned
    mode (used by ``pread`` and ``pwrite``) the cache holds an aligned block of
    the file that can be read and modified in place.
    """

    CACHE_SIZE = 8192

    def __init__(self, fd: int, mode: int) -> None:
        if fd < 0:
            raise ValueError("file descriptor must be non-negative")
        if mode & os.O_APPEND:
            raise ValueError("append mode is not supported")
        self._fd = fd
        self.mode = mode & _ACCMODE
        self._cbuf = bytearray(self.CACHE_SIZE)
        try:
            off = os.lseek(fd, 0, os.SEEK_CUR)
            self.seekable = True
        except OSError:
            off = 0
            self.seekable = False
        self._tag = self._pos_tag = self._end_tag = off
        self._dirty = False
        self._positioned = False
        self._mutex = threading.RLock()
        self._ranges: list[tuple[int, int]] = []
        self._ranges_cond = threading.Condition()

    # -- lifetime ---------------------------------------------------------

    def close(self) -> None:
        """Flush cached data and close the underlying descriptor."""
        with self._mutex:
            try:
                self.flush()
            except OSError:
                pass
            fd, self._fd = self._fd, -1
        os.close(fd)

    def __enter__(self) -> "Io61File":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._fd >= 0:
            self.close()

    def fileno(self) -> int:
        return self._fd

    def filesize(self) -> Optional[int]:
        """Return the file's size, or None if it has no well-defined size."""
        try:
            st = os.fstat(self._fd)
        except OSError:
            return None
        if stat.S_ISREG(st.st_mode):
            return st.st_size
        return None

    # -- sequential I/O ---------------------------------------------------

    def _require_unpositioned(self) -> None:
        if self._positioned:
            raise ValueError("file is in positioned mode; seek first")

    def _fill(self) -> None:
        self._tag = self._pos_tag = self._end_tag
        while True:
            try:
                data = os.read(self._fd, self.CACHE_SIZE)
                break
            except (InterruptedError, BlockingIOError):
                continue
        self._cbuf[: len(data)] = data
        self._end_tag += len(data)

    def readc(self) -> Optional[int]:
        """Read one byte and return it as an int, or None at end of file or on error."""
        with self._mutex:
            self._require_unpositioned()
            if self._pos_tag == self._end_tag:
                try:
                    self._fill()
                except OSError:
                    return None
                if self._pos_tag == self._end_tag:
                    return None
            ch = self._cbuf[self._pos_tag - self._tag]
            self._pos_tag += 1
            return ch

    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes; a short result means end of file or a late error."""
        with self._mutex:
            self._require_unpositioned()
            out = bytearray()
            while len(out) != size:
                if self._pos_tag == self._end_tag:
                    try:
                        self._fill()
                    except OSError:
                        if not out:
                            raise
                        break
                    if self._pos_tag == self._end_tag:
                        break
                start = self._pos_tag - self._tag
                n = min(size - len(out), self._end_tag - self._pos_tag)
                out += self._cbuf[start : start + n]
                self._pos_tag += n
            return bytes(out)

    def writec(self, c: int) -> None:
        """Write a single byte (``c`` is truncated to 8 bits)."""
        with self._mutex:
            self._require_unpositioned()
            if self._pos_tag == self._tag + self.CACHE_SIZE:
                self.flush()
            self._cbuf[self._pos_tag - self._tag] = c & 0xFF
            self._pos_tag += 1
            self._end_tag += 1
            self._dirty = True

    def write(self, data: bytes) -> int:
        """Write ``data``; return the number of bytes accepted.

        Raises OSError if an error occurs before any byte is written.
        """
        view = memoryview(bytes(data))
        with self._mutex:
            self._require_unpositioned()
            written = 0
            while written != len(view):
                if self._end_tag == self._tag + self.CACHE_SIZE:
                    try:
                        self.flush()
                    except OSError:
                        if written == 0:
                            raise
                        break
                start = self._pos_tag - self._tag
                n = min(len(view) - written, self.CACHE_SIZE - start)
                self._cbuf[start : start + n] = view[written : written + n]
                self._pos_tag += n
                self._end_tag += n
                self._dirty = True
                written += n
            return written

    def flush(self) -> None:
        """Write out dirty cached data, or drop clean read data and resync the position."""
        with self._mutex:
            if self._dirty and self._positioned:
                self._flush_dirty_positioned()
            elif self._dirty:
                self._flush_dirty()
            else:
                self._flush_clean()

    def _flush_dirty(self) -> None:
        flush_tag = self._tag
        while flush_tag != self._end_tag:
            chunk = self._cbuf[flush_tag - self._tag : self._end_tag - self._tag]
            try:
                flush_tag += os.write(self._fd, chunk)
            except (InterruptedError, BlockingIOError):
                continue
        self._dirty = False
        self._tag = self._pos_tag = self._end_tag

    def _flush_dirty_positioned(self) -> None:
        flush_tag = self._tag
        while flush_tag != self._end_tag:
            chunk = self._cbuf[flush_tag - self._tag : self._end_tag - self._tag]
            try:
                flush_tag += os.pwrite(self._fd, chunk, flush_tag)
            except (InterruptedError, BlockingIOError):
                continue
        self._dirty = False

    def _flush_clean(self) -> None:
        if not self._positioned and self.seekable:
            os.lseek(self._fd, self._pos_tag, os.SEEK_SET)
            self._tag = self._end_tag = self._pos_tag

    def seek(self, off: int) -> None:
        """Move the file position to ``off`` and leave positioned mode."""
        with self._mutex:
            self.flush()
            os.lseek(self._fd, off, os.SEEK_SET)
            self._tag = self._pos_tag = self._end_tag = off
            self._positioned = False

    # -- positioned I/O ---------------------------------------------------

    def _pfill(self, off: int) -> None:
        if self.mode != os.O_RDWR:
            raise ValueError("positioned I/O requires a read/write file")
        if self._dirty:
            self.flush()
        base = off - off % self.CACHE_SIZE
        data = os.pread(self._fd, self.CACHE_SIZE, base)
        self._cbuf[: len(data)] = data
        self._tag = base
        self._end_tag = base + len(data)
        self._positioned = True

    def _ensure_slot(self, off: int) -> None:
        if off < 0:
            raise ValueError("offset must be non-negative")
        if not self._positioned or off < self._tag or off >= self._end_tag:
            self._pfill(off)

    def pread(self, size: int, off: int) -> bytes:
        """Read up to ``size`` bytes at ``off``; never crosses a cache block."""
        with self._mutex:
            self._ensure_slot(off)
            nleft = max(0, self._end_tag - off)
            n = min(size, nleft)
            start = off - self._tag
            return bytes(self._cbuf[start : start + n])

    def pwrite(self, data: bytes, off: int) -> int:
        """Write up to ``len(data)`` bytes at ``off`` within existing data; return the count."""
        with self._mutex:
            self._ensure_slot(off)
            nleft = max(0, self._end_tag - off)
            n = min(len(data), nleft)
            start = off - self._tag
            self._cbuf[start : start + n] = bytes(data[:n])
            self._dirty = True
            return n

    # -- range locks ------------------------------------------------------

    @staticmethod
    def _check_range(off: int, length: int) -> None:
        if off < 0 or length < 0:
            raise ValueError("offset and length must be non-negative")

    def _overlaps(self, start: int, end: int) -> bool:
        return any(s < end and start < e for s, e in self._ranges)

    def try_lock(self, off: int, length: int) -> bool:
        """Try to lock ``[off, off + length)`` exclusively without blocking."""
        self._check_range(off, length)
        if length == 0:
            return True
        with self._ranges_cond:
            if self._overlaps(off, off + length):
                return False
            self._ranges.append((off, off + length))
            return True

    def lock(self, off: int, length: int) -> None:
        """Lock ``[off, off + length)`` exclusively, blocking until available."""
        self._check_range(off, length)
        if length == 0:
            return
        end = off + length
        with self._ranges_cond:
            self._ranges_cond.wait_for(lambda: not self._overlaps(off, end))
            self._ranges.append((off, end))

    def unlock(self, off: int, length: int) -> None:
        """Release a lock previously acquired on ``[off, off + length)``."""
        self._check_range(off, length)
        if length == 0:
            return
        with self._ranges_cond:
            try:
                self._ranges.remove((off, off + length))
            except ValueError:
                raise ValueError("range is not locked") from None
            self._ranges_cond.notify_all()


def fdopen(fd: int, mode: int) -> Io61File:
    """Wrap an open file descriptor."""
    return Io61File(fd, mode)


def open_check(filename: Optional[str], mode: int) -> Io61File:
    """Open ``filename`` (or stdin/stdout when None); exit with a message on failure."""
    if filename is None:
        fd = 0 if (mode & _ACCMODE) == os.O_RDONLY else 1
    else:
        try:
            fd = os.open(filename, mode, 0o666)
        except OSError as exc:
            print(f"{filename}: {exc.strerror}", file=sys.stderr)
            raise SystemExit(1) from exc
    return fdopen(fd, mode & _ACCMODE)