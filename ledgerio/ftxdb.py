"""Fixed-width account database stored in a file, with per-account range locks."""

from __future__ import annotations

import errno
import os
import re
import shutil
import sys
from typing import Optional, Tuple

from ledgerio.io61 import Io61File, open_check

_ALLOWED_NAME_CHARS = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789~./-_"
)
_BALANCE_RE = re.compile(rb"-?[0-9]+")
_LONG_MIN = -(2**63)
_LONG_MAX = 2**63 - 1


class FtxDb:
    """An open account database: a file of fixed-size account records."""

    max_asize = 512

    def __init__(self, f: Io61File) -> None:
        self.f = f
        self.asize = 16
        self.balance_offset = 8
        self.balance_size = 7
        self._closed = False
        size = f.filesize()
        if size is None:
            raise ValueError("account database must be a regular file")
        if size % self.asize != 0:
            raise ValueError(
                f"database size {size} is not a multiple of the record size {self.asize}"
            )
        self.naccounts = size // self.asize

        # Reading the first account checks the format and warms the cache.
        _, balance = FtxAcct(self, 0).read()
        if balance < 0:
            raise ValueError("first account has a negative balance")

    def close(self) -> None:
        """Flush and close the database file."""
        if not self._closed:
            self._closed = True
            self.f.close()

    def __enter__(self) -> "FtxDb":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @classmethod
    def open_args(cls, args) -> "FtxDb":
        """Open the database named by parsed arguments, working on a copy unless modifying."""
        original = args.input_file if args.input_file is not None else "accounts.fdb"
        if args.modify:
            copy = original
        elif len(args.input_files) > 1:
            copy = args.input_files[1]
        else:
            copy = "/tmp/newaccounts.fdb"
        if original != copy:
            if not (set(original) <= _ALLOWED_NAME_CHARS and set(copy) <= _ALLOWED_NAME_CHARS):
                print("Bad filenames", file=sys.stderr)
                raise SystemExit(1)
            shutil.copyfile(original, copy)
        return cls(open_check(copy, os.O_RDWR))


class FtxAcct:
    """One account within an open database; usable as a lock context manager."""

    def __init__(self, db: FtxDb, aindex: int) -> None:
        if not 0 <= aindex < db.naccounts:
            raise IndexError(f"account index {aindex} out of range")
        self.db = db
        self.offset = aindex * db.asize
        self.locked = False

    def lock(self) -> None:
        """Acquire an exclusive lock on this account's record."""
        if self.locked:
            raise RuntimeError("account is already locked")
        self.db.f.lock(self.offset, self.db.asize)
        self.locked = True

    def unlock(self) -> None:
        """Release the lock on this account's record."""
        if not self.locked:
            raise RuntimeError("account is not locked")
        self.locked = False
        self.db.f.unlock(self.offset, self.db.asize)

    def __enter__(self) -> "FtxAcct":
        self.lock()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unlock()

    def read(self, namesz: int = 0) -> Tuple[Optional[str], int]:
        """Return ``(name, balance)``; the name is None unless ``namesz`` is positive."""
        data = self.db.f.pread(self.db.asize, self.offset)
        if not data:
            raise EOFError("account record is missing")
        return parse_account(data, self.db, namesz)

    def write(self, balance: int) -> None:
        """Store ``balance`` as this account's new balance."""
        data = unparse_balance(self.db, balance)
        written = self.db.f.pwrite(data, self.offset + self.db.balance_offset)
        if written != len(data):
            raise OSError(errno.EINVAL, "short write to account record")


def parse_account(buf: bytes, db: FtxDb, namesz: int = 0) -> Tuple[Optional[str], int]:
    """Split a raw record into its name (up to ``namesz - 1`` chars) and balance."""
    buf = bytes(buf)
    if len(buf) != db.asize:
        raise ValueError(f"record has length {len(buf)}, expected {db.asize}")

    name: Optional[str] = None
    if namesz > 0:
        limit = min(namesz - 1, db.asize)
        name = buf[:limit].split(b" ", 1)[0].decode("latin-1")

    off = db.balance_offset
    while off != db.asize and buf[off : off + 1] == b" ":
        off += 1
    if off != db.asize and buf[off : off + 1] == b"+":
        off += 1
    m = _BALANCE_RE.match(buf, off, db.asize)
    if m is None:
        raise ValueError("record has no balance")
    balance = int(m.group())
    if not _LONG_MIN <= balance <= _LONG_MAX:
        raise ValueError("balance out of range")
    return name, balance


def unparse_balance(db: FtxDb, balance: int) -> bytes:
    """Format ``balance`` as a right-aligned field followed by a newline."""
    text = str(balance)
    if len(text) > db.balance_size:
        raise ValueError(f"balance {balance} does not fit in {db.balance_size} characters")
    return (text.rjust(db.balance_size) + "\n").encode("ascii")