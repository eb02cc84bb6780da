"""Command-line options shared by the ledger tools, plus small I/O helpers."""

from __future__ import annotations

import atexit
import getopt
import os
import random
import re
import signal
import sys
import time
from typing import BinaryIO, List, Optional, Union

from ledgerio.io61 import Io61File

SIZE_MAX = 2**64 - 1
_ACCMODE = os.O_RDONLY | os.O_WRONLY | os.O_RDWR
_DEFAULT_SEED = 5489

_HEX_RE = re.compile(r"[0-9a-fA-F]*")
_DEC_RE = re.compile(r"[0-9]*")
_FLOAT_RE = re.compile(r"[0-9]+\.?[0-9]*|\.[0-9]+")
_LONG_RE = re.compile(r"\s*([+-]?)(0[xX][0-9a-fA-F]+|0[0-7]*|[1-9][0-9]*)")


class UsageError(Exception):
    """Raised when command-line arguments are invalid; the message is the usage text."""


def monotonic_timestamp() -> float:
    """Return the current monotonic time in seconds."""
    return time.monotonic()


def parse_size(text: str, minimum: int = 0) -> Optional[int]:
    """Parse a size such as ``4096``, ``0x1000``, ``1.5k`` or ``2M``.

    Returns None if the text is not a valid size of at least ``minimum``.
    """
    end = len(text)
    is_hex = text[:1] == "0" and text[1:2].lower() == "x"
    value = 0
    pos = 0
    if is_hex:
        digits = _HEX_RE.match(text, 2).group()
        value = int(digits, 16) if digits else 0
        pos = 2 + len(digits)
    elif text[:1].isdigit():
        digits = _DEC_RE.match(text).group()
        value = int(digits)
        pos = len(digits)

    if pos == 0 and text[:1] == ".":
        pass
    elif pos == 0 or value > SIZE_MAX or value < minimum:
        return None
    elif pos == end:
        return value

    if is_hex:
        fv = float(value)
    else:
        m = _FLOAT_RE.match(text)
        if m is None or "e" in text or "E" in text:
            return None
        fv = float(m.group())
        pos = m.end()

    if pos != end:
        ch = text[pos].lower()
        if ch == "k":
            fv *= 1024
        elif ch == "m":
            fv *= 1024 * 1024
        elif ch == "g":
            fv *= 1024 * 1024 * 1024
        else:
            return None
        if pos + 1 != end:
            return None

    if not fv.is_integer() or fv > SIZE_MAX or fv < minimum:
        return None
    return int(fv)


def _parse_double(text: str) -> Optional[float]:
    if not text or "_" in text or text != text.rstrip():
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _parse_long(text: str) -> Optional[int]:
    m = _LONG_RE.fullmatch(text)
    if m is None:
        return None
    sign, digits = m.groups()
    if digits[:2].lower() == "0x":
        n = int(digits[2:], 16)
    elif digits.startswith("0"):
        n = int(digits, 8)
    else:
        n = int(digits)
    return -n if sign == "-" else n


def _alarm_handler(signum, frame) -> None:
    pass


class Io61Args:
    """Options parsed from a command line, configured by an option string."""

    def __init__(self, opts: str = "", block_size: int = 0) -> None:
        self.opts = opts
        self.file_size = SIZE_MAX
        self.block_size = block_size
        self.max_block_size = block_size
        self.initial_offset = 0
        self.stride = 1024
        self.read_lines = False
        self.read_bytewise = False
        self.write_bytewise = False
        self.flush = False
        self.quiet = False
        self.modify = False
        self.exponential = False
        self.yield_usec = 0
        self.hint = False
        self.as_limit = 0
        self.output_file: Optional[str] = None
        self.input_file: Optional[str] = None
        self.input_files: List[Optional[str]] = []
        self.output_files: List[Optional[str]] = []
        self.program_name: Optional[str] = None
        self.engine = random.Random(_DEFAULT_SEED)
        self.seed = _DEFAULT_SEED
        self.delay = 0.0
        self.pipebuf_size = 0
        self.nonblocking = False
        self.nthreads = 1
        self.ndistinguished_threads = 0
        self.noperations = 0

    def set_block_size(self, bs: int) -> "Io61Args":
        self.block_size = self.max_block_size = bs
        return self

    def set_seed(self, seed: int) -> "Io61Args":
        self.engine.seed(seed)
        self.seed = seed
        return self

    def set_noperations(self, n: int) -> "Io61Args":
        self.noperations = n
        return self

    def set_nthreads(self, n: int) -> "Io61Args":
        self.nthreads = n
        return self

    def set_ndistinguished_threads(self, n: int) -> "Io61Args":
        self.ndistinguished_threads = n
        return self

    def _usage(self) -> UsageError:
        return UsageError(self.usage_text())

    def _size(self, text: str, minimum: int = 0) -> int:
        value = parse_size(text, minimum)
        if value is None:
            raise self._usage()
        return value

    def parse(self, argv: List[str]) -> "Io61Args":
        """Parse ``argv`` (including the program name); raise UsageError on bad input."""
        argv = list(argv)
        self.program_name = argv[0] if argv else None
        bs = self.block_size
        max_bs = self.max_block_size
        alarm_interval = 0.0

        try:
            options, rest = getopt.gnu_getopt(argv[1:], self.opts.replace("#", ""))
        except getopt.GetoptError:
            raise self._usage() from None

        for flag, value in options:
            opt = flag[1:]
            if opt == "s":
                self.file_size = self._size(value)
            elif opt == "b":
                bs = self._size(value, 1)
            elif opt == "B":
                max_bs = self._size(value, 1)
            elif opt == "R":
                self.read_bytewise = True
            elif opt == "W":
                self.write_bytewise = True
            elif opt == "t":
                self.stride = self._size(value, 1)
            elif opt == "l":
                self.read_lines = True
            elif opt == "F":
                self.flush = True
            elif opt == "X":
                self.exponential = True
            elif opt == "y":
                self.yield_usec += 1
            elif opt == "K":
                self.nonblocking = True
            elif opt == "q":
                self.quiet = True
            elif opt == "i":
                self.input_files.append(value)
            elif opt == "o":
                self.output_files.append(value)
            elif opt == "p":
                self.initial_offset = self._size(value)
            elif opt == "r":
                self.engine.seed(self._size(value))
            elif opt == "M":
                self.modify = True
            elif opt in ("D", "a"):
                d = _parse_double(value)
                if d is None:
                    raise self._usage()
                if opt == "D":
                    self.delay = d
                else:
                    alarm_interval = d
            elif opt == "P":
                self.pipebuf_size = self._size(value)
            elif opt == "A":
                self.as_limit = self._size(value)
            elif opt == "j":
                n = _parse_long(value)
                if n is None or n <= 0:
                    raise self._usage()
                self.nthreads = n
            elif opt == "J":
                n = _parse_long(value)
                if n is None or n < 0:
                    raise self._usage()
                self.ndistinguished_threads = n
            elif opt == "n":
                self.noperations = self._size(value)
            else:
                raise self._usage()

        self.input_files.extend(rest)
        if not self.input_files:
            self.input_files.append(None)
        elif len(self.input_files) == 1:
            self.input_file = self.input_files[0]
        elif "#" not in self.opts:
            raise self._usage()

        if not self.output_files:
            self.output_files.append(None)
        elif len(self.output_files) == 1:
            self.output_file = self.output_files[0]
        elif "##" not in self.opts:
            raise self._usage()

        self.block_size = bs
        self.max_block_size = max(bs, max_bs)

        if alarm_interval > 0:
            signal.signal(signal.SIGALRM, _alarm_handler)
            signal.setitimer(signal.ITIMER_REAL, alarm_interval, alarm_interval)

        if self.as_limit > 0:
            self._apply_as_limit()

        if self.ndistinguished_threads > self.nthreads:
            raise self._usage()
        return self

    def _apply_as_limit(self) -> None:
        message = "\n*** MEMORY LIMIT IGNORED ***\n\n* Run this test in Docker or on the grading server.\n\n"
        try:
            import resource
        except ImportError:
            sys.stderr.write(message)
            return
        if sys.platform == "darwin" or not hasattr(resource, "RLIMIT_AS"):
            sys.stderr.write(message)
            return
        try:
            resource.setrlimit(resource.RLIMIT_AS, (self.as_limit, self.as_limit))
        except (OSError, ValueError) as exc:
            sys.stderr.write(
                f"\n*** MEMORY LIMIT IGNORED *** {exc}\n\n"
                "* Run this test in Docker or on the grading server.\n\n"
            )

    def usage_text(self) -> str:
        """Return the usage message for this option string."""
        opts = self.opts
        lines = [
            f"Usage: {self.program_name} [OPTIONS] [FILE]"
            f"{'...' if '#' in opts else ''}",
            "Options:",
        ]

        def add(flag: str, text: str) -> None:
            if flag in opts:
                lines.append(text)

        add("i", "    -i FILE       Read input from FILE")
        add("o", "    -o FILE       Write output to FILE")
        add("q", "    -q            Ignore errors")
        add("s", "    -s SIZE       Set size written")
        if self.block_size:
            add("b", f"    -b BLOCKSIZE  Set block size (default {self.block_size})")
        else:
            add("b", "    -b BLOCKSIZE  Set block size")
        if self.max_block_size:
            add("B", f"    -B BLOCKSIZE  Set max block size (default {self.max_block_size})")
        else:
            add("B", "    -B BLOCKSIZE  Set max block size")
        add("t", f"    -t STRIDE     Set stride (default {self.stride})")
        add("p", "    -p POS        Set initial file position")
        add("l", "    -l            Read by lines")
        add("R", "    -R            Read bytewise, not blocks")
        add("W", "    -W            Write bytewise, not blocks")
        add("F", "    -F            Flush after each write")
        add("y", "    -y            Yield after each write")
        add("H", "    -H            Supply hints to library")
        add("X", "    -X            Use powers of two for block sizes")
        add("P", "    -P BUFSIZ     Set input pipe buffer size on Linux")
        add("A", "    -A ASLIMIT    Set address space limit on Linux")
        add("r", f"    -r            Set random seed (default {self.seed})")
        add("D", "    -D DELAY      Delay before starting")
        add("a", "    -a TIME       Set interval timer")
        add("K", "    -K            Use nonblocking I/O")
        add("j", "    -j N          Start N threads")
        add("J", "    -J N          Use N distinguished threads")
        add("n", "    -n N          Perform N operations")
        add("M", "    -M            Modify input file in place")
        return "\n".join(lines) + "\n"

    def after_open(
        self,
        target: Union[int, Io61File, BinaryIO, None] = None,
        mode: Optional[int] = None,
    ) -> None:
        """Apply pipe-size and nonblocking options to ``target``, then wait out any delay."""
        if target is not None:
            fd = target if isinstance(target, int) else target.fileno()
            if self.pipebuf_size > 0:
                try:
                    import fcntl

                    setpipe = getattr(fcntl, "F_SETPIPE_SZ", None)
                    if setpipe is not None:
                        fcntl.fcntl(fd, setpipe, self.pipebuf_size)
                except (ImportError, OSError):
                    pass
            if self.nonblocking:
                try:
                    os.set_blocking(fd, False)
                except OSError:
                    pass
        if self.delay > 0:
            now = monotonic_timestamp()
            end = now + self.delay
            while now < end:
                time.sleep(end - now)
                now = monotonic_timestamp()
            self.delay = 0.0

    def after_write(self, target: Union[int, Io61File, BinaryIO]) -> None:
        """Flush ``target`` if requested, then yield if requested."""
        if not isinstance(target, int) and self.flush:
            target.flush()
        if self.yield_usec > 0:
            time.sleep(self.yield_usec / 1e6)


def fd_open_check(filename: Optional[str], mode: int) -> int:
    """Open ``filename`` and return a descriptor (stdin/stdout when None); exit on failure."""
    if filename is None:
        return 0 if (mode & _ACCMODE) == os.O_RDONLY else 1
    try:
        return os.open(filename, mode, 0o666)
    except OSError as exc:
        print(f"{filename}: {exc.strerror}", file=sys.stderr)
        raise SystemExit(1) from exc


def stdio_open_check(filename: Optional[str], mode: int) -> BinaryIO:
    """Like ``fd_open_check`` but return a binary file object."""
    acc = mode & _ACCMODE
    if filename is None:
        return sys.stdin.buffer if acc == os.O_RDONLY else sys.stdout.buffer
    fd = fd_open_check(filename, mode)
    if acc == os.O_RDONLY:
        modestr = "rb"
    elif acc == os.O_WRONLY:
        modestr = "wb"
    else:
        modestr = "r+b"
    return os.fdopen(fd, modestr)


def read_bytewise(f: Io61File, size: int) -> bytes:
    """Read up to ``size`` bytes one ``readc`` call at a time."""
    out = bytearray()
    while len(out) != size:
        ch = f.readc()
        if ch is None:
            break
        out.append(ch)
    return bytes(out)


def write_bytewise(f: Io61File, data: bytes) -> int:
    """Write ``data`` one ``writec`` call at a time; return the count written."""
    written = 0
    for byte in bytes(data):
        try:
            f.writec(byte)
        except OSError:
            break
        written += 1
    return written


_BEGIN_AT = monotonic_timestamp()


def _report_profile() -> None:
    try:
        import resource
    except ImportError:
        return
    real_elapsed = monotonic_timestamp() - _BEGIN_AT
    usage = resource.getrusage(resource.RUSAGE_SELF)
    cusage = resource.getrusage(resource.RUSAGE_CHILDREN)
    utime = usage.ru_utime + cusage.ru_utime
    stime = usage.ru_stime + cusage.ru_stime
    maxrss = usage.ru_maxrss + cusage.ru_maxrss
    if sys.platform == "darwin":
        maxrss = (maxrss + 1023) // 1024
    report = (
        f'{{"time":{real_elapsed:.6f}, "utime":{utime:.6f}, "stime":{stime:.6f}, '
        f'"maxrss":{maxrss}, "minflt":{usage.ru_minflt + cusage.ru_minflt}, '
        f'"majflt":{usage.ru_majflt + cusage.ru_majflt}, '
        f'"inblock":{usage.ru_inblock + cusage.ru_inblock}, '
        f'"oublock":{usage.ru_oublock + cusage.ru_oublock}}}\n'
    ).encode()

    fd = 100
    try:
        os.lseek(fd, 0, os.SEEK_CUR)
    except OSError as exc:
        if exc.errno != __import_errno().ESPIPE:
            fd = 2
    if fd == 2:
        if not os.environ.get("TIMING"):
            return
        sys.stderr.flush()
    while True:
        try:
            if os.write(fd, report) == len(report):
                break
        except (InterruptedError, BlockingIOError):
            continue
        except OSError:
            break


def __import_errno():
    import errno

    return errno


atexit.register(_report_profile)