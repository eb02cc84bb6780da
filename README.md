# ledgerio

`ledgerio` is a small buffered-I/O library, a fixed-width account
database built on it, and four commands that run concurrent
"bank transfer" workloads against such a database.

## Modules

- `ledgerio.io61` — `Io61File`, a wrapper around a file descriptor with a
  single-slot 8 KiB cache (`Io61File.CACHE_SIZE`).
  - Sequential I/O: `readc()` (returns an int, or `None` at end of file),
    `read(size)`, `writec(c)`, `write(data)`, `flush()` and `seek(off)`.
  - Positioned I/O on files opened `os.O_RDWR`: `pread(size, off)` and
    `pwrite(data, off)`. They work on one 8 KiB-aligned block at a time,
    so a result never crosses a block boundary, and `pwrite` only
    overwrites bytes that already exist in the file. After positioned
    I/O, call `seek` before using sequential I/O again.
  - Byte-range locks shared by all threads using the same `Io61File`:
    `try_lock(off, length)` returns `True` or `False` without blocking,
    `lock(off, length)` blocks until the range is free, and
    `unlock(off, length)` releases a range that was locked.
  - `fileno()`, `filesize()` (`None` for anything but a regular file),
    `close()`, and use as a context manager.
  - `fdopen(fd, mode)` wraps an open descriptor; `open_check(filename,
    mode)` opens a file (standard input or output when `filename` is
    `None`) and exits with status 1 and a message if it cannot.
- `ledgerio.args` — `Io61Args`, the option parser the commands use.
  `parse(argv)` takes the full argument list, program name first, and
  raises `UsageError` (whose message is the usage text) on bad input.
  Also `parse_size` for sizes such as `4096`, `0x1000`, `8k`, `1.5m` or
  `2g` (returning `None` when the text is not a valid size),
  `monotonic_timestamp`, `fd_open_check`, `stdio_open_check`,
  `read_bytewise` and `write_bytewise`.
- `ledgerio.ftxdb` — `FtxDb` and `FtxAcct`. A database is a regular file
  of 16-byte records: a name running up to the first space, and a
  right-aligned 7-character balance at offset 8 followed by a newline.
  `FtxAcct(db, index)` is a context manager that locks the record;
  `read(namesz)` returns `(name, balance)` and `write(balance)` stores a
  new balance. `parse_account` and `unparse_balance` convert records to
  and from values.
- `ledgerio.transfers` — the workloads `transfer` and `sbf_transfer`,
  `format_ledger_entry`, `summary_line`, and the command entry points.
- `ledgerio.elf` — `ElfHeader`, `ElfProgram`, `ElfSection` and
  `ElfSymbol` dataclasses that `parse(data, offset)` and `pack()` 64-bit
  little-endian ELF structures, the `ELF_*` constants, and `to_le` /
  `from_le` for 1-, 2-, 4- and 8-byte integers.
- `ledgerio.paging` — x86-64 paging constants, `PteFlags`, and
  `pageindex`, `pageoffmask`, `pageoffset` and `va_is_canonical`.

## Installation

```
pip install .
```

Install with `pip install .[test]` to run the test suite with `pytest`.

## Using the file wrapper

```python
import os
from ledgerio.io61 import open_check

with open_check("accounts.fdb", os.O_RDWR) as f:
    record = f.pread(16, 0)          # first account record
    f.lock(0, 16)
    f.pwrite(b"    100\n", 8)        # replace its balance field
    f.unlock(0, 16)
```

Sequential reading:

```python
import os
from ledgerio.io61 import open_check

with open_check("input.txt", os.O_RDONLY) as f:
    head = f.read(4096)
```

## Transfer commands

Each command starts `-j` threads, and each thread performs `-n` random
transfers between accounts of a database:

| Command         | What it does                                                        |
|-----------------|---------------------------------------------------------------------|
| `ftxxfer`       | Transfers with both accounts locked, in index order                 |
| `ftxunlocked`   | The same transfers without any locking, so updates can be lost      |
| `ftxrocket`     | Locked transfers; the first `-J` threads move money mostly among accounts 0–2 and sometimes from a customer account (3 and up) into one of them |
| `ftxblockchain` | Locked transfers that also write every transfer as two lines to a ledger file |

Options:

```
-i FILE    account database to read (default accounts.fdb);
           FILE may also be given as the only positional argument
-j N       number of threads (default 4)
-n N       operations per thread (default 100000)
-D DELAY   wait DELAY seconds before starting
```

`ftxrocket` also accepts `-J N`, the number of distinguished threads
(default 1, at most the number of threads), and `ftxblockchain` accepts
`-W` to write ledger entries one byte at a time.

The input database is never changed: it is copied to
`/tmp/newaccounts.fdb` and the transfers run on the copy. File names may
contain only letters, digits and `~./-_`; otherwise the command prints
`Bad filenames` and exits with status 1. `ftxblockchain` writes its
ledger to `/tmp/ledger.fdb`. Bad options print the usage text and exit
with status 1.

Example:

```
ftxxfer -j 8 -n 10000 accounts.fdb
```

Each command prints a summary on standard error, for example:

```
8 threads, 80000 operations, 1.234567s CPU time, 0.987654s real time
```

When the program exits, `ledgerio.args` writes a one-line JSON resource
report (time, CPU times, peak memory, faults, block I/O) to file
descriptor 100 if it is open, or to standard error if the `TIMING`
environment variable is set.

## What it does not do

- There is no command to create an account database; the commands need
  an existing file of 16-byte records whose first balance is not
  negative.
- There is no checker that verifies balances or ledgers after a run.
- `ledgerio.elf` and `ledgerio.paging` only describe data: they do not
  load programs or manage page tables.