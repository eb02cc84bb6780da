"""Random "bank transfer" workloads over an account database, and their commands."""

from __future__ import annotations

import os
import random
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import ExitStack
from typing import Callable, List, Optional

from ledgerio.args import Io61Args, UsageError, monotonic_timestamp
from ledgerio.args import write_bytewise as _write_bytewise
from ledgerio.ftxdb import FtxAcct, FtxDb
from ledgerio.io61 import Io61File, open_check

MAX_BALANCE = 9999999
_NAME_BUFSIZE = 16
_DEFAULT_LEDGER = "/tmp/ledger.fdb"

Worker = Callable[[FtxDb, int, int], int]


def format_ledger_entry(name1: str, name2: str, delta: int) -> str:
    """Return the two ledger lines recording ``delta`` moved from ``name1`` to ``name2``."""
    return f"{name1:<7} {-delta:+7d}\n{name2:<7} {delta:+7d}\n"


def summary_line(nthreads: int, totalops: int, cpu_time: float, real_time: float) -> str:
    """Return the run summary printed after all transfers finish."""
    total_us = int(round(cpu_time * 1e6))
    sec, usec = divmod(total_us, 1_000_000)
    return (
        f"{nthreads} {'thread' if nthreads == 1 else 'threads'}, "
        f"{totalops} {'operation' if totalops == 1 else 'operations'}, "
        f"{sec}.{usec:06d}s CPU time, {real_time:.6f}s real time"
    )


def _move(
    db: FtxDb,
    rng: random.Random,
    src: int,
    dst: int,
    mean: float,
    stddev: float,
    locked: bool,
    ledger: Optional[Io61File],
    bytewise: bool,
) -> None:
    acct1 = FtxAcct(db, src)
    acct2 = FtxAcct(db, dst)
    with ExitStack() as stack:
        if locked:
            # Lock in index order so concurrent transfers cannot deadlock.
            first, second = (acct1, acct2) if src < dst else (acct2, acct1)
            stack.enter_context(first)
            stack.enter_context(second)

        namesz = _NAME_BUFSIZE if ledger is not None else 0
        name1, bal1 = acct1.read(namesz)
        name2, bal2 = acct2.read(namesz)

        # Model network delay or heavy computation.
        time.sleep(1e-6)

        delta = min(bal1, int(rng.gauss(mean, stddev)))
        delta = min(delta, MAX_BALANCE - bal2)
        acct1.write(bal1 - delta)
        acct2.write(bal2 + delta)

        if ledger is not None:
            entry = format_ledger_entry(name1 or "", name2 or "", delta).encode("latin-1")
            if len(entry) != 2 * db.asize:
                raise ValueError(f"ledger entry has length {len(entry)}, expected {2 * db.asize}")
            if bytewise:
                written = _write_bytewise(ledger, entry)
            else:
                written = ledger.write(entry)
            if written != len(entry):
                raise OSError("short write to ledger")


def transfer(
    db: FtxDb,
    nops: int,
    seed: int,
    locked: bool = True,
    ledger: Optional[Io61File] = None,
    write_bytewise: bool = False,
) -> int:
    """Perform ``nops`` transfers between random distinct accounts; return the count done.

    With ``locked`` false, accounts are not locked, so concurrent callers can lose
    updates. With a ``ledger``, each transfer is recorded there as two lines.
    """
    if db.naccounts < 2:
        raise ValueError("transfers need at least two accounts")
    rng = random.Random(seed)
    last = db.naccounts - 1
    done = 0
    while done != nops:
        src, dst = rng.randint(0, last), rng.randint(0, last)
        if src == dst:
            continue
        _move(db, rng, src, dst, 100.0, 10.0, locked, ledger, write_bytewise)
        done += 1
    return done


def sbf_transfer(db: FtxDb, nops: int, seed: int) -> int:
    """Perform ``nops`` transfers favouring accounts 0-2; return the count done.

    Nine times in ten money moves between two of accounts 0-2; otherwise it moves
    from a customer account (3 and above) into one of them.
    """
    if db.naccounts < 4:
        raise ValueError("this workload needs at least four accounts")
    rng = random.Random(seed)
    last = db.naccounts - 1
    done = 0
    while done != nops:
        if rng.randint(0, 99) < 90:
            src = rng.randint(0, 2)
            dst = rng.randint(0, 2)
            while dst == src:
                dst = rng.randint(0, 2)
        else:
            src = rng.randint(3, last)
            dst = rng.randint(0, 2)
        _move(db, rng, src, dst, 1000.0, 100.0, True, None, False)
        done += 1
    return done


def _cpu_time() -> float:
    try:
        import resource
    except ImportError:
        return time.process_time()
    return resource.getrusage(resource.RUSAGE_SELF).ru_utime


def _run(
    argv: Optional[List[str]],
    opts: str,
    pick_worker: Callable[[int, Io61Args, Optional[Io61File]], Worker],
    distinguished: int = 0,
    with_ledger: bool = False,
) -> int:
    argv = list(sys.argv if argv is None else argv)
    args = Io61Args(opts).set_nthreads(4).set_noperations(100_000)
    if distinguished:
        args.set_ndistinguished_threads(distinguished)
    try:
        args.parse(argv)
    except UsageError as exc:
        sys.stderr.write(str(exc))
        return 1

    db = FtxDb.open_args(args)
    ledger: Optional[Io61File] = None
    try:
        args.after_open(db.f, os.O_RDWR)
        if with_ledger:
            out = args.output_file or _DEFAULT_LEDGER
            ledger = open_check(out, os.O_WRONLY | os.O_CREAT | os.O_TRUNC)
            args.after_open(ledger, os.O_WRONLY)
        seeder = random.SystemRandom()
        start = monotonic_timestamp()
        with ThreadPoolExecutor(max_workers=args.nthreads) as pool:
            futures = [
                pool.submit(
                    pick_worker(i, args, ledger), db, args.noperations, seeder.getrandbits(32)
                )
                for i in range(args.nthreads)
            ]
            totalops = sum(fut.result() for fut in futures)
    finally:
        db.close()
        if ledger is not None:
            ledger.close()

    end = monotonic_timestamp()
    print(summary_line(args.nthreads, totalops, _cpu_time(), end - start), file=sys.stderr)
    return 0


def main_xfer(argv: Optional[List[str]] = None) -> int:
    """Run locked transfers: ``[-j NTHREADS] [-n NOPS] [FILE]``."""
    return _run(argv, "i:D:j:n:", lambda i, args, ledger: transfer)


def main_unlocked(argv: Optional[List[str]] = None) -> int:
    """Run transfers without locking: ``[-j NTHREADS] [-n NOPS] [FILE]``."""

    def worker(db: FtxDb, nops: int, seed: int) -> int:
        return transfer(db, nops, seed, locked=False)

    return _run(argv, "i:D:j:n:", lambda i, args, ledger: worker)


def main_rocket(argv: Optional[List[str]] = None) -> int:
    """Run transfers with distinguished threads: ``[-j N] [-J N] [-n NOPS] [FILE]``."""

    def pick(i: int, args: Io61Args, ledger: Optional[Io61File]) -> Worker:
        return sbf_transfer if i < args.ndistinguished_threads else transfer

    return _run(argv, "i:D:j:J:n:", pick, distinguished=1)


def main_blockchain(argv: Optional[List[str]] = None) -> int:
    """Run locked transfers that also write a ledger: ``[-j N] [-n NOPS] [-W] [FILE]``."""

    def pick(i: int, args: Io61Args, ledger: Optional[Io61File]) -> Worker:
        def worker(db: FtxDb, nops: int, seed: int) -> int:
            return transfer(
                db, nops, seed, locked=True, ledger=ledger, write_bytewise=args.write_bytewise
            )

        return worker

    return _run(argv, "i:D:j:n:W", pick, with_ledger=True)