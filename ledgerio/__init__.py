"""Buffered file I/O with positioned access and range locks, an account database and transfer workloads built on it, plus ELF and x86-64 paging helpers."""

__version__ = "0.1.0"
__all__ = ["args", "elf", "ftxdb", "io61", "paging", "transfers"]