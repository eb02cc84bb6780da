"""x86-64 paging constants, page-table entry flags and address helpers."""

from __future__ import annotations

import enum

PAGEOFFBITS = 12
PAGEINDEXBITS = 9
PAGESIZE = 1 << PAGEOFFBITS
PAGEOFFMASK = PAGESIZE - 1
PAGETABLE_ENTRIES = 1 << PAGEINDEXBITS

PTE_PAMASK = 0x000FFFFFFFFFF000
PTE_PS_PAMASK = 0x000FFFFFFFFFE000

VA_LOWMIN = 0
VA_LOWMAX = 0x00007FFFFFFFFFFF
VA_LOWEND = 0x0000800000000000
VA_HIGHMIN = 0xFFFF800000000000
VA_HIGHMAX = 0xFFFFFFFFFFFFFFFF
VA_NONCANONMAX = 0x0000FFFFFFFFFFFF
VA_NONCANONEND = 0x0001000000000000

PA_IOLOWMIN = 0x00000000000A0000
PA_IOLOWEND = 0x0000000000100000
PA_IOHIGHMIN = 0x00000000C0000000
PA_IOHIGHEND = 0x0000000100000000

# Interrupt numbers
INT_DE = 0
INT_DB = 1
INT_NM = 2
INT_BP = 3
INT_OF = 4
INT_UD = 6
INT_DF = 8
INT_TS = 10
INT_NP = 11
INT_SS = 12
INT_GP = 13
INT_PF = 14
INT_AC = 17
INT_MC = 18

# CGA console and keyboard
CONSOLE_ADDR = 0xB8000
KEYBOARD_STATUSREG = 0x64
KEYBOARD_STATUS_READY = 0x01
KEYBOARD_DATAREG = 0x60

_ADDR_LIMIT = 1 << 64
_MAX_LEVEL = (64 - 1 - PAGEOFFBITS) // PAGEINDEXBITS


class PteFlags(enum.IntFlag):
    """Bits of a page-table entry."""

    P = 0x1
    W = 0x2
    U = 0x4
    PWU = 0x7
    PWT = 0x8
    PCD = 0x10
    A = 0x20
    D = 0x40
    PS = 0x80
    OS1 = 0x200
    OS2 = 0x400
    OS3 = 0x800
    XD = 0x8000000000000000


# Page-fault error code bits share their values with the entry bits.
PFERR_PRESENT = PteFlags.P
PFERR_WRITE = PteFlags.W
PFERR_USER = PteFlags.U


def _check_addr(addr: int) -> None:
    if not 0 <= addr < _ADDR_LIMIT:
        raise ValueError(f"address {addr:#x} is not a 64-bit unsigned value")


def _check_level(level: int) -> None:
    if not 0 <= level <= _MAX_LEVEL:
        raise ValueError(f"page-table level {level} out of range 0..{_MAX_LEVEL}")


def pageoffmask(level: int) -> int:
    """Return the mask of address bits below the page-table index at ``level``."""
    _check_level(level)
    return (1 << (PAGEOFFBITS + level * PAGEINDEXBITS)) - 1


def pageindex(addr: int, level: int) -> int:
    """Return the 9-bit page-table index of ``addr`` at ``level`` (0 is the lowest)."""
    _check_addr(addr)
    _check_level(level)
    return (addr >> (PAGEOFFBITS + level * PAGEINDEXBITS)) & (PAGETABLE_ENTRIES - 1)


def pageoffset(addr: int, level: int) -> int:
    """Return the offset of ``addr`` within its page at ``level``."""
    _check_addr(addr)
    return addr & pageoffmask(level)


def va_is_canonical(va: int) -> bool:
    """Return whether ``va`` is a canonical x86-64 virtual address."""
    _check_addr(va)
    return va <= VA_LOWMAX or va >= VA_HIGHMIN