"""ELF64 executable structures and little-endian integer helpers."""

from __future__ import annotations

import struct
from dataclasses import astuple, dataclass
from typing import ClassVar

ELF_MAGIC = 0x464C457F

ELF_ET_EXEC = 2

ELF_PTYPE_LOAD = 1

ELF_PFLAG_EXEC = 1
ELF_PFLAG_WRITE = 2
ELF_PFLAG_READ = 4

ELF_SHT_NULL = 0
ELF_SHT_PROGBITS = 1
ELF_SHT_SYMTAB = 2
ELF_SHT_STRTAB = 3
ELF_SHT_NOBITS = 8

ELF_SHF_ALLOC = 2

ELF_STN_UNDEF = 0

ELF_SHN_UNDEF = 0
ELF_SHN_ABS = 0xFFF1
ELF_SHN_COMMON = 0xFFF2

ELF_STB_MASK = 0xF0
ELF_STB_LOCAL = 0x00
ELF_STB_GLOBAL = 0x10
ELF_STB_WEAK = 0x20
ELF_STT_MASK = 0x0F
ELF_STT_OBJECT = 0x01
ELF_STT_FUNC = 0x02


def _unpack(fmt: struct.Struct, data: bytes, offset: int) -> tuple:
    if offset < 0 or len(data) - offset < fmt.size:
        raise ValueError(f"need {fmt.size} bytes at offset {offset}")
    return fmt.unpack_from(data, offset)


@dataclass
class ElfHeader:
    """Executable header."""

    FORMAT: ClassVar[struct.Struct] = struct.Struct("<I12sHHIQQQIHHHHHH")

    e_magic: int = ELF_MAGIC
    e_elf: bytes = bytes(12)
    e_type: int = 0
    e_machine: int = 0
    e_version: int = 0
    e_entry: int = 0
    e_phoff: int = 0
    e_shoff: int = 0
    e_flags: int = 0
    e_ehsize: int = 0
    e_phentsize: int = 0
    e_phnum: int = 0
    e_shentsize: int = 0
    e_shnum: int = 0
    e_shstrndx: int = 0

    @classmethod
    def parse(cls, data: bytes, offset: int = 0) -> "ElfHeader":
        """Decode a header from ``data`` at ``offset``."""
        return cls(*_unpack(cls.FORMAT, data, offset))

    def pack(self) -> bytes:
        """Encode this header in little-endian layout."""
        return self.FORMAT.pack(*astuple(self))


@dataclass
class ElfProgram:
    """Program header, as used by a loader."""

    FORMAT: ClassVar[struct.Struct] = struct.Struct("<IIQQQQQQ")

    p_type: int = 0
    p_flags: int = 0
    p_offset: int = 0
    p_va: int = 0
    p_pa: int = 0
    p_filesz: int = 0
    p_memsz: int = 0
    p_align: int = 0

    @classmethod
    def parse(cls, data: bytes, offset: int = 0) -> "ElfProgram":
        """Decode a program header from ``data`` at ``offset``."""
        return cls(*_unpack(cls.FORMAT, data, offset))

    def pack(self) -> bytes:
        """Encode this program header in little-endian layout."""
        return self.FORMAT.pack(*astuple(self))


@dataclass
class ElfSection:
    """Section header."""

    FORMAT: ClassVar[struct.Struct] = struct.Struct("<IIQQQQIIQQ")

    sh_name: int = 0
    sh_type: int = 0
    sh_flags: int = 0
    sh_addr: int = 0
    sh_offset: int = 0
    sh_size: int = 0
    sh_link: int = 0
    sh_info: int = 0
    sh_addralign: int = 0
    sh_entsize: int = 0

    @classmethod
    def parse(cls, data: bytes, offset: int = 0) -> "ElfSection":
        """Decode a section header from ``data`` at ``offset``."""
        return cls(*_unpack(cls.FORMAT, data, offset))

    def pack(self) -> bytes:
        """Encode this section header in little-endian layout."""
        return self.FORMAT.pack(*astuple(self))


@dataclass
class ElfSymbol:
    """Symbol table entry."""

    FORMAT: ClassVar[struct.Struct] = struct.Struct("<IBBHQQ")

    st_name: int = 0
    st_info: int = 0
    st_other: int = 0
    st_shndx: int = 0
    st_value: int = 0
    st_size: int = 0

    @classmethod
    def parse(cls, data: bytes, offset: int = 0) -> "ElfSymbol":
        """Decode a symbol from ``data`` at ``offset``."""
        return cls(*_unpack(cls.FORMAT, data, offset))

    def pack(self) -> bytes:
        """Encode this symbol in little-endian layout."""
        return self.FORMAT.pack(*astuple(self))

    def binding(self) -> int:
        """Return the binding bits (``ELF_STB_*``)."""
        return self.st_info & ELF_STB_MASK

    def symbol_type(self) -> int:
        """Return the type bits (``ELF_STT_*``)."""
        return self.st_info & ELF_STT_MASK


_SIZES = (1, 2, 4, 8)


def to_le(value: int, size: int) -> bytes:
    """Encode an unsigned integer of ``size`` bytes (1, 2, 4 or 8) little-endian."""
    if size not in _SIZES:
        raise ValueError(f"unsupported integer size {size}")
    return value.to_bytes(size, "little")


def from_le(data: bytes) -> int:
    """Decode a 1-, 2-, 4- or 8-byte little-endian unsigned integer."""
    if len(data) not in _SIZES:
        raise ValueError(f"unsupported integer size {len(data)}")
    return int.from_bytes(data, "little")