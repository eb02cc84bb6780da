import pytest

from ledgerio.paging import (
    PAGEOFFMASK,
    PAGESIZE,
    PFERR_USER,
    PFERR_WRITE,
    PteFlags,
    VA_HIGHMAX,
    VA_HIGHMIN,
    VA_LOWEND,
    VA_LOWMAX,
    VA_NONCANONEND,
    VA_NONCANONMAX,
    pageindex,
    pageoffmask,
    pageoffset,
    va_is_canonical,
)

SAMPLE_ADDRS = [0, 1, 0xFFF, 0x1000, 0x123456789ABC, VA_LOWMAX, 0x0000400000201234]


def test_pageoffmask_level0_is_page_mask():
    assert pageoffmask(0) == PAGEOFFMASK
    assert pageoffmask(0) + 1 == PAGESIZE


@pytest.mark.parametrize("level", [0, 1, 2, 3, 4])
def test_pageoffmask_grows_by_index_bits(level):
    assert pageoffmask(level + 1) == (pageoffmask(level) << 9) | 0x1FF


@pytest.mark.parametrize("addr", SAMPLE_ADDRS)
def test_indices_and_offset_reconstruct_address(addr):
    rebuilt = pageoffset(addr, 0)
    for level in range(4):
        rebuilt |= pageindex(addr, level) << (12 + 9 * level)
    assert rebuilt == addr


@pytest.mark.parametrize("addr", SAMPLE_ADDRS + [VA_HIGHMIN, VA_HIGHMAX])
@pytest.mark.parametrize("level", [0, 1, 2, 3])
def test_index_range_and_offset_split(addr, level):
    assert 0 <= pageindex(addr, level) < 512
    off = pageoffset(addr, level)
    assert off <= pageoffmask(level)
    assert (addr & ~pageoffmask(level)) + off == addr


def test_pageindex_of_page_boundary():
    assert pageindex(PAGESIZE, 0) == 1
    assert pageindex(PAGESIZE - 1, 0) == 0
    assert pageoffset(PAGESIZE, 0) == 0


@pytest.mark.parametrize(
    "va, expected",
    [
        (0, True),
        (VA_LOWMAX, True),
        (VA_LOWEND, False),
        (VA_NONCANONMAX, False),
        (VA_NONCANONEND, False),
        (VA_HIGHMIN - 1, False),
        (VA_HIGHMIN, True),
        (VA_HIGHMAX, True),
    ],
)
def test_va_is_canonical(va, expected):
    assert va_is_canonical(va) is expected


def test_pte_flag_combination():
    assert PteFlags(0x7) == PteFlags.P | PteFlags.W | PteFlags.U
    assert PteFlags.PWU == PteFlags(0x7)
    assert PFERR_WRITE == PteFlags(0x2)
    assert PFERR_USER == PteFlags(0x4)
    assert PteFlags(0x8000000000000000) == PteFlags.XD


@pytest.mark.parametrize("addr", [-1, 1 << 64])
def test_out_of_range_address_rejected(addr):
    with pytest.raises(ValueError):
        pageindex(addr, 0)
    with pytest.raises(ValueError):
        va_is_canonical(addr)
    with pytest.raises(ValueError):
        pageoffset(addr, 0)


@pytest.mark.parametrize("level", [-1, 6])
def test_bad_level_rejected(level):
    with pytest.raises(ValueError):
        pageoffmask(level)
    with pytest.raises(ValueError):
        pageindex(0, level)