import os

import pytest

from ledgerio.io61 import Io61File, fdopen, open_check

DATA = bytes(range(256)) * 40


def _write_file(path, data):
    path.write_bytes(data)
    return str(path)


def _read_back(name, size):
    with open_check(name, os.O_RDONLY) as f:
        return f.read(size)


def test_read_round_trip(tmp_path):
    name = _write_file(tmp_path / "a", DATA)
    with open_check(name, os.O_RDONLY) as f:
        out = bytearray()
        while True:
            chunk = f.read(1000)
            if not chunk:
                break
            out += chunk
    assert bytes(out) == DATA


def test_readc_returns_bytes_then_none(tmp_path):
    name = _write_file(tmp_path / "a", b"hi")
    with open_check(name, os.O_RDONLY) as f:
        assert f.readc() == ord("h")
        assert f.readc() == ord("i")
        assert f.readc() is None


def test_readc_across_cache_boundary(tmp_path):
    name = _write_file(tmp_path / "a", DATA)
    with open_check(name, os.O_RDONLY) as f:
        got = bytes(iter(f.readc, None))
    assert got == DATA


def test_write_round_trip(tmp_path):
    name = str(tmp_path / "out")
    with open_check(name, os.O_WRONLY | os.O_CREAT | os.O_TRUNC) as f:
        assert f.write(DATA) == len(DATA)
        assert f.write(b"") == 0
    assert (tmp_path / "out").read_bytes() == DATA


def test_writec_round_trip(tmp_path):
    name = str(tmp_path / "out")
    with open_check(name, os.O_WRONLY | os.O_CREAT | os.O_TRUNC) as f:
        for b in DATA:
            f.writec(b)
    assert _read_back(name, len(DATA) + 1) == DATA


def test_writec_truncates_to_byte(tmp_path):
    name = str(tmp_path / "out")
    with open_check(name, os.O_WRONLY | os.O_CREAT | os.O_TRUNC) as f:
        f.writec(0x141)
    assert _read_back(name, 10) == b"A"


def test_seek_then_read(tmp_path):
    name = _write_file(tmp_path / "a", DATA)
    with open_check(name, os.O_RDONLY) as f:
        f.read(10)
        f.seek(9000)
        assert f.read(50) == DATA[9000:9050]
        f.seek(3)
        assert f.readc() == DATA[3]


def test_pread_and_pwrite_round_trip(tmp_path):
    name = _write_file(tmp_path / "a", DATA)
    with open_check(name, os.O_RDWR) as f:
        assert f.pread(16, 100) == DATA[100:116]
        assert f.pwrite(b"XYZ", 9000) == 3
        assert f.pread(3, 9000) == b"XYZ"
        assert f.pread(4, 5) == DATA[5:9]
    expected = DATA[:9000] + b"XYZ" + DATA[9003:]
    assert (tmp_path / "a").read_bytes() == expected


def test_pread_does_not_cross_cache_block(tmp_path):
    name = _write_file(tmp_path / "a", DATA)
    with open_check(name, os.O_RDWR) as f:
        off = Io61File.CACHE_SIZE - 10
        got = f.pread(100, off)
    assert got == DATA[off:Io61File.CACHE_SIZE]


def test_pread_past_end_is_empty(tmp_path):
    name = _write_file(tmp_path / "a", b"abc")
    with open_check(name, os.O_RDWR) as f:
        assert f.pread(5, 10) == b""
        assert f.pwrite(b"zz", 10) == 0


def test_positioned_io_requires_rdwr(tmp_path):
    name = _write_file(tmp_path / "a", DATA)
    with open_check(name, os.O_RDONLY) as f:
        with pytest.raises(ValueError):
            f.pread(4, 0)


def test_sequential_read_refused_in_positioned_mode(tmp_path):
    name = _write_file(tmp_path / "a", DATA)
    with open_check(name, os.O_RDWR) as f:
        f.pread(4, 0)
        with pytest.raises(ValueError):
            f.read(4)
        f.seek(0)
        assert f.read(4) == DATA[:4]


def test_negative_offset_rejected(tmp_path):
    name = _write_file(tmp_path / "a", DATA)
    with open_check(name, os.O_RDWR) as f:
        with pytest.raises(ValueError):
            f.pread(1, -1)


def test_filesize_regular_and_pipe(tmp_path):
    name = _write_file(tmp_path / "a", DATA)
    with open_check(name, os.O_RDONLY) as f:
        assert f.filesize() == len(DATA)
    r, w = os.pipe()
    try:
        f = fdopen(r, os.O_RDONLY)
        assert f.filesize() is None
        assert f.seekable is False
        f.close()
    finally:
        os.close(w)


def test_read_from_pipe(tmp_path):
    r, w = os.pipe()
    os.write(w, b"pipe data")
    os.close(w)
    with fdopen(r, os.O_RDONLY) as f:
        assert f.read(100) == b"pipe data"
        assert f.read(100) == b""


def test_try_lock_overlap(tmp_path):
    name = _write_file(tmp_path / "a", DATA)
    with open_check(name, os.O_RDWR) as f:
        assert f.try_lock(0, 16) is True
        assert f.try_lock(8, 16) is False
        assert f.try_lock(16, 16) is True
        f.unlock(0, 16)
        assert f.try_lock(8, 4) is True


def test_lock_then_unlock_allows_relock(tmp_path):
    name = _write_file(tmp_path / "a", DATA)
    with open_check(name, os.O_RDWR) as f:
        f.lock(32, 16)
        assert f.try_lock(40, 1) is False
        f.unlock(32, 16)
        assert f.try_lock(40, 1) is True


def test_unlock_unheld_range_raises(tmp_path):
    name = _write_file(tmp_path / "a", DATA)
    with open_check(name, os.O_RDWR) as f:
        with pytest.raises(ValueError):
            f.unlock(0, 16)
        with pytest.raises(ValueError):
            f.lock(-1, 4)


def test_fdopen_rejects_append(tmp_path):
    fd = os.open(str(tmp_path / "a"), os.O_WRONLY | os.O_CREAT)
    try:
        with pytest.raises(ValueError):
            fdopen(fd, os.O_WRONLY | os.O_APPEND)
    finally:
        os.close(fd)


def test_open_check_missing_file_exits(tmp_path):
    with pytest.raises(SystemExit) as info:
        open_check(str(tmp_path / "missing"), os.O_RDONLY)
    assert info.value.code == 1


def test_open_check_none_uses_standard_streams():
    assert open_check(None, os.O_RDONLY).fileno() == 0
    assert open_check(None, os.O_WRONLY).fileno() == 1


def test_close_releases_descriptor(tmp_path):
    name = _write_file(tmp_path / "a", DATA)
    f = open_check(name, os.O_RDONLY)
    fd = f.fileno()
    f.close()
    with pytest.raises(OSError):
        os.fstat(fd)