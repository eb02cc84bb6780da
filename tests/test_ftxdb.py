import os

import pytest

from ledgerio.args import Io61Args
from ledgerio.ftxdb import FtxAcct, FtxDb, parse_account, unparse_balance
from ledgerio.io61 import open_check


def _record(name, balance):
    return f"{name:<8}{balance:>7}\n".encode()


def _write_db(path, accounts):
    path.write_bytes(b"".join(_record(n, b) for n, b in accounts))
    return path


@pytest.fixture
def db(tmp_path):
    path = _write_db(tmp_path / "accounts.fdb", [("alice", 100), ("bob", 2500), ("carol", 0)])
    database = FtxDb(open_check(str(path), os.O_RDWR))
    yield database
    database.close()


def test_naccounts(db):
    assert db.naccounts == 3


def test_parse_name_and_balance(db):
    assert parse_account(_record("alice", 100), db, 16) == ("alice", 100)


def test_parse_without_name(db):
    assert parse_account(_record("bob", 2500), db) == (None, 2500)


def test_parse_truncates_name(db):
    name, _ = parse_account(_record("alice", 5), db, 3)
    assert name == "alice"[:2]


def test_parse_plus_and_negative(db):
    plus = b"dave    " + b"   +42\n".rjust(8)
    assert parse_account(plus, db)[1] == 42
    assert parse_account(_record("erin", -17), db)[1] == -17


def test_parse_wrong_length(db):
    with pytest.raises(ValueError):
        parse_account(_record("alice", 1)[:-1], db)


def test_parse_no_digits(db):
    with pytest.raises(ValueError):
        parse_account(b"alice   " + b"   abc\n".rjust(8), db)


def test_unparse_pinned(db):
    assert unparse_balance(db, 100) == b"    100\n"


def test_unparse_round_trip(db):
    for balance in (0, 7, 9999999, -123456):
        field = unparse_balance(db, balance)
        assert len(field) == db.balance_size + 1
        assert parse_account(b"x" * 8 + field, db)[1] == balance


def test_unparse_too_large(db):
    with pytest.raises(ValueError):
        unparse_balance(db, 10_000_000)


def test_read_accounts(db):
    assert FtxAcct(db, 1).read(16) == ("bob", 2500)
    assert FtxAcct(db, 2).read() == (None, 0)


def test_account_index_out_of_range(db):
    with pytest.raises(IndexError):
        FtxAcct(db, 3)


def test_write_persists(tmp_path):
    path = _write_db(tmp_path / "a.fdb", [("alice", 100), ("bob", 2500)])
    with FtxDb(open_check(str(path), os.O_RDWR)) as database:
        acct = FtxAcct(database, 1)
        acct.write(2600)
        assert acct.read(16) == ("bob", 2600)
    assert path.read_bytes() == _record("alice", 100) + _record("bob", 2600)


def test_bad_size(tmp_path):
    path = tmp_path / "bad.fdb"
    path.write_bytes(_record("alice", 1) + b"xx")
    f = open_check(str(path), os.O_RDWR)
    with pytest.raises(ValueError):
        FtxDb(f)
    f.close()


def test_negative_first_balance(tmp_path):
    path = _write_db(tmp_path / "neg.fdb", [("alice", -5)])
    f = open_check(str(path), os.O_RDWR)
    with pytest.raises(ValueError):
        FtxDb(f)
    f.close()


def test_lock_context_holds_range(db):
    acct = FtxAcct(db, 1)
    with acct:
        assert acct.locked is True
        assert db.f.try_lock(acct.offset, db.asize) is False
    assert acct.locked is False
    assert db.f.try_lock(acct.offset, db.asize) is True
    db.f.unlock(acct.offset, db.asize)


def test_double_lock_and_unlock_errors(db):
    acct = FtxAcct(db, 0)
    with pytest.raises(RuntimeError):
        acct.unlock()
    acct.lock()
    with pytest.raises(RuntimeError):
        acct.lock()
    acct.unlock()
    assert acct.locked is False


def test_open_args_copies(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    _write_db(tmp_path / "orig.fdb", [("alice", 100), ("bob", 2500)])
    args = Io61Args("i:")
    args.input_file = "orig.fdb"
    args.input_files = ["orig.fdb", "copy.fdb"]
    with FtxDb.open_args(args) as database:
        assert database.naccounts == 2
        acct = FtxAcct(database, 0)
        acct.write(50)
        assert acct.read(16) == ("alice", 50)
    assert (tmp_path / "copy.fdb").read_bytes() == _record("alice", 50) + _record("bob", 2500)
    assert (tmp_path / "orig.fdb").read_bytes() == _record("alice", 100) + _record("bob", 2500)


def test_open_args_modify_in_place(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    _write_db(tmp_path / "orig.fdb", [("alice", 100)])
    args = Io61Args("i:M")
    args.input_file = "orig.fdb"
    args.input_files = ["orig.fdb"]
    args.modify = True
    with FtxDb.open_args(args) as database:
        assert database.naccounts == 1
        acct = FtxAcct(database, 0)
        acct.write(99)
        assert acct.read(16) == ("alice", 99)
    assert (tmp_path / "orig.fdb").read_bytes() == _record("alice", 99)


def test_open_args_bad_filenames(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    args = Io61Args("i:")
    args.input_file = "bad name.fdb"
    args.input_files = ["bad name.fdb", "copy.fdb"]
    with pytest.raises(SystemExit) as info:
        FtxDb.open_args(args)
    assert info.value.code == 1