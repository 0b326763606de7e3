import pytest

from kvbench.engine import (
    STATS_PROPERTY,
    Durability,
    EngineError,
    EngineOptions,
    NotFoundError,
    open_engine,
)


@pytest.fixture
def engine(tmp_path):
    engine = open_engine(EngineOptions(), tmp_path / "engine.db")
    yield engine
    engine.close()


def _stats(engine):
    return dict(line.split(None, 1) for line in engine.get_property(STATS_PROPERTY).splitlines())


def test_put_and_get_round_trip(engine):
    with engine.update() as txn:
        bucket = txn.create_or_open("default")
        txn.put(bucket, b"0000000000000001", memoryview(b"value-1"))

    with engine.view() as txn:
        bucket = txn.open("default")
        assert txn.get(bucket, b"0000000000000001") == b"value-1"
        with pytest.raises(NotFoundError):
            txn.get(bucket, b"0000000000000002")


def test_failed_unit_of_work_is_rolled_back(engine):
    with engine.update() as txn:
        txn.create_or_open("default")

    with pytest.raises(RuntimeError):
        with engine.update() as txn:
            bucket = txn.open("default")
            txn.put(bucket, b"k", b"v")
            raise RuntimeError("abort")

    with engine.view() as txn:
        with pytest.raises(NotFoundError):
            txn.get(txn.open("default"), b"k")

    # The engine is usable again, so the failed transaction was released.
    with engine.update() as txn:
        txn.put(txn.open("default"), b"k", b"v2")


def test_only_one_transaction_at_a_time(engine):
    with engine.view():
        with pytest.raises(EngineError):
            with engine.update():
                pass


def test_view_is_read_only(engine):
    with engine.update() as txn:
        txn.create_or_open("default")
    with engine.view() as txn:
        bucket = txn.create_or_open("default")
        with pytest.raises(EngineError):
            txn.put(bucket, b"k", b"v")


def test_open_missing_container(engine):
    with engine.view() as txn:
        with pytest.raises(NotFoundError):
            txn.open("missing")


def test_invalid_container_name(engine):
    with engine.update() as txn:
        with pytest.raises(EngineError):
            txn.create_or_open('bad"name')


def test_cursor_walks_keys_in_order(engine):
    with engine.update() as txn:
        bucket = txn.create_or_open("default")
        for key in (b"b", b"c", b"a"):
            txn.put(bucket, key, key.upper())

    seen = []
    with engine.view() as txn:
        cursor = txn.new_cursor(txn.open("default"))
        assert not cursor.is_valid()
        cursor.seek_first()
        while cursor.is_valid():
            seen.append((cursor.key(), cursor.value()))
            cursor.next()
        cursor.close()

    assert seen == [(b"a", b"A"), (b"b", b"B"), (b"c", b"C")]


def test_cursor_on_empty_container_is_invalid(engine):
    with engine.update() as txn:
        txn.create_or_open("default")
    with engine.view() as txn:
        cursor = txn.new_cursor(txn.open("default"))
        cursor.seek_first()
        assert not cursor.is_valid()
        with pytest.raises(EngineError):
            cursor.key()
        cursor.close()


def test_checkpoint_flushes_the_log(engine, tmp_path):
    with engine.update() as txn:
        bucket = txn.create_or_open("default")
        for i in range(100):
            txn.put(bucket, b"%016d" % i, b"x" * 100)
    engine.checkpoint(wait=True)
    engine.checkpoint(wait=False)


def test_checkpoint_inside_transaction_fails(engine):
    with engine.update():
        with pytest.raises(EngineError):
            engine.checkpoint(wait=True)


def test_stats_property_reports_configuration(tmp_path):
    options = EngineOptions(durability=Durability.FULL, page_size=8192, cache_size=1024 * 1024)
    engine = open_engine(options, tmp_path / "full.db")
    try:
        stats = _stats(engine)
    finally:
        engine.close()
    assert stats["page_size"] == "8192"
    assert stats["journal_mode"] == "wal"
    assert stats["synchronous"] == "2"
    assert stats["locking_mode"] == "exclusive"
    assert stats["cache_size"] == "-1024"


def test_unknown_property(engine):
    assert engine.get_property("nope") is None


def test_open_failure_is_an_engine_error(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")
    with pytest.raises(EngineError):
        open_engine(EngineOptions(), blocker / "engine.db")
