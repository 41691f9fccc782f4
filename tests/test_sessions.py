# -*- coding: utf-8 -*-

import threading
import time

import pytest

from hashdrop import SessionInvalid, SessionTable, UploadTooLarge, WaitTimeout


class Clock(object):
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def table(clock):
    return SessionTable(100, max_wait=5, clock=clock)


def test_session_table_out_of_order(table):
    assert not table.submit_chunk("t", 2, 3, "/two", "foo.txt").ready
    assert not table.submit_chunk("t", 3, 3, "/three", "foo.txt").ready
    assert "t" in table

    submission = table.submit_chunk("t", 1, 3, "/one", "foo.txt")

    assert submission.ready
    assert submission.paths == ("/one", "/two", "/three")
    assert submission.filename == "foo.txt"
    assert "t" not in table
    assert len(table) == 0


def test_session_table_single_chunk(table):
    submission = table.submit_chunk("t", 1, 1, "/one")

    assert submission.ready
    assert submission.paths == ("/one",)


def test_session_table_duplicate_chunk(table):
    table.submit_chunk("t", 1, 2, "/one")

    with pytest.raises(SessionInvalid):
        table.submit_chunk("t", 1, 2, "/again")

    assert table.submit_chunk("t", 2, 2, "/two").paths == ("/one", "/two")


@pytest.mark.parametrize("index", [0, 4, -1])
def test_session_table_index_out_of_range(table, index):
    with pytest.raises(SessionInvalid):
        table.submit_chunk("t", index, 3, "/x")

    assert "t" not in table


def test_session_table_total_mismatch(table):
    table.submit_chunk("t", 1, 3, "/one")

    with pytest.raises(SessionInvalid):
        table.submit_chunk("t", 2, 4, "/two")


def test_session_table_finalized(table):
    table.submit_chunk("t", 1, 1, "/one")

    with pytest.raises(SessionInvalid):
        table.submit_chunk("t", 1, 1, "/one")

    with pytest.raises(SessionInvalid):
        table.admit("t", 1, 10)


def test_session_table_admit(table):
    table.admit("t", 10, 10)

    with pytest.raises(UploadTooLarge):
        table.admit("t", 11, 10)


def test_session_table_admit_once_per_session(table):
    table.submit_chunk("t", 1, 2, "/one")

    # Live sessions are not checked again.
    table.admit("t", 1000, 1000)


@pytest.mark.parametrize("total,size", [(0, 10), (1, -1)])
def test_session_table_admit_invalid(table, total, size):
    with pytest.raises(SessionInvalid):
        table.admit("t", total, size)


def test_session_table_remove(table):
    table.submit_chunk("t", 2, 3, "/two")
    table.submit_chunk("t", 1, 3, "/one")

    assert table.remove_session("t") == ["/one", "/two"]
    assert table.remove_session("t") == []
    assert "t" not in table


def race(table, token, submissions):
    barrier = threading.Barrier(len(submissions))
    results = []
    lock = threading.Lock()

    def submit(index, path):
        barrier.wait()
        try:
            result = table.submit_chunk(token, index, 3, path)
        except SessionInvalid:
            result = None
        with lock:
            results.append(result)

    threads = [threading.Thread(target=submit, args=args) for args in submissions]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    return [result for result in results if result and result.ready]


@pytest.mark.parametrize("attempt", range(20))
def test_session_table_racing_final_chunks(table, attempt):
    table.submit_chunk("t", 1, 3, "/one")

    ready = race(table, "t", [(2, "/two"), (3, "/three")])

    assert len(ready) == 1
    assert ready[0].paths == ("/one", "/two", "/three")


@pytest.mark.parametrize("attempt", range(20))
def test_session_table_racing_duplicate_final_chunk(table, attempt):
    table.submit_chunk("t", 1, 3, "/one")
    table.submit_chunk("t", 2, 3, "/two")

    ready = race(table, "t", [(3, "/three"), (3, "/three-retry")])

    assert len(ready) == 1


def test_session_table_wait(table):
    results = []

    def waiter():
        results.append(table.wait("t", timeout=5))

    table.submit_chunk("t", 1, 2, "/one")
    thread = threading.Thread(target=waiter)
    thread.start()

    table.submit_chunk("t", 2, 2, "/two")
    table.resolve("t", "published")
    thread.join()

    assert results == ["published"]
    assert table.wait("t") == "published"


def test_session_table_wait_unknown(table):
    started = time.monotonic()

    with pytest.raises(SessionInvalid):
        table.wait("nobody", timeout=5)

    assert time.monotonic() - started < 1


def test_session_table_wait_expired(table, clock):
    table.submit_chunk("t", 1, 1, "/one")
    table.resolve("t", "published")
    clock.now += 100
    table.expire(60)

    with pytest.raises(SessionInvalid):
        table.wait("t", timeout=5)


def test_session_table_wait_failure(table):
    table.submit_chunk("t", 1, 1, "/one")
    table.fail("t", RuntimeError("disk full"))

    with pytest.raises(RuntimeError):
        table.wait("t")


def test_session_table_retry_after_failure(table):
    table.submit_chunk("t", 1, 1, "/one")
    table.fail("t", RuntimeError("disk full"))

    table.admit("t", 1, 10)
    submission = table.submit_chunk("t", 1, 1, "/again")
    table.resolve("t", "published")

    assert submission.paths == ("/again",)
    assert table.wait("t") == "published"


def test_session_table_live_paths(table):
    table.submit_chunk("a", 1, 2, "/a1")
    table.submit_chunk("b", 2, 3, "/b2")
    table.submit_chunk("b", 3, 3, "/b3")
    table.submit_chunk("c", 1, 1, "/c1")

    assert table.live_paths() == {"/a1", "/b2", "/b3"}


def test_session_table_wait_timeout(table):
    table.submit_chunk("t", 1, 2, "/one")

    with pytest.raises(WaitTimeout):
        table.wait("t", timeout=0.05)


def test_session_table_expire(table, clock):
    table.submit_chunk("old", 1, 2, "/old")
    clock.now += 100
    table.submit_chunk("new", 1, 2, "/new")
    clock.now += 50

    assert table.expire(120) == ["/old"]
    assert "old" not in table
    assert "new" in table


def test_session_table_expire_notices(table, clock):
    table.submit_chunk("done", 1, 1, "/done")
    table.resolve("done", "published")
    clock.now += 100

    table.expire(60)

    # The finished session is forgotten, so the token may be reused.
    assert not table.submit_chunk("done", 1, 2, "/again").ready


def test_session_table_expire_fails_waiters(table, clock):
    table.submit_chunk("t", 1, 2, "/one")
    results = []

    def waiter():
        try:
            table.wait("t", timeout=5)
        except SessionInvalid as exc:
            results.append(exc)

    clock.now += 100
    thread = threading.Thread(target=waiter)
    thread.start()
    while "t" not in table._notices:
        time.sleep(0.01)

    # The notice is younger than the cutoff until the clock moves on.
    clock.now += 100
    table.expire(60)
    thread.join()

    assert len(results) == 1
