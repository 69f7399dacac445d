"""Tests for reader/writer lock and cancellation primitives."""

import threading
import time

import pytest

from runjournal.core.locks import CancelToken, Deadline, ReadWriteLock, stop_reason


class TestReadWriteLock:
    def test_many_readers_share_the_lock(self) -> None:
        lock = ReadWriteLock()
        inside = threading.Barrier(3, timeout=5)

        def reader() -> None:
            with lock.read():
                # All three readers must be inside at once to pass the barrier
                inside.wait()

        threads = [threading.Thread(target=reader) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert not any(t.is_alive() for t in threads)

    def test_writer_excludes_readers(self) -> None:
        lock = ReadWriteLock()
        events: list[str] = []
        lock.acquire_write()

        def reader() -> None:
            with lock.read():
                events.append("read")

        t = threading.Thread(target=reader)
        t.start()
        time.sleep(0.05)
        events.append("write-done")
        lock.release_write()
        t.join(timeout=5)

        assert events == ["write-done", "read"]

    def test_waiting_writer_blocks_new_readers(self) -> None:
        """Writer preference: a reader arriving after a waiting writer runs after it."""
        lock = ReadWriteLock()
        order: list[str] = []
        lock.acquire_read()

        def writer() -> None:
            with lock.write():
                order.append("writer")

        def late_reader() -> None:
            with lock.read():
                order.append("reader")

        w = threading.Thread(target=writer)
        w.start()
        time.sleep(0.05)
        r = threading.Thread(target=late_reader)
        r.start()
        time.sleep(0.05)
        lock.release_read()
        w.join(timeout=5)
        r.join(timeout=5)

        assert order == ["writer", "reader"]

    def test_unbalanced_release_raises(self) -> None:
        lock = ReadWriteLock()
        with pytest.raises(RuntimeError):
            lock.release_read()
        with pytest.raises(RuntimeError):
            lock.release_write()


class TestCancelToken:
    def test_first_reason_kept(self) -> None:
        token = CancelToken()
        token.cancel("shutdown")
        token.cancel("again")

        assert token.cancelled
        assert token.reason == "shutdown"

    def test_wait_returns_false_on_timeout(self) -> None:
        assert CancelToken().wait(0.01) is False


class TestDeadline:
    def test_no_timeout_never_expires(self) -> None:
        deadline = Deadline(None)
        assert not deadline.expired
        assert deadline.remaining() is None

    def test_zero_timeout_expired_immediately(self) -> None:
        deadline = Deadline(0)
        assert deadline.expired
        assert deadline.remaining() == 0.0

    def test_negative_timeout_rejected(self) -> None:
        with pytest.raises(ValueError):
            Deadline(-1)


class TestStopReason:
    def test_cancel_takes_precedence(self) -> None:
        token = CancelToken()
        token.cancel("user abort")
        assert stop_reason(token, Deadline(0)) == "user abort"

    def test_deadline_reason(self) -> None:
        assert stop_reason(None, Deadline(0)) == "deadline exceeded"

    def test_continue(self) -> None:
        assert stop_reason(CancelToken(), Deadline(60)) is None
