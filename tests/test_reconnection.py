"""
Tests for the bounded reconnect-and-resend policy.

Worst case per datagram: two send attempts and one reconnect. Nothing is
queued; a datagram that fails twice is dropped.
"""

import threading
from collections import Counter

from umi_bridge.mocks import MockDatagramSender, MockLogger
from umi_bridge.reconnection import RetryingSender


def _link(sender, logger=None):
    return RetryingSender(
        sender=sender,
        logger=logger or MockLogger(),
        remote_host="10.0.0.166",
        remote_port=9000,
        local_listen_port=9100,
    )


class TestRetryingSender:
    """Tests for RetryingSender."""

    def test_lazy_connect_on_first_send(self):
        """A link that was never connected connects on first send."""
        sender = MockDatagramSender()
        link = _link(sender)

        assert link.send_with_retry(b"x")
        assert sender.connect_calls == [("10.0.0.166", 9000)]
        assert sender.sent == [b"x"]
        assert link.connected

    def test_connected_link_does_not_reconnect(self):
        sender = MockDatagramSender()
        link = _link(sender)
        link.connect()
        link.send_with_retry(b"a")
        link.send_with_retry(b"b")
        assert len(sender.connect_calls) == 1
        assert sender.sent == [b"a", b"b"]

    def test_fail_then_succeed(self):
        """First send fails: reconnect once, resend once, report success."""
        sender = MockDatagramSender()
        link = _link(sender)
        link.connect()
        sender.script_sends(False, True)

        assert link.send_with_retry(b"x") is True
        assert len(sender.send_calls) == 2
        assert len(sender.connect_calls) == 2
        assert link.reconnect_count == 1
        assert link.connected

    def test_fail_twice_is_bounded(self):
        """Two failures: exactly two sends, one reconnect, then give up."""
        sender = MockDatagramSender()
        logger = MockLogger()
        link = _link(sender, logger)
        link.connect()
        sender.clear()
        sender.script_sends(False, False)

        assert link.send_with_retry(b"x") is False
        assert len(sender.send_calls) == 2
        assert len(sender.connect_calls) == 1
        assert link.connected is False
        assert link.send_failures == 1
        assert logger.contains("reconnecting", "WARNING")

    def test_connect_failure_skips_send(self):
        """If the lazy connect fails nothing is sent."""
        sender = MockDatagramSender(connect_ok=False)
        link = _link(sender)

        assert link.send_with_retry(b"x") is False
        assert sender.send_calls == []
        assert link.connected is False

    def test_reconnect_failure_gives_up(self):
        """Send fails, reconnect fails: one send, no resend."""
        sender = MockDatagramSender()
        link = _link(sender)
        link.connect()
        sender.clear()
        sender.script_sends(False)
        sender.script_connects(False)

        assert link.send_with_retry(b"x") is False
        assert len(sender.send_calls) == 1
        assert len(sender.connect_calls) == 1
        assert link.reconnect_count == 0

    def test_next_send_recovers(self):
        """After a dropped datagram the next send connects lazily again."""
        sender = MockDatagramSender()
        link = _link(sender)
        link.connect()
        sender.script_sends(False, False)
        assert link.send_with_retry(b"lost") is False

        assert link.send_with_retry(b"next") is True
        assert sender.sent == [b"next"]

    def test_oserror_counts_as_failure(self):
        class RaisingSender(MockDatagramSender):
            def send(self, data):
                raise ConnectionRefusedError("port unreachable")

        link = _link(RaisingSender())
        assert link.send_with_retry(b"x") is False

    def test_disconnect_clears_flag(self):
        sender = MockDatagramSender()
        link = _link(sender)
        link.connect()
        link.disconnect()
        assert link.connected is False
        assert sender.disconnect_calls == 1

    def test_state_snapshot(self):
        link = _link(MockDatagramSender())
        link.connect()
        state = link.state
        assert state.connected is True
        assert state.remote_host == "10.0.0.166"
        assert state.remote_port == 9000
        assert state.local_listen_port == 9100

    def test_disconnect_closes_until_connect(self):
        """After disconnect() sends fail without reconnecting."""
        sender = MockDatagramSender()
        link = _link(sender)
        link.connect()
        link.disconnect()
        sender.clear()

        assert link.closed
        assert link.send_with_retry(b"late") is False
        assert sender.connect_calls == []
        assert sender.send_calls == []
        assert link.connected is False

        assert link.connect()
        assert not link.closed
        assert link.send_with_retry(b"again") is True

    def test_connect_oserror_is_failed_send(self):
        """An OSError from connect() becomes a failed send, not an exception."""
        class NoSocketsSender(MockDatagramSender):
            def connect(self, host, port):
                raise OSError(24, "Too many open files")

        logger = MockLogger()
        link = _link(NoSocketsSender(), logger)

        assert link.connect() is False
        assert link.send_with_retry(b"x") is False
        assert link.connected is False
        assert logger.contains("Too many open files", "WARNING")


class TestConcurrentSends:
    """send_with_retry() called from several threads at once."""

    def test_parallel_senders_stay_consistent(self):
        threads_n, per_thread = 4, 50
        sender = MockDatagramSender()
        sender.script_sends(*([True, False, True, False, False] * 60))
        link = _link(sender)
        results = {}
        results_lock = threading.Lock()
        start = threading.Event()

        def worker(tid):
            start.wait()
            for i in range(per_thread):
                data = f"{tid}-{i}".encode()
                ok = link.send_with_retry(data)
                with results_lock:
                    results[data] = ok

        workers = [threading.Thread(target=worker, args=(t,)) for t in range(threads_n)]
        for w in workers:
            w.start()
        start.set()
        for w in workers:
            w.join(10.0)

        assert len(results) == threads_n * per_thread
        assert link.send_attempts == len(sender.send_calls)

        attempts = Counter(sender.send_calls)
        assert max(attempts.values()) <= 2
        assert set(attempts) == set(results)

        delivered = [d for d, ok in results.items() if ok]
        assert sorted(sender.sent) == sorted(delivered)
        assert link.connected == sender.is_connected
