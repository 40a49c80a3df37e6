"""Tests for per-key mutual exclusion."""

import threading
import time

from ordering.order.locks import OrderLocks


class TestOrderLocks:
    def test_keys_are_namespaced(self):
        assert OrderLocks.order_key("42") == "order:42"
        assert OrderLocks.session_key("cs_1") == "session:cs_1"
        assert OrderLocks.event_key("evt_1") == "event:evt_1"

    def test_released_keys_are_dropped(self):
        locks = OrderLocks()
        with locks.hold("order:1"):
            assert len(locks) == 1
        assert len(locks) == 0

    def test_same_key_serializes(self):
        locks = OrderLocks()
        active = []
        overlaps = []

        def work():
            with locks.hold("order:1"):
                active.append(1)
                if len(active) > 1:
                    overlaps.append(True)
                time.sleep(0.01)
                active.pop()

        threads = [threading.Thread(target=work) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert overlaps == []
        assert len(locks) == 0

    def test_different_keys_do_not_block(self):
        locks = OrderLocks()
        entered = threading.Event()

        def other():
            with locks.hold("order:2"):
                entered.set()

        with locks.hold("order:1"):
            thread = threading.Thread(target=other)
            thread.start()
            assert entered.wait(timeout=1)
            thread.join()
