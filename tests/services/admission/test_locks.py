from __future__ import annotations

import threading
import time

from guidegate.services.admission import KeyedLocks


def test_same_key_is_serialised():
    locks = KeyedLocks()
    inside = 0
    peak = 0
    guard = threading.Lock()

    def worker() -> None:
        nonlocal inside, peak
        with locks.hold("42"):
            with guard:
                inside += 1
                peak = max(peak, inside)
            time.sleep(0.01)
            with guard:
                inside -= 1

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert peak == 1
    assert len(locks) == 0


def test_different_keys_do_not_block_each_other():
    locks = KeyedLocks()
    with locks.hold("a"):
        acquired = threading.Event()

        def other() -> None:
            with locks.hold("b"):
                acquired.set()

        thread = threading.Thread(target=other)
        thread.start()
        assert acquired.wait(timeout=2)
        thread.join()
        assert len(locks) == 1
    assert len(locks) == 0


def test_lock_is_released_on_error():
    locks = KeyedLocks()
    try:
        with locks.hold("42"):
            raise RuntimeError("boom")
    except RuntimeError:
        pass
    with locks.hold("42"):
        assert len(locks) == 1
