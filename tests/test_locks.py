import threading
import time

import pytest

from civiceye.core.errors import StoreUnavailableError
from civiceye.core.locks import KeyedLocks


def test_entries_are_dropped_when_idle():
    locks = KeyedLocks(timeout=1)
    with locks.hold(1):
        with locks.hold(2):
            assert len(locks) == 2
    assert len(locks) == 0


def test_timeout_raises_store_unavailable():
    locks = KeyedLocks(timeout=0.05)
    held = threading.Event()
    release = threading.Event()

    def holder():
        with locks.hold(7):
            held.set()
            release.wait(2)

    t = threading.Thread(target=holder)
    t.start()
    held.wait(2)
    try:
        with pytest.raises(StoreUnavailableError):
            with locks.hold(7):
                pass
    finally:
        release.set()
        t.join()
    assert len(locks) == 0


def test_same_key_is_serialised():
    locks = KeyedLocks(timeout=2)
    inside = []
    overlaps = []

    def work():
        with locks.hold("issue"):
            if inside:
                overlaps.append(True)
            inside.append(1)
            time.sleep(0.01)
            inside.pop()

    threads = [threading.Thread(target=work) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert overlaps == []
