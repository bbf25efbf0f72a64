#tests\test_locks.py

"""Test per-resource locks."""

import threading
import time

from workload_engine.lifecycle.locks import ResourceLockRegistry


class TestResourceLockRegistry:
    """Test lock registry."""

    def test_same_name_is_serialized(self):
        registry = ResourceLockRegistry()
        order = []
        inside = threading.Event()

        def first():
            with registry.hold("bunker-app-web-1"):
                inside.set()
                time.sleep(0.2)
                order.append("first")

        def second():
            inside.wait(5)
            with registry.hold("bunker-app-web-1"):
                order.append("second")

        threads = [threading.Thread(target=first), threading.Thread(target=second)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert order == ["first", "second"]

    def test_different_names_do_not_block(self):
        registry = ResourceLockRegistry()

        with registry.hold("bunker-app-a"):
            acquired = threading.Event()

            def other():
                with registry.hold("bunker-app-b"):
                    acquired.set()

            thread = threading.Thread(target=other)
            thread.start()
            thread.join(timeout=5)

            assert acquired.is_set()
            assert registry.is_locked("bunker-app-a")

    def test_entries_are_dropped_when_released(self):
        registry = ResourceLockRegistry()

        with registry.hold("bunker-app-a"):
            assert registry.tracked() == 1

        assert registry.tracked() == 0
        assert not registry.is_locked("bunker-app-a")

    def test_released_on_error(self):
        registry = ResourceLockRegistry()

        try:
            with registry.hold("bunker-app-a"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass

        assert registry.tracked() == 0
