"""
Unit tests for the trailing Debouncer
"""
import threading
import time

from habit_stacker.utils.debouncer import Debouncer


class TestDebouncer:
    """Test debounce window behaviour"""

    def test_burst_delivers_only_last_arguments(self):
        calls = []
        fired = threading.Event()

        def callback(value):
            calls.append(value)
            fired.set()

        debouncer = Debouncer(0.05, callback, name="test")
        for value in range(5):
            debouncer.call(value)

        assert fired.wait(2.0)
        assert calls == [4]
        assert not debouncer.is_pending()

    def test_cancel_drops_pending_call(self):
        calls = []
        debouncer = Debouncer(0.05, calls.append, name="test")

        debouncer.call("x")
        assert debouncer.cancel() is True

        time.sleep(0.15)
        assert calls == []
        assert debouncer.cancel() is False

    def test_flush_runs_immediately_once(self):
        calls = []
        debouncer = Debouncer(10, calls.append, name="test")

        debouncer.call("a")
        debouncer.call("b")

        assert debouncer.flush() is True
        assert calls == ["b"]
        assert debouncer.flush() is False

    def test_callback_error_is_logged_not_raised(self):
        done = threading.Event()

        def callback():
            done.set()
            raise RuntimeError("boom")

        debouncer = Debouncer(0.01, callback, name="test")
        debouncer.call()

        assert done.wait(2.0)
        assert not debouncer.is_pending()
