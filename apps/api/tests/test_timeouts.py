import threading
import time

from ghostops.core.timeouts import MAX_WORKERS, call_with_timeout


def test_value_error_and_timeout_outcomes():
    assert call_with_timeout(lambda x: x * 2, 1.0, 21).value == 42

    def boom():
        raise ValueError("nope")

    failed = call_with_timeout(boom, 1.0)
    assert not failed.ok
    assert isinstance(failed.error, ValueError)

    slow = call_with_timeout(time.sleep, 0.05, 0.3)
    assert slow.timed_out
    assert not slow.ok


def test_queue_wait_is_not_charged_to_the_call():
    release = threading.Event()
    busy = [call_with_timeout(release.wait, 0.01, 5) for _ in range(MAX_WORKERS)]
    assert all(outcome.timed_out for outcome in busy)

    # every worker is still held by an abandoned call
    threading.Timer(0.3, release.set).start()
    fast = call_with_timeout(lambda: "fast", 0.1)
    assert fast.ok
    assert fast.value == "fast"
