# apps/api/ghostops/core/timeouts.py

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass
from typing import Any, Callable, Optional

MAX_WORKERS = 16

# Abandoned calls keep their worker until the client-side timeout fires.
_executor = ThreadPoolExecutor(max_workers=MAX_WORKERS, thread_name_prefix="ghostops-call")


@dataclass(frozen=True)
class CallOutcome:
    """Ok(value) | TimedOut | Err(error)."""

    value: Any = None
    timed_out: bool = False
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.error is None


def call_with_timeout(fn: Callable[..., Any], timeout_s: float, /, *args: Any, **kwargs: Any) -> CallOutcome:
    """
    Run fn(*args, **kwargs) with a hard wall-clock limit.
    The limit starts when a worker picks the call up, so time spent queued
    behind busy workers is not charged to it.
    The result of a call that overruns is discarded.
    """
    started = threading.Event()

    def _run():
        started.set()
        return fn(*args, **kwargs)

    future = _executor.submit(_run)
    started.wait()
    try:
        value = future.result(timeout=max(0.01, float(timeout_s)))
    except FuturesTimeout:
        return CallOutcome(timed_out=True)
    except Exception as e:
        return CallOutcome(error=e)
    return CallOutcome(value=value)
