"""
Bounded polling for a scan's terminal state.

The interval starts at 2 s and grows by 1.5x up to 10 s; after max_duration_s the
wait gives up with ScanPollTimeout. Cancelling the awaiting task stops polling at
the next await point.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from ..models.job_scan import TERMINAL_SCAN_STATUSES

logger = logging.getLogger(__name__)

FetchScan = Callable[[int], Awaitable[dict[str, Any]]]


class ScanPollTimeout(TimeoutError):
    def __init__(self, scan_id: int, waited_s: float, last: dict[str, Any] | None = None):
        super().__init__(f"Scan {scan_id} still processing after {waited_s:.0f}s")
        self.scan_id = scan_id
        self.waited_s = waited_s
        self.last = last


@dataclass(frozen=True)
class PollPolicy:
    initial_interval_s: float = 2.0
    backoff: float = 1.5
    max_interval_s: float = 10.0
    max_duration_s: float = 300.0

    def intervals(self):
        interval = self.initial_interval_s
        while True:
            yield interval
            interval = min(interval * self.backoff, self.max_interval_s)


def is_terminal(scan: dict[str, Any] | None) -> bool:
    return bool(scan) and scan.get("status") in TERMINAL_SCAN_STATUSES


async def wait_for_scan(
    fetch_scan: FetchScan,
    scan_id: int,
    *,
    policy: PollPolicy = PollPolicy(),
    on_complete: Callable[[dict[str, Any]], Any] | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> dict[str, Any]:
    """
    Poll ``fetch_scan(scan_id)`` until it reports completed/error and return that scan.

    ``on_complete`` is called once with the terminal scan (awaited if it returns an
    awaitable). Fetch errors propagate to the caller.
    """
    started = clock()
    last: dict[str, Any] | None = None
    for interval in policy.intervals():
        last = await fetch_scan(scan_id)
        if is_terminal(last):
            logger.info("scan_id=%s reached %s after %.1fs", scan_id, last.get("status"), clock() - started)
            if on_complete is not None:
                res = on_complete(last)
                if asyncio.iscoroutine(res):
                    await res
            return last

        elapsed = clock() - started
        remaining = policy.max_duration_s - elapsed
        if remaining <= 0:
            raise ScanPollTimeout(scan_id, elapsed, last)
        await sleep(min(interval, remaining))
