"""
Long-poll helper used by the ride and order watch endpoints.

Each record carries a ``version`` that increments on every write, so a client
passes back the last version it saw and waits for the next one.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Optional

from gogo.errors import NotFound


def wait_for_change(
    load: Callable[[], Optional[Any]],
    since_version: int,
    timeout: float = 25.0,
    poll_interval: float = 0.5,
    *,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> tuple[Any, bool]:
    """Return ``(record, changed)`` once the version passes ``since_version`` or time runs out."""
    deadline = clock() + max(0.0, timeout)
    while True:
        record = load()
        if record is None:
            raise NotFound("Document no longer exists")
        if record.version > since_version:
            return record, True
        remaining = deadline - clock()
        if remaining <= 0:
            return record, False
        sleep(min(poll_interval, remaining))
