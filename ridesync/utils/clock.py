"""Wall-clock helpers. All persisted timestamps are epoch milliseconds."""

import time


def now_ms():
    """Return the current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)
