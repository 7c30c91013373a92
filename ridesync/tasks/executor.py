"""Task executor for background processing."""

import concurrent.futures
import logging
from functools import wraps

logger = logging.getLogger(__name__)

# Small pool: a device login poll loop and a sync pass may run side by side
executor = concurrent.futures.ThreadPoolExecutor(max_workers=2, thread_name_prefix='ridesync-task')


def async_task(f):
    """Decorator to run a function asynchronously."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        return executor.submit(f, *args, **kwargs)
    return wrapper


def shutdown(wait=True):
    """Shutdown the executor gracefully."""
    logger.info("Shutting down task executor")
    executor.shutdown(wait=wait, cancel_futures=True)
