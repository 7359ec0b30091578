import functools
import logging
import time
import warnings
from typing import Callable

from cachetools.func import ttl_cache

logger = logging.getLogger("questlog")


def setup_logs(level: int = logging.DEBUG):
    warnings.simplefilter("default")
    logging.getLogger("questlog").setLevel(level)
    logging.basicConfig()


def time_it(func):
    """Decorator logging how long a job took"""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed = time.perf_counter() - start_time
            logger.info(f"{func.__name__} completed in {elapsed:.2f} seconds")

    return wrapper


loggers: dict[int, Callable] = {}


def ratelimited_log(delay_or_fn: int | Callable, msg=None):
    """Log the same message at most once every `delay` seconds.

    ratelimited_log(logger.warning, "msg") uses a 60s window,
    ratelimited_log(300)(logger.warning, "msg") a custom one.
    """
    if callable(delay_or_fn):
        logger_method = delay_or_fn
        delay = 60
    else:
        delay = delay_or_fn
        logger_method = None

    if delay not in loggers:

        @ttl_cache(ttl=delay)
        def call(logger_method, message):
            logger_method(message)

        loggers[delay] = call

    if logger_method is not None:
        return loggers[delay](logger_method, msg)
    return loggers[delay]
