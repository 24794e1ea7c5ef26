import logging
import time
from functools import wraps

_log = logging.getLogger(__name__)


# timing decorator
def timing(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed_time = time.perf_counter() - start_time
            _log.info("'%s' finished in %.2f milliseconds", func.__name__, 1000 * elapsed_time)

    return wrapper
