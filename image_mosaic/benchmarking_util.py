import contextlib
import logging
import time
from typing import Generator, Optional


@contextlib.contextmanager
def debug_timing(span_name: str, num_pixels: Optional[int] = None) -> Generator[None, None, None]:
    """Log a message to debug level with the time to run the code in this context.

    With ``num_pixels`` the message also gives the rate in megapixels per second.
    """
    start_time = time.perf_counter()
    yield
    total_time = time.perf_counter() - start_time
    if num_pixels is None:
        logging.debug(f"{span_name}: {total_time:0.3f}s")
    else:
        megapixels = num_pixels / 1e6
        rate = megapixels / total_time if total_time > 0 else float("inf")
        logging.debug(f"{span_name}: {total_time:0.3f}s, {megapixels:0.2f} Mpx at {rate:0.2f} Mpx/s")
