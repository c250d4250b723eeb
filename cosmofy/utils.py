import functools
import inspect
import time

from loguru import logger


def logged_job(func):
    """
    A decorator that logs entry, exit and failure of a coroutine job.

    Features:
    - Logs the job name and bound parameters (minus self) before execution
    - Logs elapsed time after a successful run
    - Logs the exception type and message, then re-raises it unchanged
    - Preserves function metadata and return values
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        func_name = func.__qualname__

        sig = inspect.signature(func)
        bound_args = sig.bind(*args, **kwargs)
        bound_args.apply_defaults()
        params = {k: v for k, v in bound_args.arguments.items() if k != "self"}

        logger.info(f"Entering {func_name} with params: {params}")
        started = time.monotonic()
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            logger.error(f"{func_name} failed: {type(e).__name__}: {e}")
            raise
        logger.info(f"{func_name} finished in {time.monotonic() - started:.2f}s")
        return result

    return wrapper
