"""Shared utilities such as logging and retry decorators.

All modules log through the single `logger` defined here.
"""
import os
import logging
import time
from functools import wraps
from dotenv import load_dotenv

load_dotenv()

def get_logger(name=__name__):
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        level=getattr(logging, level, logging.INFO)
    )
    return logging.getLogger(name)

logger = get_logger("listing-tracker")

def retry(exceptions, tries=3, delay=1, backoff=2, logger=logger, sleep=time.sleep, giving_up=None):
    """Retry the wrapped callable on `exceptions`.

    After the last attempt fails, the error is re-raised as is, or wrapped by
    `giving_up(last_error, tries)` when given (chained to the last error).
    """
    def deco_retry(f):
        @wraps(f)
        def f_retry(*args, **kwargs):
            mtries, mdelay = tries, delay
            attempt = 1
            while True:
                try:
                    return f(*args, **kwargs)
                except exceptions as e:
                    if attempt >= mtries:
                        if giving_up is None:
                            raise
                        raise giving_up(e, mtries) from e
                    logger.warning("Attempt %d/%d failed: %s, retrying in %s sec", attempt, mtries, e, mdelay)
                    sleep(mdelay)
                    attempt += 1
                    mdelay *= backoff
        return f_retry
    return deco_retry
