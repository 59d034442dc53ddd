# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/utils/retry.py
import functools
import logging
import time
from typing import Callable, Collection

from ..errors import ExternalToolError

log = logging.getLogger("qlinstall")

# retrying cannot change these outcomes
FINAL = ("auth_rejected", "not_found")


def retry(
    *,
    attempts: int,
    delay: float,
    retry_on: tuple[type[Exception], ...] = (ExternalToolError,),
    give_up_on: Collection[str] = FINAL,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Retry decorator for idempotent external calls (apt index refresh,
    tarball downloads). Never used on anything that prompts.

    An ExternalToolError whose classification is in give_up_on is raised at
    once. When every attempt fails the last exception is re-raised as is,
    so callers still see the tool and its classification.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            for attempt in range(1, attempts + 1):
                try:
                    return fn(*args, **kwargs)
                except retry_on as exc:
                    if isinstance(exc, ExternalToolError) and exc.classification in give_up_on:
                        raise
                    if attempt == attempts:
                        raise
                    log.warning(
                        "%s failed (attempt %d/%d), retrying in %ss: %s",
                        fn.__name__, attempt, attempts, delay, exc,
                    )
                    sleep(delay)
        return wrapper
    return decorator
