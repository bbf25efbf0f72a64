# workload_engine/engine/best_effort.py
"""
Best-effort engine operations.

Cleanup steps must not fail a workflow because the target is already gone,
but unrelated failures must not disappear silently either. Only the
whitelisted "already absent / already in that state" answers are swallowed
quietly; anything else propagates unless the caller is on a path where a
primary result already exists (swallow_all=True), in which case it is
logged at WARNING and dropped.
"""

import logging
from typing import Any, Callable

import requests
from docker.errors import APIError, DockerException, NotFound

logger = logging.getLogger(__name__)

# 304: already started / already stopped
# 409: removal already in progress
ABSENT_STATUS_CODES = {304, 404, 409}


def is_already_absent(error: Exception) -> bool:
    """True for engine answers meaning 'nothing left to do'."""
    if isinstance(error, NotFound):
        return True
    if isinstance(error, APIError):
        if error.status_code in ABSENT_STATUS_CODES:
            return True
        explanation = str(error.explanation or "").lower()
        return "no such container" in explanation or "already in progress" in explanation
    return False


def best_effort(
    description: str,
    action: Callable[..., Any],
    *args,
    swallow_all: bool = False,
    **kwargs,
) -> bool:
    """
    Run action(*args, **kwargs).

    Returns:
        True if the action completed, False if its failure was swallowed
    """
    try:
        action(*args, **kwargs)
        return True
    except (DockerException, requests.exceptions.RequestException) as e:
        if is_already_absent(e):
            logger.debug(f"{description}: already done ({e})")
            return False
        if swallow_all:
            logger.warning(f"{description} failed (ignored): {e}")
            return False
        raise
