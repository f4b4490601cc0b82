"""
Outbound request policy shared by the provider clients.
Only HTTP 429 is retried (exponential backoff, doubling from RETRY_BASE_DELAY); any other
status is returned to the caller on the first attempt.
"""
import logging
import time
from typing import Callable

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from linked_roles.config import RETRY_ATTEMPTS, RETRY_BASE_DELAY
from linked_roles.errors import ProviderError

logger = logging.getLogger(__name__)


class RateLimited(Exception):
    def __init__(self, response: httpx.Response):
        super().__init__(f"Rate limited: {response.request.method} {response.request.url.path}")
        self.response = response


def send_with_retry(
    http: httpx.Client,
    method: str,
    url: str,
    *,
    attempts: int = RETRY_ATTEMPTS,
    base_delay: float = RETRY_BASE_DELAY,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs,
) -> httpx.Response:
    """
    Send the request, retrying on 429 up to `attempts` total tries.
    When retries run out the last 429 response is returned, so callers handle it like any other error status.
    """
    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=base_delay, exp_base=2, min=base_delay),
        retry=retry_if_exception_type(RateLimited),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
        reraise=True,
    )

    def _send() -> httpx.Response:
        response = http.request(method, url, **kwargs)
        if response.status_code == 429:
            raise RateLimited(response)
        return response

    try:
        return retrying(_send)
    except RateLimited as e:
        return e.response


def raise_for_provider(response: httpx.Response, provider: str, action: str) -> httpx.Response:
    """Raise ProviderError unless the response is 2xx."""
    if response.is_success:
        return response
    raise ProviderError(provider, action, response.status_code, response.text[:200])
