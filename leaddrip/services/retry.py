"""
Shared retry policy for every outbound call (search, fetch, generate).

Only transient failures are retried: timeouts, dropped connections, 5xx and
429 responses. Anything else is raised on the first attempt.
"""
import logging
import time
from dataclasses import dataclass

import anthropic
import openai
import requests

from leaddrip.errors import ProviderRequestError

logger = logging.getLogger('services.retry')


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    backoff_factor: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        return self.base_delay * (self.backoff_factor ** (attempt - 1))


DEFAULT_RETRY_POLICY = RetryPolicy()

_TRANSIENT_SDK_ERRORS = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
    anthropic.APITimeoutError,
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)


def is_transient_status(status_code) -> bool:
    return status_code is not None and (status_code == 429 or status_code >= 500)


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, ProviderRequestError):
        return exc.transient
    if isinstance(exc, _TRANSIENT_SDK_ERRORS):
        return True
    if isinstance(exc, (requests.Timeout, requests.ConnectionError)):
        return True
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return is_transient_status(exc.response.status_code)
    return False


def call_with_retry(policy: RetryPolicy, func, *args, **kwargs):
    """Call func(*args, **kwargs), retrying transient failures per policy."""
    policy = policy or DEFAULT_RETRY_POLICY
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            if not is_transient(e) or attempt == policy.max_attempts:
                raise
            wait = policy.delay_for(attempt)
            logger.warning(
                "Transient failure in %s, retrying in %.1fs (attempt %d/%d): %s",
                getattr(func, '__name__', func), wait, attempt, policy.max_attempts, e,
            )
            time.sleep(wait)
