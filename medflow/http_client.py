"""HTTP session for the appointment API.

requests.Session with urllib3 connection pooling and status retries, wrapped
with tenacity for connection-level retries with exponential backoff.
Client errors (4xx other than 429) are returned to the caller untouched so
the store can interpret them; server errors are raised as HTTPError.
"""
import logging

import requests
from requests.adapters import HTTPAdapter
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from urllib3.util.retry import Retry

from medflow import config
from medflow.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})
WRAPPED_METHODS = ("get", "post", "put", "patch")


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return True
    if isinstance(exc, requests.exceptions.HTTPError):
        response = exc.response
        return response is None or response.status_code in RETRYABLE_STATUS
    return False


def _raise_for_server_error(response: requests.Response):
    if response.status_code in RETRYABLE_STATUS or response.status_code >= 500:
        raise requests.exceptions.HTTPError(
            f"{response.status_code} error from appointment API",
            response=response
        )


def create_http_session(
    max_retries: int = 3,
    backoff_factor: float = 1.0,
    timeout: int = config.HTTP_TIMEOUT,
    wait_multiplier: float = 1.0
) -> requests.Session:
    """
    Create HTTP session with retry and connection pooling.

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
        backoff_factor: urllib3 backoff multiplier for status retries
        timeout: Request timeout in seconds
        wait_multiplier: tenacity backoff multiplier; retry delays are
            1s, 2s, 4s at the default of 1.0 (0 disables waiting)

    Returns:
        Configured requests.Session whose get/post/put/patch retry
        transient failures
    """
    session = requests.Session()

    retry_strategy = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=sorted(RETRYABLE_STATUS),
        allowed_methods=["GET", "POST", "PUT", "PATCH"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(
        max_retries=retry_strategy,
        pool_connections=10,
        pool_maxsize=10,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    retrying = retry(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=wait_multiplier, min=0, max=8),
        retry=retry_if_exception(_is_retryable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )

    for method_name in WRAPPED_METHODS:
        original = getattr(session, method_name)

        def call_with_retry(*args, _original=original, **kwargs):
            kwargs.setdefault("timeout", timeout)
            response = _original(*args, **kwargs)
            _raise_for_server_error(response)
            return response

        setattr(session, method_name, retrying(call_with_retry))

    return session


def api_call_with_protection(
    session: requests.Session,
    breaker: CircuitBreaker,
    method: str,
    url: str,
    **kwargs
) -> requests.Response:
    """
    Make an API call through the circuit breaker.

    Raises:
        CircuitBreakerOpen: If circuit is open
        requests.exceptions.RequestException: If the request fails after retries
        ValueError: For unsupported methods
    """
    method = method.lower()
    if method not in WRAPPED_METHODS:
        raise ValueError(f"Unsupported HTTP method: {method.upper()}")

    return breaker.call(getattr(session, method), url, **kwargs)
