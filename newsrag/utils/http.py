"""
HTTP helpers shared by the provider clients.

Every call carries an explicit timeout. Transient failures (timeouts,
connection errors, 429 and 5xx responses) are retried with exponential
backoff up to ``max_retries`` times; everything else fails immediately.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

USER_AGENT = 'newsrag/0.1 (+rag-news-chatbot)'


def create_session(user_agent: str = USER_AGENT) -> requests.Session:
    """
    Create a requests session with connection pooling.

    Returns:
        Configured requests session
    """
    session = requests.Session()
    session.headers.update({'User-Agent': user_agent})
    adapter = requests.adapters.HTTPAdapter(
        pool_connections=10,
        pool_maxsize=20,
        max_retries=0  # We handle retries ourselves
    )
    session.mount('http://', adapter)
    session.mount('https://', adapter)
    return session


def post_json(
    session: requests.Session,
    url: str,
    payload: Dict[str, Any],
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 15,
    max_retries: int = 0,
    backoff: float = 0.5,
    sleep: Optional[Callable[[float], None]] = None,
    throttle: Optional[Callable[[], Any]] = None
) -> requests.Response:
    """
    POST a JSON body, retrying transient failures.

    Args:
        session: Session used for the request
        url: Target URL
        payload: JSON-serializable body
        headers: Extra request headers
        timeout: Per-attempt timeout in seconds
        max_retries: Retries after the first attempt (0 disables retrying)
        backoff: Base delay; attempt n waits ``backoff * 2 ** n`` seconds
        sleep: Sleep function (default: time.sleep)
        throttle: Called before every attempt, retries included (e.g. a
            rate limiter's ``acquire``)

    Returns:
        The successful (2xx) response

    Raises:
        requests.exceptions.RequestException: On the final failed attempt
    """
    sleep = sleep or time.sleep
    for attempt in range(max_retries + 1):
        is_last = attempt >= max_retries
        if throttle is not None:
            throttle()
        try:
            response = session.post(url, json=payload, headers=headers, timeout=timeout)
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            if is_last:
                raise
            wait_time = backoff * (2 ** attempt)
            logger.warning(
                f"Transient error on attempt {attempt + 1}/{max_retries + 1} for {url}: {e}. "
                f"Retrying in {wait_time:.2f}s"
            )
            sleep(wait_time)
            continue

        if response.status_code in TRANSIENT_STATUS_CODES and not is_last:
            wait_time = backoff * (2 ** attempt)
            logger.warning(
                f"HTTP {response.status_code} on attempt {attempt + 1}/{max_retries + 1} for {url}. "
                f"Retrying in {wait_time:.2f}s"
            )
            sleep(wait_time)
            continue

        response.raise_for_status()
        return response

    # Unreachable: the last attempt either returns or raises
    raise RuntimeError("post_json exhausted retries without a result")
