"""
HTTP fetching for connector clients: JSON GET with retry and exponential backoff.

Each attempt that raises is logged and retried after base_delay, then
2 × base_delay, and so on, up to max_attempts calls in total. When the
budget is spent a FetchError is raised, chained to the last failure.
"""
import logging
import time
from typing import Any, Callable, Dict, Optional, TypeVar

import requests

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ATTEMPTS = 3
RETRY_BASE_DELAY = 1.0
USER_AGENT = "billing-connectors/0.1"


class FetchError(RuntimeError):
    """Raised by a connector client when an external fetch cannot be completed."""


def with_retries(
    operation: Callable[[], T],
    *,
    description: str,
    max_attempts: int = MAX_ATTEMPTS,
    base_delay: float = RETRY_BASE_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call operation() until it succeeds or max_attempts is exhausted."""
    attempt = 0
    while True:
        attempt += 1
        try:
            return operation()
        except Exception as exc:
            if attempt >= max_attempts:
                logger.error(
                    "%s failed after %d attempts: %s", description, attempt, exc
                )
                raise FetchError(
                    f"{description} failed after {attempt} attempts: {exc}"
                ) from exc
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                "%s attempt %d failed: %s. Retrying in %.1fs...",
                description, attempt, exc, delay,
            )
            sleep(delay)


def build_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})
    return session


def get_json(
    session: requests.Session,
    url: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    timeout: float = 30.0,
) -> Any:
    """Single GET attempt. Non-2xx responses raise FetchError."""
    response = session.get(url, params=params, timeout=timeout)
    if not response.ok:
        raise FetchError(f"HTTP error: {response.status_code} {response.reason}")
    return response.json()
