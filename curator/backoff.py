"""HTTP GET with bounded retries and exponential backoff."""

import logging
import time
from typing import Callable, Optional

import requests

logger = logging.getLogger(__name__)

USER_AGENT = "ArxivCurator/1.0.0 (research tool)"
REQUEST_TIMEOUT_SECONDS = 20


class BackoffFetcher:
    """Fetches URLs, retrying failed attempts with exponential delays."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: int = REQUEST_TIMEOUT_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the fetcher.

        Args:
            session: requests session to reuse (a new one is created if omitted)
            timeout: Per-attempt request timeout in seconds
            sleep: Function used to wait between attempts
        """
        self.session = session or requests.Session()
        self.timeout = timeout
        self.sleep = sleep
        self.headers = {"User-Agent": USER_AGENT}

    def fetch(self, url: str, max_attempts: int = 3, base_delay: float = 1.0) -> str:
        """
        Fetch a URL and return the response body.

        Waits ``base_delay * 2 ** (attempt - 1)`` seconds after each failed
        attempt. The error of the last attempt is re-raised.

        Args:
            url: URL to fetch
            max_attempts: Number of attempts before giving up
            base_delay: Delay in seconds after the first failure

        Returns:
            Response body as text
        """
        max_attempts = max(1, max_attempts)

        for attempt in range(1, max_attempts + 1):
            logger.info(f"  Attempt {attempt}/{max_attempts}: {url}")
            try:
                response = self.session.get(url, headers=self.headers, timeout=self.timeout)
                response.raise_for_status()
                return response.text
            except requests.RequestException as e:
                logger.warning(f"  Attempt {attempt} failed: {e}")
                if attempt == max_attempts:
                    raise

                delay = base_delay * 2 ** (attempt - 1)
                logger.info(f"  Waiting {delay:.1f}s before retry...")
                self.sleep(delay)

        # Unreachable: the loop either returns or re-raises.
        raise RuntimeError("fetch loop exited without a result")
