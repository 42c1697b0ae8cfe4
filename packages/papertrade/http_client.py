"""HTTP client with retries, exponential backoff, and jitter.

Used by the market-data adapters.  Transport retries (connection resets) are
delegated to urllib3's ``Retry``; rate limits and 5xx responses are retried
here so the ``Retry-After`` header is honoured.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Mapping, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

DEFAULT_RETRY_STATUSES = (429, 500, 502, 503, 504)


class HttpClient:
    """GET-only JSON client bound to one base URL.

    ``default_params`` are merged into every request (used for API tokens
    passed as query parameters) and never logged.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 20.0,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
        retry_statuses: tuple = DEFAULT_RETRY_STATUSES,
        default_params: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.retry_statuses = retry_statuses
        self.default_params = dict(default_params or {})
        self.session = self._create_session()

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        retry_strategy = Retry(
            total=self.max_retries,
            backoff_factor=self.backoff_factor,
            status_forcelist=list(self.retry_statuses),
            allowed_methods=["GET"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def _backoff(self, attempt: int, floor: float = 0.0) -> float:
        delay = max(floor, self.backoff_factor * (2**attempt))
        return delay + random.uniform(0, delay * 0.5)

    def get(self, path: str, params: Optional[Mapping[str, Any]] = None) -> requests.Response:
        """GET *path* with retry logic.

        Raises:
            requests.RequestException: all attempts failed.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        merged = {**self.default_params, **dict(params or {})}
        attempt = 0

        while attempt <= self.max_retries:
            try:
                response = self.session.get(url, params=merged, timeout=self.timeout)
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as exc:
                delay = self._backoff(attempt)
                logger.warning(
                    "%s for %s; retrying in %.2fs (attempt %d/%d)",
                    type(exc).__name__, path, delay, attempt + 1, self.max_retries + 1,
                )
                time.sleep(delay)
                attempt += 1
                continue

            if response.status_code in self.retry_statuses:
                floor = 0.0
                if response.status_code == 429:
                    try:
                        floor = float(response.headers.get("Retry-After", 1))
                    except ValueError:
                        floor = 1.0
                delay = self._backoff(attempt, floor)
                logger.warning(
                    "HTTP %d for %s; retrying in %.2fs (attempt %d/%d)",
                    response.status_code, path, delay, attempt + 1, self.max_retries + 1,
                )
                time.sleep(delay)
                attempt += 1
                continue

            return response

        raise requests.exceptions.RetryError(
            f"Max retries ({self.max_retries}) exceeded for {url}"
        )

    def get_json(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """GET *path* and decode the JSON body.

        Raises:
            requests.RequestException: transport failure or non-2xx status.
            ValueError: body is not JSON.
        """
        response = self.get(path, params=params)
        response.raise_for_status()
        return response.json()
