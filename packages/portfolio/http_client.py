"""HTTP client with retries, exponential backoff, and jitter."""

import logging
import random
import threading
import time
from typing import Any, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

_shared_clients: dict[str, "HttpClient"] = {}
_shared_lock = threading.Lock()


class HttpClient:
    """requests session bound to one base URL, with retrying GETs and JSON helpers."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 20.0,
        max_retries: int = 5,
        backoff_factor: float = 1.0,
        retry_statuses: tuple = (429, 500, 502, 503, 504),
    ):
        """
        Args:
            base_url: Service root, e.g. the Data API or CLOB host
            timeout: Per-request timeout in seconds
            max_retries: Retries after the first attempt
            backoff_factor: Base delay for exponential backoff
            retry_statuses: Statuses retried with backoff (429 uses Retry-After)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.retry_statuses = retry_statuses

        self.session = self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a requests session with retry configuration."""
        session = requests.Session()

        # Connection-level retries; status retries are handled in get()
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
        session.headers.update({"Content-Type": "application/json"})

        return session

    def _add_jitter(self, delay: float) -> float:
        """Add random jitter to delay (0-50% of delay)."""
        jitter = random.uniform(0, delay * 0.5)
        return delay + jitter

    def _retry_after(self, response: requests.Response) -> float:
        """Seconds to wait after a 429; Retry-After may be missing or a date."""
        try:
            return max(float(response.headers.get("Retry-After", 5)), 0.0)
        except (TypeError, ValueError):
            return 5.0

    def _backoff(self, reason: str, attempt: int, base_delay: Optional[float] = None) -> None:
        if base_delay is None:
            base_delay = self.backoff_factor * (2**attempt)
        delay = self._add_jitter(base_delay)
        logger.warning(
            f"{reason}. Waiting {delay:.2f}s before retry. "
            f"Attempt {attempt + 1}/{self.max_retries + 1}"
        )
        time.sleep(delay)

    def get(
        self,
        path: str,
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> requests.Response:
        """
        GET ``path`` relative to the base URL, retrying throttling and
        transient failures.

        429 honours ``Retry-After``; retryable statuses, timeouts and
        connection errors back off exponentially with jitter. Any other
        response (including 4xx) is returned as-is.

        Raises:
            requests.exceptions.RetryError: Once ``max_retries`` is exhausted
        """
        url = f"{self.base_url}/{path.lstrip('/')}"

        for attempt in range(self.max_retries + 1):
            try:
                response = self.session.get(
                    url,
                    params=params,
                    headers=headers,
                    timeout=self.timeout,
                )
            except requests.exceptions.Timeout:
                self._backoff(f"Request timeout for {path}", attempt)
                continue
            except requests.exceptions.ConnectionError as e:
                self._backoff(f"Connection error for {path}: {e}", attempt)
                continue

            if response.status_code == 429:
                self._backoff("Rate limited (429)", attempt, self._retry_after(response))
            elif response.status_code in self.retry_statuses:
                self._backoff(f"Server error ({response.status_code}) for {path}", attempt)
            else:
                return response

        raise requests.exceptions.RetryError(
            f"Max retries ({self.max_retries}) exceeded for {url}"
        )

    def get_json(
        self,
        path: str,
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> Any:
        """
        Make a GET request and return the JSON body.

        A 404 response is returned as ``None`` so callers can treat it as
        "nothing there" instead of an error.

        Raises:
            UpstreamUnavailable: On network failure, exhausted retries,
                any other non-2xx status, or an undecodable body.
        """
        try:
            response = self.get(path, params=params, headers=headers)
        except requests.RequestException as exc:
            raise UpstreamUnavailable(f"GET {path} failed: {exc}") from exc

        if response.status_code == 404:
            logger.debug(f"GET {path} returned 404, treating as empty")
            return None

        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise UpstreamUnavailable(
                f"GET {path} returned HTTP {response.status_code}"
            ) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamUnavailable(f"GET {path} returned invalid JSON") from exc

    def get_collection(
        self,
        path: str,
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> list:
        """
        Fetch one page of a collection endpoint.

        Accepts either a bare JSON array or an object wrapping the array in
        ``data`` (or ``trades``). 404 yields an empty list.
        """
        body = self.get_json(path, params=params, headers=headers)
        if body is None:
            return []
        if isinstance(body, list):
            return body
        if isinstance(body, dict):
            items = body.get("data", body.get("trades", []))
            if isinstance(items, list):
                return items
        logger.warning(f"Unexpected response type from {path}: {type(body).__name__}")
        return []


def get_shared_client(base_url: str, timeout: float = 20.0) -> HttpClient:
    """Return the process-wide client for ``base_url``, creating it on first use.

    Components accept an explicit client; this is only the default when none
    is passed in.
    """
    key = base_url.rstrip("/")
    with _shared_lock:
        client = _shared_clients.get(key)
        if client is None:
            client = HttpClient(base_url=key, timeout=timeout)
            _shared_clients[key] = client
        return client
