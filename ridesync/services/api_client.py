"""Base API client for the cloud service."""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from requests.exceptions import ConnectionError, RequestException, Timeout

log = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message, status_code=None, response=None):
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(self.message)


class TransportError(APIError):
    """The request never produced an HTTP response (connection, timeout, TLS)."""
    pass


@dataclass(frozen=True)
class CloudResponse:
    """HTTP status plus the decoded JSON body (None when the body is not JSON)."""

    status_code: int
    body: Optional[Dict[str, Any]] = None

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    @property
    def success(self):
        return self.ok and bool(self.body and self.body.get('success'))

    @property
    def data(self):
        return (self.body or {}).get('data')

    @property
    def error(self):
        return (self.body or {}).get('error')

    @property
    def code(self):
        return (self.body or {}).get('code')

    @property
    def status(self):
        return (self.body or {}).get('status')


class APIClient:
    """Base API client.

    HTTP error statuses are returned, not raised, so callers can act on the
    structured error body. Only transport failures raise.
    """

    def __init__(self, base_url, timeout=10):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = requests.Session()

    def request(self, method, endpoint, headers=None, params=None, json=None):
        """Make an HTTP request.

        Returns:
            CloudResponse

        Raises:
            TransportError: If no HTTP response was received
        """
        url = f"{self.base_url}{endpoint}"
        started = time.monotonic()

        try:
            response = self.session.request(
                method=method,
                url=url,
                headers=headers,
                params=params,
                json=json,
                timeout=self.timeout
            )
        except (ConnectionError, Timeout) as e:
            log.warning(f"{method} {endpoint} failed: {e}")
            raise TransportError(f"Connection error: {e}")
        except RequestException as e:
            log.warning(f"{method} {endpoint} failed: {e}")
            raise TransportError(f"Request error: {e}")

        elapsed_ms = int((time.monotonic() - started) * 1000)
        log.debug(f"{method} {endpoint} -> {response.status_code} in {elapsed_ms}ms")

        body = None
        if response.content:
            try:
                body = response.json()
            except ValueError:
                log.warning(f"{method} {endpoint} returned a non-JSON body (HTTP {response.status_code})")
            if body is not None and not isinstance(body, dict):
                body = None

        return CloudResponse(status_code=response.status_code, body=body)
