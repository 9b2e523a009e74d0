"""
HTTP access to cluster endpoints.

Path: ybstats/collect/http.py

A TCP probe decides reachability cheaply before the GET. Certificates
are never verified: cluster web UIs commonly run with self-signed
certificates and the data is read-only diagnostics.
"""

import logging
import socket
from enum import Enum
from typing import List, Optional, Tuple

import requests
import urllib3

from ybstats.core.resolver import Endpoint
from ybstats.errors import PayloadParseError


# Module logger - configure at application level
logger = logging.getLogger(__name__)

urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)


class FetchErrorCategory(Enum):
    """Categorized per-host fetch failures."""
    SUCCESS = "success"
    CONNECTION_REFUSED = "connection_refused"
    CONNECTION_TIMEOUT = "connection_timeout"
    DNS_FAILURE = "dns_failure"
    READ_TIMEOUT = "read_timeout"
    HTTP_STATUS = "http_status"
    TLS_ERROR = "tls_error"
    PARSE_ERROR = "parse_error"
    UNKNOWN = "unknown"


def categorize_fetch_error(exception: Exception) -> FetchErrorCategory:
    """
    Categorize a fetch exception for reporting.

    Args:
        exception: The caught exception.

    Returns:
        FetchErrorCategory indicating the type of failure.
    """
    if isinstance(exception, PayloadParseError):
        return FetchErrorCategory.PARSE_ERROR
    if isinstance(exception, requests.exceptions.SSLError):
        return FetchErrorCategory.TLS_ERROR
    if isinstance(exception, requests.exceptions.ConnectTimeout):
        return FetchErrorCategory.CONNECTION_TIMEOUT
    if isinstance(exception, requests.exceptions.ReadTimeout):
        return FetchErrorCategory.READ_TIMEOUT
    if isinstance(exception, requests.exceptions.HTTPError):
        return FetchErrorCategory.HTTP_STATUS
    if isinstance(exception, socket.gaierror):
        return FetchErrorCategory.DNS_FAILURE
    if isinstance(exception, ConnectionRefusedError):
        return FetchErrorCategory.CONNECTION_REFUSED
    if isinstance(exception, (socket.timeout, TimeoutError)):
        return FetchErrorCategory.CONNECTION_TIMEOUT

    error_msg = str(exception).lower()
    if "connection refused" in error_msg or "errno 111" in error_msg:
        return FetchErrorCategory.CONNECTION_REFUSED
    if "name or service not known" in error_msg or "getaddrinfo" in error_msg:
        return FetchErrorCategory.DNS_FAILURE
    if "timed out" in error_msg:
        return FetchErrorCategory.CONNECTION_TIMEOUT
    if "ssl" in error_msg or "certificate" in error_msg:
        return FetchErrorCategory.TLS_ERROR

    return FetchErrorCategory.UNKNOWN


# Failures meaning "host not there" rather than "host sent something bad".
UNREACHABLE_CATEGORIES = {
    FetchErrorCategory.CONNECTION_REFUSED,
    FetchErrorCategory.CONNECTION_TIMEOUT,
    FetchErrorCategory.DNS_FAILURE,
    FetchErrorCategory.READ_TIMEOUT,
    FetchErrorCategory.TLS_ERROR,
}


class HttpFetcher:
    """
    Probe-then-GET fetcher.

    Usage:
        fetcher = HttpFetcher(timeout=10, probe_timeout=1)
        with fetcher.new_session() as session:
            fetcher.probe(endpoint)
            status, body = fetcher.get(session, endpoint.url("/api/v1/version"))
    """

    def __init__(self, timeout: float = 10.0, probe_timeout: float = 1.0):
        """
        Args:
            timeout: Read timeout per request, seconds.
            probe_timeout: TCP connect timeout for the probe and the GET.
        """
        self.timeout = timeout
        self.probe_timeout = probe_timeout

    def new_session(self) -> requests.Session:
        """Session for one fetch; sessions are not shared between threads."""
        session = requests.Session()
        session.verify = False
        return session

    def probe(self, endpoint: Endpoint) -> None:
        """
        Open and close a TCP connection to the endpoint.

        Raises:
            OSError: Host is unreachable.
        """
        with socket.create_connection((endpoint.host, endpoint.port), timeout=self.probe_timeout):
            pass

    def get(self, session: requests.Session, url: str) -> Tuple[int, str]:
        """
        GET a URL.

        Returns:
            (status code, body text).

        Raises:
            requests.RequestException: Connection, TLS or timeout failure.
        """
        response = session.get(url, timeout=(self.probe_timeout, self.timeout), verify=False)
        return response.status_code, response.text


def describe_endpoints(endpoints: List[Endpoint], limit: Optional[int] = 5) -> str:
    """Short ``host:port`` list for log lines."""
    names = [e.hostname_port for e in endpoints]
    if limit is not None and len(names) > limit:
        return ", ".join(names[:limit]) + f", ... ({len(names)} total)"
    return ", ".join(names)
