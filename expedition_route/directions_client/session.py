"""Pooled ``requests`` session used for directions calls."""

from __future__ import annotations

import threading

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import (
    HTTP_CONNECT_RETRIES,
    HTTP_POOL_CONNECTIONS,
    HTTP_POOL_MAXSIZE,
    HTTP_RETRY_BACKOFF,
    HTTP_USER_AGENT,
)

__all__ = ["create_default_session", "get_default_session"]

_SESSION_LOCK = threading.Lock()
_DEFAULT_SESSION: requests.Session | None = None


def create_default_session() -> requests.Session:
    """Session whose adapter retries dropped connections but never statuses."""

    transport_retry = Retry(
        total=HTTP_CONNECT_RETRIES,
        connect=HTTP_CONNECT_RETRIES,
        read=1,
        status=0,
        backoff_factor=HTTP_RETRY_BACKOFF,
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(
        pool_connections=HTTP_POOL_CONNECTIONS,
        pool_maxsize=HTTP_POOL_MAXSIZE,
        max_retries=transport_retry,
    )
    session = requests.Session()
    session.mount("https://", adapter)
    session.headers.update(
        {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "User-Agent": HTTP_USER_AGENT,
        }
    )
    return session


def get_default_session() -> requests.Session:
    global _DEFAULT_SESSION
    with _SESSION_LOCK:
        if _DEFAULT_SESSION is None:
            _DEFAULT_SESSION = create_default_session()
        return _DEFAULT_SESSION
