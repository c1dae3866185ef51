"""Request context carried alongside published events.

The HTTP middleware binds the client address for the duration of a request;
code running outside a request (scripts, tests) can bind it explicitly.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

_client_ip: ContextVar[Optional[str]] = ContextVar("client_ip", default=None)


def get_client_ip() -> Optional[str]:
    return _client_ip.get()


@contextmanager
def request_context(ip_address: Optional[str]) -> Iterator[None]:
    """Bind the client IP for events published inside the block."""
    token = _client_ip.set(ip_address)
    try:
        yield
    finally:
        _client_ip.reset(token)
